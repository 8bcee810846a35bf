"""
Image Resolver — pick a working image URL for every listing.

Resolution walks a fixed fallback chain and stops at the first URL that
answers a HEAD request with HTTP 200:

    declared   the listing's own imageUrl (deprecated hosts rewritten)
    alternate  conventional names on the image host, derived from the slug
    generated  a fresh URL from the image-generation service
    specialty  a placeholder matching the listing's first known specialty
    default    the global default image, used without probing

Probe outcomes (valid and invalid) are cached by URL for a TTL, in memory
or, with ``JsonDirectoryStore``, on disk as ``<md5(url)>.json``.  Cache
write failures are logged and ignored.  ``resolve`` never raises; any
network error is just an unsuccessful probe.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator

import requests

from .config import SiteConfig
from .models import ListingRecord, LocationRecord
from .standardize import slugify

log = logging.getLogger(__name__)

TIERS = ("declared", "alternate", "generated", "specialty", "default")

DEFAULT_WORKERS = 8
MAX_WORKERS = 20

_HEADERS = {"User-Agent": "art-appraisers-directory-build/1.0"}


def clamp_workers(workers: int | None) -> int:
    if not workers:
        return DEFAULT_WORKERS
    return max(1, min(MAX_WORKERS, int(workers)))


def cache_key(url: str) -> str:
    return hashlib.md5(url.encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# Validation cache
# ---------------------------------------------------------------------------
class MemoryStore:
    """Entries held only for the life of the process."""

    def __init__(self) -> None:
        self._entries: dict[str, dict] = {}

    def get(self, key: str) -> dict | None:
        return self._entries.get(key)

    def put(self, key: str, entry: dict) -> None:
        self._entries[key] = entry

    def clear(self) -> int:
        n = len(self._entries)
        self._entries.clear()
        return n


class JsonDirectoryStore:
    """One ``<key>.json`` file per URL: ``{"url", "isValid", "timestamp"}``."""

    def __init__(self, directory: Path | str) -> None:
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def get(self, key: str) -> dict | None:
        path = self._path(key)
        try:
            return json.loads(path.read_text())
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as exc:
            log.debug("Unreadable cache entry %s: %s", path.name, exc)
            return None

    def put(self, key: str, entry: dict) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        tmp = path.with_suffix(f".{os.getpid()}.{threading.get_ident()}.tmp")
        tmp.write_text(json.dumps(entry))
        os.replace(tmp, path)

    def clear(self) -> int:
        if not self.directory.exists():
            return 0
        n = 0
        for path in self.directory.glob("*.json"):
            path.unlink()
            n += 1
        return n


class ImageValidationCache:
    """URL -> validity with a TTL, kept in *store* (memory by default)."""

    def __init__(
        self,
        store: MemoryStore | JsonDirectoryStore | None = None,
        ttl_seconds: float = 24 * 3600,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store if store is not None else MemoryStore()
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def _fresh(self, entry: dict | None) -> bool:
        if not entry or "isValid" not in entry:
            return False
        try:
            age_ms = self.clock() * 1000 - float(entry.get("timestamp", 0))
        except (TypeError, ValueError):
            return False
        return age_ms < self.ttl_seconds * 1000

    def get(self, url: str) -> bool | None:
        """Cached validity for *url*, or None when absent or expired."""
        entry = self.store.get(cache_key(url))
        fresh = self._fresh(entry)
        with self._lock:
            if fresh:
                self.hits += 1
            else:
                self.misses += 1
        return bool(entry["isValid"]) if fresh else None

    def set(self, url: str, is_valid: bool) -> None:
        entry = {"url": url, "isValid": bool(is_valid), "timestamp": int(self.clock() * 1000)}
        try:
            self.store.put(cache_key(url), entry)
        except OSError as exc:
            log.warning("Could not write image cache entry for %s: %s", url, exc)

    def clear(self) -> int:
        n = self.store.clear()
        log.info("Cleared %d image cache entries", n)
        return n


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------
@dataclass
class ImageResolution:
    url: str
    tier: str

    def to_dict(self) -> dict[str, Any]:
        return {"url": self.url, "tier": self.tier}


@dataclass
class ProgressEvent:
    current: int
    total: int
    listing_id: str
    success: bool
    resolution: ImageResolution
    error: str = ""


class ImageResolver:
    def __init__(
        self,
        config: SiteConfig,
        cache: ImageValidationCache | None = None,
        session: Any = None,
    ) -> None:
        self.config = config
        self.cache = cache or ImageValidationCache(ttl_seconds=config.cache_ttl_seconds)
        self.http = session or requests.Session()
        self.probes = 0
        self._lock = threading.Lock()

    # -- probing ----------------------------------------------------------
    def probe(self, url: str, use_cache: bool = True) -> bool:
        """HEAD *url*; True only for a 200.  Network errors count as invalid."""
        if not url or not url.startswith(("http://", "https://")):
            return False
        if use_cache:
            cached = self.cache.get(url)
            if cached is not None:
                return cached
        with self._lock:
            self.probes += 1
        try:
            resp = self.http.head(
                url, timeout=self.config.probe_timeout, allow_redirects=True, headers=_HEADERS,
            )
            ok = resp.status_code == 200
        except requests.RequestException as exc:
            log.debug("Probe failed for %s: %s", url, exc)
            ok = False
        if use_cache:
            self.cache.set(url, ok)
        return ok

    # -- candidates -------------------------------------------------------
    def candidate_urls(self, listing: ListingRecord, location: LocationRecord) -> list[str]:
        """Alternate image names on the image host, most specific last."""
        host = self.config.image_host.rstrip("/")
        if not host:
            return []
        names = [f"appraiser_{listing.slug}", listing.slug]
        if listing.business_name:
            business_slug = slugify(listing.business_name)
            if business_slug and business_slug != listing.slug:
                names += [f"appraiser_{business_slug}", business_slug]
        names.append(f"appraiser_{listing.slug}_{location.city_slug}")
        urls: list[str] = []
        for name in names:
            url = f"{host}/appraiser-images/{name}.jpg"
            if url not in urls:
                urls.append(url)
        return urls

    def generate(self, listing: ListingRecord, location: LocationRecord) -> str:
        """Ask the generation service for a new image; "" on any failure."""
        endpoint = self.config.image_generation_url
        if not endpoint:
            return ""
        payload = {
            "name": listing.name,
            "type": "appraiser",
            "location": location.display_name,
            "description": listing.content.about,
            "businessName": listing.business_name or listing.name,
        }
        try:
            resp = self.http.post(
                endpoint, json=payload, timeout=self.config.generation_timeout, headers=_HEADERS,
            )
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError) as exc:
            log.warning("Image generation failed for %s: %s", listing.id, exc)
            return ""
        url = data.get("imageUrl") if isinstance(data, dict) else None
        if not isinstance(url, str) or not url:
            log.warning("Image generation for %s returned no imageUrl", listing.id)
            return ""
        # Freshly generated URLs are checked directly and never cached.
        return url if self.probe(url, use_cache=False) else ""

    def specialty_placeholder(self, listing: ListingRecord) -> str:
        for specialty in listing.expertise.specialties:
            lowered = specialty.lower()
            for keyword, url in self.config.specialty_placeholders.items():
                if keyword in lowered:
                    return url
        return ""

    # -- resolution -------------------------------------------------------
    def resolve(self, listing: ListingRecord, location: LocationRecord) -> ImageResolution:
        declared = self.config.rewrite_image_url(listing.image_url)
        if declared and self.probe(declared):
            return ImageResolution(declared, "declared")

        for url in self.candidate_urls(listing, location):
            if url != declared and self.probe(url):
                return ImageResolution(url, "alternate")

        generated = self.generate(listing, location)
        if generated:
            return ImageResolution(generated, "generated")

        placeholder = self.specialty_placeholder(listing)
        if placeholder and self.probe(placeholder):
            return ImageResolution(placeholder, "specialty")

        return ImageResolution(self.config.default_image, "default")

    def resolve_batch(
        self,
        items: Iterable[tuple[ListingRecord, LocationRecord]],
        workers: int | None = DEFAULT_WORKERS,
    ) -> Iterator[ProgressEvent]:
        """Resolve many listings concurrently, yielding one event per listing."""
        items = list(items)
        total = len(items)
        done = 0
        with ThreadPoolExecutor(max_workers=clamp_workers(workers)) as pool:
            futures = {pool.submit(self.resolve, listing, loc): listing for listing, loc in items}
            for future in as_completed(futures):
                listing = futures[future]
                done += 1
                try:
                    resolution = future.result()
                except Exception as exc:
                    log.exception("Image resolution crashed for %s", listing.id)
                    yield ProgressEvent(
                        done, total, listing.id, False,
                        ImageResolution(self.config.default_image, "default"), str(exc),
                    )
                    continue
                yield ProgressEvent(done, total, listing.id, resolution.tier != "default", resolution)
