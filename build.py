#!/usr/bin/env python3
"""
build.py — Art Appraisers Directory static site generator.

Runs the content pipeline end to end:

    1. standardize   data/*.json -> canonical location records
    2. images        validate/resolve one working image per appraiser
    3. render        home, location and appraiser pages (HTML + JSON-LD)
    4. hubs/sitemap  location/ and appraiser/ hubs, sitemap.xml, robots.txt

Usage:
    python build.py                                  # data/ -> dist/
    python build.py --data-dir data --out dist       # explicit paths
    python build.py --skip-images                    # no network, declared/default images
    python build.py --clear-image-cache --workers 12 # re-probe every image
    python build.py --verbose                        # debug logging

A malformed city file is skipped and counted; the build still succeeds.
An empty output tree is fatal (exit 1).
"""

from __future__ import annotations

import argparse
import json
import logging
import subprocess
import sys
import time
from collections import Counter
from dataclasses import replace
from datetime import date, datetime, timezone
from pathlib import Path

from appraisers.assets import AssetManifest
from appraisers.config import ROOT, SiteConfig, load_site_config
from appraisers.errors import PipelineError
from appraisers.images import (
    DEFAULT_WORKERS,
    ImageResolver,
    ImageValidationCache,
    JsonDirectoryStore,
)
from appraisers.models import LocationRecord
from appraisers.render import write_site
from appraisers.sitemap import regenerate
from appraisers.standardize import load_city_index, standardize_directory, write_standardized

log = logging.getLogger("build")

DEFAULT_DATA_DIR = ROOT / "data"
DEFAULT_OUT_DIR = ROOT / "dist"
DEFAULT_CACHE_DIR = ROOT / ".cache" / "image-validation"

PROGRESS_EVERY = 25


# ---------------------------------------------------------------------------
# Git SHA for traceability
# ---------------------------------------------------------------------------
def git_sha() -> str:
    """Short git SHA of HEAD, or "unknown" outside a checkout."""
    try:
        return subprocess.check_output(
            ["git", "rev-parse", "--short", "HEAD"],
            cwd=ROOT, stderr=subprocess.DEVNULL,
        ).decode().strip()
    except (OSError, subprocess.CalledProcessError):
        return "unknown"


# ---------------------------------------------------------------------------
# Image stage
# ---------------------------------------------------------------------------
def resolve_images(
    locations: list[LocationRecord],
    config: SiteConfig,
    cache_dir: Path,
    workers: int = DEFAULT_WORKERS,
    clear_cache: bool = False,
    session=None,
) -> tuple[list[LocationRecord], dict]:
    """Resolve every listing's image; returns new records plus tier stats."""
    cache = ImageValidationCache(JsonDirectoryStore(cache_dir), ttl_seconds=config.cache_ttl_seconds)
    if clear_cache:
        cache.clear()
    resolver = ImageResolver(config, cache, session=session)

    items = [(listing, loc) for loc in locations for listing in loc.listings]
    log.info("Resolving images for %d appraisers (%d workers)", len(items), workers)
    t0 = time.monotonic()
    resolved: dict[str, str] = {}
    tiers: Counter[str] = Counter()
    failures = 0
    for event in resolver.resolve_batch(items, workers=workers):
        resolved[event.listing_id] = event.resolution.url
        tiers[event.resolution.tier] += 1
        if not event.success:
            failures += 1
        log.debug("[%d/%d] %s -> %s (%s)", event.current, event.total, event.listing_id,
                  event.resolution.tier, event.error or "ok")
        if event.current % PROGRESS_EVERY == 0 or event.current == event.total:
            log.info("Images: %d/%d done (%d on default image)", event.current, event.total, failures)

    out = [
        replace(loc, listings=[
            replace(listing, image_url=resolved.get(listing.id, config.default_image))
            for listing in loc.listings
        ])
        for loc in locations
    ]
    stats = {
        "tiers": {tier: tiers[tier] for tier in sorted(tiers)},
        "probes": resolver.probes,
        "cache_hits": cache.hits,
        "seconds": round(time.monotonic() - t0, 1),
    }
    return out, stats


def declared_images(locations: list[LocationRecord], config: SiteConfig) -> tuple[list[LocationRecord], dict]:
    """--skip-images: keep declared URLs unprobed, default image otherwise."""
    tiers: Counter[str] = Counter()
    out = []
    for loc in locations:
        listings = []
        for listing in loc.listings:
            url = config.rewrite_image_url(listing.image_url)
            tiers["unvalidated" if url else "default"] += 1
            listings.append(replace(listing, image_url=url or config.default_image))
        out.append(replace(loc, listings=listings))
    return out, {"tiers": dict(sorted(tiers.items())), "probes": 0, "cache_hits": 0, "seconds": 0.0}


# ---------------------------------------------------------------------------
# Build
# ---------------------------------------------------------------------------
def build_site(args: argparse.Namespace, config: SiteConfig, session=None) -> dict:
    data_dir = Path(args.data_dir)
    out_dir = Path(args.out)
    if not data_dir.is_dir():
        raise PipelineError(f"data directory {data_dir} does not exist", "required-directories")

    sha = git_sha()
    log.info("=" * 60)
    log.info("Building %s [%s] -> %s", config.site_name, sha, out_dir)
    log.info("=" * 60)

    cities_file = Path(args.cities) if args.cities else data_dir / "cities.json"
    city_index = load_city_index(cities_file) if args.cities or cities_file.exists() else {}

    std = standardize_directory(data_dir, city_index=city_index, today=date.today(), config=config)
    if args.standardized_dir:
        write_standardized(std.locations, args.standardized_dir)

    if args.skip_images:
        locations, image_stats = declared_images(std.locations, config)
    else:
        locations, image_stats = resolve_images(
            std.locations, config, Path(args.cache_dir),
            workers=args.workers, clear_cache=args.clear_image_cache, session=session,
        )

    manifest_path = args.assets_manifest or (out_dir / "assets.json")
    assets = AssetManifest.load(manifest_path)

    render_stats = write_site(locations, out_dir, config, assets)
    sitemap = regenerate(out_dir, config, assets)

    summary = {
        "action": "built",
        "sha": sha,
        "built_at": datetime.now(timezone.utc).isoformat(timespec="seconds"),
        "out_dir": str(out_dir),
        "files_processed": std.files_processed,
        "files_skipped": len(std.skipped),
        "skipped_files": std.skipped,
        "locations": len(locations),
        "appraisers": std.listing_count,
        **render_stats.to_dict(),
        "images": image_stats,
        **sitemap.to_dict(),
    }
    (out_dir / "manifest.json").write_text(json.dumps(summary, indent=2) + "\n")
    log.info("Build complete -> %s/ (%d pages, %d sitemap URLs, sha=%s)",
             out_dir, render_stats.pages, sitemap.urls, sha)
    return summary


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------
def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Art Appraisers Directory — build static site")
    parser.add_argument("--data-dir", default=str(DEFAULT_DATA_DIR), help="Raw per-city JSON files")
    parser.add_argument("--out", default=str(DEFAULT_OUT_DIR), help="Output directory (public tree)")
    parser.add_argument("--cities", default=None, help="cities.json with display names (default: <data-dir>/cities.json)")
    parser.add_argument("--standardized-dir", default=None, help="Also write canonical city files here")
    parser.add_argument("--assets-manifest", default=None, help="SPA asset manifest (default: <out>/assets.json)")
    parser.add_argument("--cache-dir", default=str(DEFAULT_CACHE_DIR), help="Image validation cache directory")
    parser.add_argument("--workers", type=int, default=DEFAULT_WORKERS, help="Concurrent image probes (1-20)")
    parser.add_argument("--skip-images", action="store_true", help="Do not probe or generate images")
    parser.add_argument("--clear-image-cache", action="store_true", help="Drop cached probe results first")
    parser.add_argument("--base-url", default=None, help="Canonical site origin (overrides config)")
    parser.add_argument("--config", default=None, help="Site config file (default: site.yaml)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    try:
        config = load_site_config(args.config).with_overrides(base_url=args.base_url)
        summary = build_site(args, config)
    except PipelineError as exc:
        if args.verbose:
            log.exception("Build failed")
        print(f"FATAL [{exc.invariant}]: {exc}", file=sys.stderr)
        raise SystemExit(1)

    print(json.dumps(summary, indent=2))


if __name__ == "__main__":
    main()
