"""
Site configuration for the directory build and publish tools.

Settings live in ``site.yaml`` at the repository root.  Any value can be
overridden without code changes, either through the process environment or
through a ``.env`` file in the working directory:

    SITE_BASE_URL                  canonical origin for absolute URLs
    DEFAULT_IMAGE_URL              global fallback image
    IMAGE_HOST_BASE                host used for alternate image names
    IMAGE_GENERATION_SERVICE_URL   image-generation endpoint ("" disables)
    RELEASE_ROOT                   releases directory for publish.py
    CONTAINER_NAME                 service restarted after cut-over
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import yaml

log = logging.getLogger(__name__)

ROOT = Path(__file__).resolve().parent.parent
DEFAULT_CONFIG_FILE = ROOT / "site.yaml"

_ENV_KEYS = {
    "SITE_BASE_URL": "base_url",
    "DEFAULT_IMAGE_URL": "default_image",
    "IMAGE_HOST_BASE": "image_host",
    "IMAGE_GENERATION_SERVICE_URL": "image_generation_url",
    "RELEASE_ROOT": "release_root",
    "CONTAINER_NAME": "container_name",
}


@dataclass
class SiteConfig:
    """Static, read-only settings shared by every pipeline stage."""

    site_name: str = "Art Appraisers Directory"
    base_url: str = "https://art-appraisers-directory.appraisily.com"
    parent_site_url: str = "https://appraisily.com"
    cta_url: str = "https://appraisily.com/start"
    default_image: str = "https://assets.appraisily.com/assets/directory/placeholder.jpg"
    image_host: str = "https://assets.appraisily.com/assets/directory"
    image_generation_url: str = ""
    image_host_rewrites: dict[str, str] = field(default_factory=dict)
    specialty_placeholders: dict[str, str] = field(default_factory=dict)
    legacy_markers: list[str] = field(default_factory=list)
    noindex_locations: list[str] = field(default_factory=list)
    release_root: str = "releases"
    container_name: str = ""
    probe_timeout: float = 5.0
    generation_timeout: float = 20.0
    cache_ttl_hours: float = 24.0

    def __post_init__(self) -> None:
        self.base_url = normalize_base_url(self.base_url)

    @property
    def cache_ttl_seconds(self) -> float:
        return self.cache_ttl_hours * 3600

    def absolute_url(self, path: str = "/") -> str:
        """Absolute URL for a site path, with directory routes ending in '/'."""
        return self.base_url + normalize_route(path)

    def rewrite_image_url(self, url: str) -> str:
        """Map deprecated image hosts onto their current replacement."""
        for old, new in self.image_host_rewrites.items():
            if url.startswith(old):
                return new + url[len(old):]
        return url

    def with_overrides(self, **overrides: Any) -> "SiteConfig":
        clean = {k: v for k, v in overrides.items() if v not in (None, "")}
        return replace(self, **clean) if clean else self


def normalize_base_url(url: str) -> str:
    url = (url or "").strip()
    if not url:
        raise ValueError("base_url must not be empty")
    return url.rstrip("/")


def normalize_route(path: str) -> str:
    """Normalize a site path to its canonical directory-style form.

    ``location/denver`` and ``/location/denver/index.html`` both become
    ``/location/denver/``.  Paths with a file extension (``/sitemap.xml``)
    keep their name.
    """
    p = (path or "").strip().replace("\\", "/")
    if p.endswith("index.html"):
        p = p[: -len("index.html")]
    p = "/" + p.strip("/")
    if p == "/":
        return p
    last = p.rsplit("/", 1)[-1]
    if "." not in last:
        p += "/"
    return p


def load_env_file(path: Path | str | None = None) -> dict[str, str]:
    """Load KEY=VALUE pairs from a .env file (missing file -> empty)."""
    env: dict[str, str] = {}
    env_file = Path(path) if path else Path.cwd() / ".env"
    if not env_file.exists():
        return env
    for line in env_file.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        if "=" in line:
            k, v = line.split("=", 1)
            env[k.strip()] = v.strip().strip('"').strip("'")
    return env


def load_site_config(
    path: Path | str | None = None,
    env: dict[str, str] | None = None,
) -> SiteConfig:
    """Load site.yaml and apply .env and process-environment overrides.

    Precedence, lowest first: dataclass defaults, site.yaml, .env, os.environ.
    Passing *env* explicitly replaces both .env and os.environ (used by tests).
    """
    config_file = Path(path) if path else DEFAULT_CONFIG_FILE
    data: dict[str, Any] = {}
    if config_file.exists():
        data = yaml.safe_load(config_file.read_text()) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{config_file} must contain a mapping")
        log.debug("Loaded site config from %s", config_file)
    else:
        log.warning("Site config %s not found, using defaults", config_file)

    known = set(SiteConfig.__dataclass_fields__)
    unknown = sorted(set(data) - known)
    if unknown:
        log.warning("Ignoring unknown site config keys: %s", ", ".join(unknown))
    values = {k: v for k, v in data.items() if k in known}

    if env is None:
        env = {**load_env_file(), **os.environ}
    for env_key, attr in _ENV_KEYS.items():
        if env_key in env:
            values[attr] = env[env_key]

    return SiteConfig(**values)
