"""
Sitemap / Hub Builder — works from the rendered output tree, not the data.

Walking the HTML that will actually ship means the sitemap can only list
pages that exist, and a page's own ``<meta name="robots">`` decides whether
it belongs in search indexes.  ``regenerate`` runs the whole step:

    1. hub pages   location/index.html and appraiser/index.html
    2. sitemap.xml home first at priority 1.0, the rest sorted by URL
    3. robots.txt  pointing at the sitemap

Pages marked ``noindex`` or carrying a ``http-equiv="refresh"`` redirect are
left out of the sitemap entirely.  A tree with no HTML at all is a fatal
``SitemapError``.
"""

from __future__ import annotations

import html
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from html.parser import HTMLParser
from pathlib import Path

from .assets import AssetManifest
from .config import SiteConfig, normalize_route
from .errors import SitemapError
from .render import LOCATION_HEADING_PREFIX, PageDocument, render_document
from .schema import Crumb

log = logging.getLogger(__name__)

SKIP_DIRS = {"css", "js", "fonts", "images", "assets", "_templates", "tmp", "temp", "node_modules"}
SKIP_FILES = {"404.html"}

HOME_PRIORITY = "1.0"
PAGE_PRIORITY = "0.8"
CHANGEFREQ = "weekly"


# ---------------------------------------------------------------------------
# Page inspection
# ---------------------------------------------------------------------------
class _PageScanner(HTMLParser):
    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.h1 = ""
        self.title = ""
        self.robots = ""
        self.refresh = False
        self._capture: str | None = None
        self._buf: list[str] = []

    def handle_starttag(self, tag: str, attrs):
        tag = tag.lower()
        attrs_dict = {str(k).lower(): str(v or "") for k, v in attrs if k}
        if tag == "meta":
            name = attrs_dict.get("name", "").lower()
            if name == "robots" and not self.robots:
                self.robots = attrs_dict.get("content", "").strip()
            if attrs_dict.get("http-equiv", "").lower() == "refresh":
                self.refresh = True
        elif tag in ("title", "h1") and self._capture is None:
            if (tag == "title" and not self.title) or (tag == "h1" and not self.h1):
                self._capture = tag
                self._buf = []

    def handle_data(self, data: str):
        if self._capture:
            self._buf.append(data)

    def handle_endtag(self, tag: str):
        if self._capture and tag.lower() == self._capture:
            text = " ".join("".join(self._buf).split())
            setattr(self, self._capture, text)
            self._capture = None


@dataclass
class PageInfo:
    h1: str = ""
    title: str = ""
    robots: str = ""
    refresh: bool = False

    @property
    def label(self) -> str:
        return self.h1 or self.title

    @property
    def noindex(self) -> bool:
        return "noindex" in self.robots.lower()

    @property
    def indexable(self) -> bool:
        return not (self.noindex or self.refresh)


def scan_html(text: str) -> PageInfo:
    scanner = _PageScanner()
    scanner.feed(text)
    scanner.close()
    return PageInfo(h1=scanner.h1, title=scanner.title, robots=scanner.robots, refresh=scanner.refresh)


def scan_page(path: Path | str) -> PageInfo:
    return scan_html(Path(path).read_text(encoding="utf-8", errors="replace"))


def canonical_url(rel_path: str, base_url: str) -> str:
    """``location/denver/index.html`` -> ``<base>/location/denver/``."""
    return base_url.rstrip("/") + normalize_route(rel_path)


def iter_html_files(public_dir: Path | str) -> list[Path]:
    """Every *.html under *public_dir*, minus hidden/asset dirs, sorted."""
    root = Path(public_dir)
    found: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if not d.startswith(".") and d not in SKIP_DIRS)
        for name in sorted(filenames):
            if name.endswith(".html") and name not in SKIP_FILES and not name.startswith("."):
                found.append(Path(dirpath) / name)
    return found


@dataclass
class DiscoveredPage:
    path: Path
    rel_path: str
    url: str
    info: PageInfo


def discover_pages(public_dir: Path | str, base_url: str) -> tuple[list[DiscoveredPage], list[DiscoveredPage]]:
    """Split the tree into (indexable, excluded) pages."""
    root = Path(public_dir)
    included: list[DiscoveredPage] = []
    excluded: list[DiscoveredPage] = []
    for path in iter_html_files(root):
        rel = path.relative_to(root).as_posix()
        page = DiscoveredPage(path, rel, canonical_url(rel, base_url), scan_page(path))
        if page.info.indexable:
            included.append(page)
        else:
            excluded.append(page)
            log.debug("Excluded from sitemap: %s (%s)", rel, "redirect" if page.info.refresh else "noindex")
    return included, excluded


# ---------------------------------------------------------------------------
# Hubs
# ---------------------------------------------------------------------------
@dataclass
class HubEntry:
    slug: str
    label: str
    path: str


HUBS = {
    "location": {
        "title": "All Locations",
        "description": "Every city in the art appraiser directory.",
        "strip_prefix": LOCATION_HEADING_PREFIX,
    },
    "appraiser": {
        "title": "All Art Appraisers",
        "description": "Every art appraiser profile in the directory.",
        "strip_prefix": "",
    },
}


def collect_hub_entries(public_dir: Path | str, section: str, strip_prefix: str = "") -> list[HubEntry]:
    """One entry per ``<section>/<slug>/index.html``, sorted by slug."""
    section_dir = Path(public_dir) / section
    if not section_dir.is_dir():
        return []
    entries: list[HubEntry] = []
    for child in sorted(section_dir.iterdir(), key=lambda p: p.name):
        page = child / "index.html"
        if not child.is_dir() or child.name.startswith(".") or not page.exists():
            continue
        info = scan_page(page)
        if info.refresh:
            continue
        label = info.label or child.name
        if strip_prefix and label.startswith(strip_prefix):
            label = label[len(strip_prefix):]
        label = label.split(" | ")[0].strip() or child.name
        entries.append(HubEntry(child.name, label, f"/{section}/{child.name}/"))
    return entries


def build_hubs(
    public_dir: Path | str,
    config: SiteConfig,
    assets: AssetManifest | None = None,
) -> dict[str, int]:
    """Write both hub pages; returns entry counts per section."""
    root = Path(public_dir)
    counts: dict[str, int] = {}
    for section, hub in HUBS.items():
        entries = collect_hub_entries(root, section, hub["strip_prefix"])
        doc = PageDocument(
            template="hub.html",
            title=f"{hub['title']} | {config.site_name}",
            description=hub["description"],
            canonical_path=f"/{section}/",
            heading=hub["title"],
            breadcrumbs=[Crumb("Home", "/"), Crumb(hub["title"], f"/{section}/")],
            context={"entries": entries},
        )
        out = root / section / "index.html"
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(render_document(doc, config, assets), encoding="utf-8")
        counts[section] = len(entries)
        log.info("Hub /%s/: %d entries", section, len(entries))
    return counts


# ---------------------------------------------------------------------------
# sitemap.xml / robots.txt
# ---------------------------------------------------------------------------
@dataclass
class SitemapEntry:
    loc: str
    lastmod: str
    priority: str = PAGE_PRIORITY
    changefreq: str = CHANGEFREQ

    def to_xml(self) -> str:
        return (
            "  <url>\n"
            f"    <loc>{html.escape(self.loc)}</loc>\n"
            f"    <lastmod>{html.escape(self.lastmod)}</lastmod>\n"
            f"    <changefreq>{self.changefreq}</changefreq>\n"
            f"    <priority>{self.priority}</priority>\n"
            "  </url>"
        )


def _lastmod(path: Path) -> str:
    mtime = path.stat().st_mtime
    return datetime.fromtimestamp(mtime, tz=timezone.utc).isoformat(timespec="seconds")


def sitemap_entries(pages: list[DiscoveredPage], base_url: str) -> list[SitemapEntry]:
    """Home pinned first at 1.0, everything else unique and sorted by loc."""
    home_url = canonical_url("/", base_url)
    by_loc: dict[str, SitemapEntry] = {}
    for page in pages:
        if page.url not in by_loc:
            by_loc[page.url] = SitemapEntry(page.url, _lastmod(page.path))
    home = by_loc.pop(home_url, None)
    if home is None:
        home = SitemapEntry(home_url, datetime.now(timezone.utc).isoformat(timespec="seconds"))
    home.priority = HOME_PRIORITY
    return [home] + [by_loc[loc] for loc in sorted(by_loc)]


def render_sitemap(entries: list[SitemapEntry]) -> str:
    body = "\n".join(e.to_xml() for e in entries)
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">\n'
        f"{body}\n"
        "</urlset>\n"
    )


def build_sitemap(public_dir: Path | str, base_url: str) -> tuple[list[SitemapEntry], int]:
    """Write sitemap.xml; returns (entries, excluded page count)."""
    root = Path(public_dir)
    if not root.is_dir():
        raise SitemapError(f"public directory {root} does not exist")
    included, excluded = discover_pages(root, base_url)
    if not included and not excluded:
        raise SitemapError(f"no HTML files found under {root}; refusing to write an empty sitemap")
    entries = sitemap_entries(included, base_url)
    (root / "sitemap.xml").write_text(render_sitemap(entries), encoding="utf-8")
    log.info("sitemap.xml: %d URLs (%d pages excluded)", len(entries), len(excluded))
    return entries, len(excluded)


def write_robots(public_dir: Path | str, base_url: str) -> Path:
    out = Path(public_dir) / "robots.txt"
    out.write_text(
        "\n".join([
            "User-agent: *",
            "Allow: /",
            f"Sitemap: {base_url.rstrip('/')}/sitemap.xml",
            "",
        ]),
        encoding="utf-8",
    )
    return out


@dataclass
class SitemapResult:
    urls: int = 0
    excluded: int = 0
    hubs: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"sitemap_urls": self.urls, "excluded_pages": self.excluded, "hubs": dict(self.hubs)}


def regenerate(
    public_dir: Path | str,
    config: SiteConfig,
    assets: AssetManifest | None = None,
) -> SitemapResult:
    root = Path(public_dir)
    if not iter_html_files(root):
        raise SitemapError(f"no HTML files found under {root}; refusing to write an empty sitemap")
    hubs = build_hubs(root, config, assets)
    entries, excluded = build_sitemap(root, config.base_url)
    write_robots(root, config.base_url)
    return SitemapResult(urls=len(entries), excluded=excluded, hubs=hubs)
