"""
Page Renderer — canonical records -> static HTML documents.

Each page is described by a ``PageDocument`` and rendered through one
Jinja2 template built from the section macros in ``templates/_sections.html``.
``PageDocument`` refuses to exist without a title and a site-absolute
canonical path, and it derives the breadcrumb and FAQ schemas from the same
lists the templates print, so structured data cannot drift from the body.

Rendering is a pure function of the records, the ``SiteConfig`` and the
``AssetManifest``: no clock, no randomness.  Image URLs must already be
resolved (``ImageResolver``) before a listing reaches this module.
"""

from __future__ import annotations

import functools
import json
import logging
import re
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, StrictUndefined
from markupsafe import Markup

from . import schema
from .assets import AssetManifest
from .config import SiteConfig
from .models import ListingRecord, LocationRecord
from .schema import Crumb, FaqItem

log = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent / "templates"

ROBOTS_INDEX = "index, follow"
ROBOTS_NOINDEX = "noindex, follow"

LOCATION_HEADING_PREFIX = "Art Appraisers in "

_DESCRIPTION_LIMIT = 155


def json_ld(obj: Any) -> Markup:
    """Serialize *obj* for a <script type="application/ld+json"> block."""
    blob = json.dumps(obj, ensure_ascii=False, separators=(",", ":")).replace("</", "<\\/")
    return Markup(blob)


def tel_href(phone: str) -> str:
    return re.sub(r"[^\d+]", "", phone or "")


@functools.lru_cache(maxsize=None)
def _env() -> Environment:
    env = Environment(
        loader=FileSystemLoader(str(TEMPLATE_DIR)),
        autoescape=True,
        undefined=StrictUndefined,
        trim_blocks=True,
        lstrip_blocks=True,
    )
    env.filters["json_ld"] = json_ld
    env.filters["tel"] = tel_href
    return env


def _truncate(text: str, limit: int = _DESCRIPTION_LIMIT) -> str:
    text = " ".join((text or "").split())
    if len(text) <= limit:
        return text
    return text[: limit - 3].rsplit(" ", 1)[0].rstrip(",.;:") + "..."


# ---------------------------------------------------------------------------
# Document model
# ---------------------------------------------------------------------------
@dataclass
class PageDocument:
    template: str
    title: str
    description: str
    canonical_path: str
    heading: str
    robots: str = ROBOTS_INDEX
    breadcrumbs: list[Crumb] = field(default_factory=list)
    faq: list[FaqItem] = field(default_factory=list)
    schemas: list[dict[str, Any]] = field(default_factory=list)
    image: str = ""
    context: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.title.strip():
            raise ValueError("page title must not be empty")
        if not self.heading.strip():
            raise ValueError("page heading must not be empty")
        if not self.canonical_path.startswith("/"):
            raise ValueError(f"canonical path must be site-absolute: {self.canonical_path!r}")
        if self.robots not in (ROBOTS_INDEX, ROBOTS_NOINDEX):
            raise ValueError(f"unsupported robots directive: {self.robots!r}")
        self.schemas = [s for s in self.schemas if s]

    def structured_data(self, config: SiteConfig) -> list[dict[str, Any]]:
        out = list(self.schemas)
        if len(self.breadcrumbs) > 1:
            out.append(schema.breadcrumb_schema(self.breadcrumbs, config))
        if self.faq:
            out.append(schema.faq_schema(self.faq))
        return out


def render_document(doc: PageDocument, config: SiteConfig, assets: AssetManifest | None = None) -> str:
    template = _env().get_template(doc.template)
    return template.render(
        doc=doc,
        config=config,
        assets=assets or AssetManifest(),
        canonical_url=config.absolute_url(doc.canonical_path),
        structured_data=doc.structured_data(config),
        **doc.context,
    )


# ---------------------------------------------------------------------------
# Page builders
# ---------------------------------------------------------------------------
def home_document(locations: list[LocationRecord], config: SiteConfig) -> PageDocument:
    ordered = sorted(locations, key=lambda loc: loc.display_name.lower())
    total = sum(len(loc.listings) for loc in ordered)
    return PageDocument(
        template="home.html",
        title=f"Find Art Appraisers Near You | {config.site_name}",
        description=(
            f"Browse {total} art appraisers across {len(ordered)} cities. "
            "Compare specialties, services and reviews."
        ),
        canonical_path="/",
        heading="Find Art Appraisers Near You",
        schemas=[
            schema.website_schema(config),
            schema.item_list_schema([(loc.display_name, loc.path) for loc in ordered], config),
        ],
        context={"locations": ordered, "listing_total": total},
    )


def location_document(location: LocationRecord, config: SiteConfig) -> PageDocument:
    city = location.display_name
    n = len(location.listings)
    if n:
        description = (
            f"Compare {n} art appraiser{'s' if n != 1 else ''} in {city}: "
            "specialties, services, contact details and reviews."
        )
    else:
        description = (
            f"Art appraisal services in {city}. We are onboarding local appraisal "
            "partners; request an online appraisal in the meantime."
        )
    robots = ROBOTS_NOINDEX if location.city_slug in config.noindex_locations else ROBOTS_INDEX
    return PageDocument(
        template="location.html",
        title=f"{LOCATION_HEADING_PREFIX}{city} | {config.site_name}",
        description=_truncate(description),
        canonical_path=location.path,
        heading=f"{LOCATION_HEADING_PREFIX}{city}",
        robots=robots,
        breadcrumbs=schema.breadcrumb_trail(location),
        faq=schema.location_faq(location, config),
        schemas=[
            schema.location_service_schema(location, config),
            schema.item_list_schema(
                [(listing.display_name, listing.path) for listing in location.listings], config,
            ),
        ],
        context={"location": location},
    )


def listing_document(listing: ListingRecord, location: LocationRecord, config: SiteConfig) -> PageDocument:
    name = listing.display_name
    return PageDocument(
        template="listing.html",
        title=f"{name} - Art Appraiser in {location.display_name} | {config.site_name}",
        description=_truncate(listing.content.about or f"{name}, art appraiser in {location.display_name}."),
        canonical_path=listing.path,
        heading=name,
        robots=ROBOTS_INDEX if listing.is_publishable else ROBOTS_NOINDEX,
        breadcrumbs=schema.breadcrumb_trail(location, listing),
        faq=schema.listing_faq(listing, location),
        schemas=[schema.listing_business_schema(listing, location, config)],
        image=listing.image_url or config.default_image,
        context={"listing": listing, "location": location, "contact_fallback": schema.CONTACT_FALLBACK},
    )


def render_home_page(
    locations: list[LocationRecord], config: SiteConfig, assets: AssetManifest | None = None,
) -> str:
    return render_document(home_document(locations, config), config, assets)


def render_location_page(
    location: LocationRecord, config: SiteConfig, assets: AssetManifest | None = None,
) -> str:
    return render_document(location_document(location, config), config, assets)


def render_listing_page(
    listing: ListingRecord,
    location: LocationRecord,
    config: SiteConfig,
    assets: AssetManifest | None = None,
) -> str:
    return render_document(listing_document(listing, location, config), config, assets)


# ---------------------------------------------------------------------------
# Site writer
# ---------------------------------------------------------------------------
@dataclass
class RenderStats:
    home: int = 0
    locations: int = 0
    listings: int = 0
    noindex: int = 0
    empty_locations: int = 0

    @property
    def pages(self) -> int:
        return self.home + self.locations + self.listings

    def to_dict(self) -> dict[str, int]:
        return {
            "pages": self.pages,
            "locations": self.locations,
            "listings": self.listings,
            "noindex": self.noindex,
            "empty_locations": self.empty_locations,
        }


def _write_page(out_dir: Path, path: str, html: str) -> Path:
    target = out_dir / path.strip("/") / "index.html" if path.strip("/") else out_dir / "index.html"
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(html, encoding="utf-8")
    return target


def write_site(
    locations: list[LocationRecord],
    out_dir: Path | str,
    config: SiteConfig,
    assets: AssetManifest | None = None,
) -> RenderStats:
    """Render every page into *out_dir*, replacing earlier location/listing pages."""
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    for section in ("location", "appraiser"):
        if (out_dir / section).exists():
            shutil.rmtree(out_dir / section)

    stats = RenderStats()
    _write_page(out_dir, "/", render_home_page(locations, config, assets))
    stats.home = 1

    for location in locations:
        doc = location_document(location, config)
        _write_page(out_dir, doc.canonical_path, render_document(doc, config, assets))
        stats.locations += 1
        if not location.listings:
            stats.empty_locations += 1
            log.info("Location %s has no appraisers, rendered onboarding page", location.city_slug)
        if doc.robots == ROBOTS_NOINDEX:
            stats.noindex += 1

        for listing in location.listings:
            doc = listing_document(listing, location, config)
            _write_page(out_dir, doc.canonical_path, render_document(doc, config, assets))
            stats.listings += 1
            if doc.robots == ROBOTS_NOINDEX:
                stats.noindex += 1
                log.debug("Listing %s has no contact details, marked noindex", listing.id)

    log.info("Rendered %d pages (%d locations, %d listings, %d noindex)",
             stats.pages, stats.locations, stats.listings, stats.noindex)
    return stats
