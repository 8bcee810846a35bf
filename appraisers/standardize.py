"""
Data Standardizer — raw per-city listing files -> canonical records.

Raw city files are ``{"appraisers": [...]}`` but the records inside are
heterogeneous: fields arrive as scalars or arrays, in snake_case or
camelCase, flat or nested, or not at all.  This module turns each file into
a ``LocationRecord`` whose listings have every field populated.

Anything filled in here instead of read from the raw record is listed in
``metadata.synthesized`` so it can be told apart from (and later replaced
by) authoritative data.  Synthesis is seeded from the city slug and the
listing slug, so two runs over the same input give identical records apart
from a defaulted ``metadata.lastUpdated``.  Contact details are never
invented.

A malformed city file raises ``InputError``; ``standardize_directory`` logs
it, counts it as skipped and carries on with the other cities.
"""

from __future__ import annotations

import hashlib
import json
import logging
import math
import random
import re
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, timedelta
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

from .config import SiteConfig
from .errors import InputError
from .models import (
    Address,
    Business,
    Contact,
    Content,
    Expertise,
    HoursEntry,
    ListingRecord,
    LocationRecord,
    Metadata,
    Review,
)

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Reference tables
# ---------------------------------------------------------------------------
STATE_ZIP_PREFIXES = {
    "AL": "35", "AK": "99", "AZ": "85", "AR": "72", "CA": "90", "CO": "80", "CT": "06",
    "DE": "19", "FL": "32", "GA": "30", "HI": "96", "ID": "83", "IL": "60", "IN": "46",
    "IA": "50", "KS": "66", "KY": "40", "LA": "70", "ME": "04", "MD": "21", "MA": "02",
    "MI": "48", "MN": "55", "MS": "39", "MO": "63", "MT": "59", "NE": "68", "NV": "89",
    "NH": "03", "NJ": "07", "NM": "87", "NY": "10", "NC": "27", "ND": "58", "OH": "44",
    "OK": "73", "OR": "97", "PA": "15", "RI": "02", "SC": "29", "SD": "57", "TN": "37",
    "TX": "75", "UT": "84", "VT": "05", "VA": "22", "WA": "98", "WV": "25", "WI": "53",
    "WY": "82", "DC": "20",
}

STATE_NAMES = {
    "alabama": "AL", "alaska": "AK", "arizona": "AZ", "arkansas": "AR",
    "california": "CA", "colorado": "CO", "connecticut": "CT", "delaware": "DE",
    "florida": "FL", "georgia": "GA", "hawaii": "HI", "idaho": "ID",
    "illinois": "IL", "indiana": "IN", "iowa": "IA", "kansas": "KS",
    "kentucky": "KY", "louisiana": "LA", "maine": "ME", "maryland": "MD",
    "massachusetts": "MA", "michigan": "MI", "minnesota": "MN", "mississippi": "MS",
    "missouri": "MO", "montana": "MT", "nebraska": "NE", "nevada": "NV",
    "new hampshire": "NH", "new jersey": "NJ", "new mexico": "NM", "new york": "NY",
    "north carolina": "NC", "north dakota": "ND", "ohio": "OH", "oklahoma": "OK",
    "oregon": "OR", "pennsylvania": "PA", "rhode island": "RI", "south carolina": "SC",
    "south dakota": "SD", "tennessee": "TN", "texas": "TX", "utah": "UT",
    "vermont": "VT", "virginia": "VA", "washington": "WA", "west virginia": "WV",
    "wisconsin": "WI", "wyoming": "WY", "district of columbia": "DC",
    "washington dc": "DC", "washington d.c.": "DC",
}

_STREET_NUMBERS = ("123", "456", "789", "1010", "2020", "555", "777", "888", "999", "1234")
_STREET_NAMES = (
    "Main St", "Oak Ave", "Maple Dr", "Pine Ln", "Cedar Blvd", "Elm St",
    "Washington Ave", "Lincoln Rd", "Park Ave", "Gallery Row", "Museum Way",
)

_HOURS_TEMPLATES = (
    (("Monday-Friday", "9:00 AM - 5:00 PM"), ("Saturday", "By appointment"), ("Sunday", "Closed")),
    (("Tuesday-Saturday", "10:00 AM - 6:00 PM"), ("Sunday-Monday", "Closed")),
    (("Monday-Thursday", "9:00 AM - 4:00 PM"), ("Friday", "9:00 AM - 3:00 PM"),
     ("Saturday-Sunday", "By appointment only")),
    (("Monday-Friday", "By appointment only"),),
)

_FIRST_NAMES = (
    "James", "Robert", "John", "Michael", "David", "Emily", "Sarah", "Jennifer",
    "Patricia", "Linda", "Elizabeth", "Susan", "Jessica", "Karen", "Nancy",
)
_LAST_INITIALS = "SJWBMDTCRAL"

_POSITIVE_PHRASES = (
    "Provided an incredibly thorough appraisal of my collection. Their knowledge of the market is impressive.",
    "Extremely professional and knowledgeable. The appraisal was detailed and delivered on time.",
    "I needed an appraisal for a charitable donation and every tax requirement was met.",
    "They took the time to explain the valuation process and answered all my questions.",
    "Very responsive and easy to work with. The report was comprehensive and well documented.",
    "Excellent service from start to finish. I would use them again for any appraisal need.",
)
_MIXED_PHRASES = (
    "Good service overall, though the turnaround time was longer than expected.",
    "The appraisal was thorough, but pricing was a bit high compared to others.",
    "Knowledgeable team, though communication could have been better during the process.",
)

_PHONE_PLACEHOLDERS = {"contact via website", "n/a", "na", "none", "-", "tbd", "unknown"}

SYNTHESIZED_REVIEW_COUNT = 3
# Synthesized review dates count back from here unless the record carries
# its own lastUpdated date.
REVIEW_DATE_ANCHOR = date(2025, 1, 1)

# ---------------------------------------------------------------------------
# Slugs
# ---------------------------------------------------------------------------
_SLUG_STRIP_RE = re.compile(r"[^\w\s-]")
_WS_RE = re.compile(r"\s+")
_DASHES_RE = re.compile(r"-{2,}")


def slugify(text: str) -> str:
    """Lowercase, drop punctuation, whitespace runs -> '-'."""
    s = _SLUG_STRIP_RE.sub("", (text or "").lower().strip())
    s = _WS_RE.sub("-", s)
    return _DASHES_RE.sub("-", s).strip("-")


def assign_unique_slugs(bases: list[str], taken: set[str] | None = None) -> list[str]:
    """Suffix repeated slugs with -2, -3, ... in input order."""
    seen: set[str] = taken if taken is not None else set()
    out: list[str] = []
    for base in bases:
        slug = base or "appraiser"
        if slug in seen:
            counter = 2
            while f"{slug}-{counter}" in seen:
                counter += 1
            slug = f"{slug}-{counter}"
        seen.add(slug)
        out.append(slug)
    return out


def _rng_for(city_slug: str, slug: str) -> random.Random:
    digest = hashlib.sha256(f"{city_slug}|{slug}".encode()).hexdigest()
    return random.Random(int(digest[:16], 16))


# ---------------------------------------------------------------------------
# Field coercion helpers
# ---------------------------------------------------------------------------
def _first(raw: dict, *keys: str) -> Any:
    """First non-empty value among dotted *keys* (e.g. 'contact.phone')."""
    for key in keys:
        cur: Any = raw
        for part in key.split("."):
            if not isinstance(cur, dict):
                cur = None
                break
            cur = cur.get(part)
        if cur not in (None, "", [], {}):
            return cur
    return None


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return ", ".join(_text(v) for v in value if _text(v))
    return _WS_RE.sub(" ", str(value)).strip()


def _as_list(value: Any) -> list[str]:
    """Scalar or list -> de-duplicated list, first-seen order kept."""
    if value is None:
        return []
    items = value if isinstance(value, (list, tuple)) else [value]
    out: list[str] = []
    seen: set[str] = set()
    for item in items:
        text = _text(item)
        if text and text.lower() not in seen:
            seen.add(text.lower())
            out.append(text)
    return out


def _as_float(value: Any) -> float | None:
    """Number or numeric text -> finite float; NaN, infinities and junk -> None."""
    if isinstance(value, bool):
        return None
    f: float | None = None
    if isinstance(value, (int, float)):
        try:
            f = float(value)
        except OverflowError:
            return None
    elif isinstance(value, str):
        m = re.search(r"\d+(?:\.\d+)?", value)
        if m:
            f = float(m.group())
    if f is None or not math.isfinite(f):
        return None
    return f


def _as_int(value: Any) -> int | None:
    f = _as_float(value)
    return int(f) if f is not None else None


def _clamp_rating(value: float) -> float:
    return round(min(5.0, max(0.0, value)), 1)


def _iso_date(value: Any) -> str:
    text = _text(value)[:10]
    try:
        return date.fromisoformat(text).isoformat()
    except ValueError:
        return ""


def normalize_state(value: Any) -> str:
    text = _text(value)
    if not text:
        return ""
    if len(text) == 2 and text.upper() in STATE_ZIP_PREFIXES:
        return text.upper()
    return STATE_NAMES.get(text.lower().rstrip("."), text)


def normalize_phone(value: Any) -> str:
    phone = _text(value)
    if phone.lower() in _PHONE_PLACEHOLDERS or not re.search(r"\d{3}", phone):
        return ""
    return phone


def normalize_email(value: Any) -> str:
    email = _text(value)
    if re.fullmatch(r"[^@\s]+@[^@\s]+\.[^@\s]+", email):
        return email
    return ""


def normalize_website(value: Any) -> str:
    url = _text(value)
    if not url or " " in url:
        return ""
    if not re.match(r"^https?://", url, re.I):
        url = f"https://{url.lstrip('/')}"
    parsed = urlparse(url)
    if not parsed.netloc or "." not in parsed.netloc:
        return ""
    return url


# ---------------------------------------------------------------------------
# Address decomposition
# ---------------------------------------------------------------------------
_STATE_ZIP_RE = re.compile(r"^(?P<state>[A-Za-z][A-Za-z .]*?)\s*(?P<zip>\d{5}(?:-\d{4})?)?$")


def parse_address_string(text: str) -> dict[str, str]:
    """Split '123 Main St, Denver, CO 80202' style strings into parts."""
    out = {"street": "", "city": "", "state": "", "zip": ""}
    parts = [p.strip() for p in (text or "").split(",") if p.strip()]
    if not parts:
        return out

    if len(parts) >= 2:
        m = _STATE_ZIP_RE.match(parts[-1])
        state = normalize_state(m.group("state")) if m else ""
        if m and state in STATE_ZIP_PREFIXES:
            out["state"] = state
            out["zip"] = m.group("zip") or ""
            parts = parts[:-1]
        elif parts[-1].upper() in ("USA", "US", "UNITED STATES"):
            return parse_address_string(", ".join(parts[:-1]))

    if len(parts) == 1:
        if re.match(r"^\d", parts[0]):
            out["street"] = parts[0]
        else:
            out["city"] = parts[0]
    else:
        out["city"] = parts[-1]
        out["street"] = ", ".join(parts[:-1])
    return out


def _raw_address(raw: dict) -> dict[str, str]:
    value = raw.get("address")
    if isinstance(value, dict):
        parts = {
            "street": _text(_first(value, "street", "streetAddress", "line1")),
            "city": _text(_first(value, "city", "addressLocality")),
            "state": normalize_state(_first(value, "state", "addressRegion")),
            "zip": _text(_first(value, "zip", "postalCode", "zipCode")),
        }
        if not any(parts.values()) and value.get("formatted"):
            parts = parse_address_string(_text(value["formatted"]))
    else:
        parts = parse_address_string(_text(value))
    for key, aliases in (
        ("street", ("street", "streetAddress", "street_address")),
        ("city", ("city",)),
        ("state", ("state",)),
        ("zip", ("zip", "zipCode", "zip_code", "postalCode", "postal_code")),
    ):
        if not parts[key]:
            parts[key] = _text(_first(raw, *aliases))
    parts["state"] = normalize_state(parts["state"])
    return parts


# ---------------------------------------------------------------------------
# Synthesis (fallback-generated content)
# ---------------------------------------------------------------------------
def _synth_street(rng: random.Random) -> str:
    return f"{rng.choice(_STREET_NUMBERS)} {rng.choice(_STREET_NAMES)}"


def _synth_zip(rng: random.Random, state: str) -> str:
    prefix = STATE_ZIP_PREFIXES.get(state)
    if prefix:
        return f"{prefix}{rng.randint(100, 999)}"
    return str(rng.randint(10000, 99999))


def _synth_hours(rng: random.Random) -> list[HoursEntry]:
    return [HoursEntry(day, hours) for day, hours in rng.choice(_HOURS_TEMPLATES)]


def _synth_reviews(rng: random.Random, rating: float, anchor: date) -> list[Review]:
    # Phrases are drawn without replacement so one listing never repeats itself.
    positive = list(_POSITIVE_PHRASES)
    mixed = list(_MIXED_PHRASES)
    rng.shuffle(positive)
    rng.shuffle(mixed)
    reviews: list[Review] = []
    for _ in range(SYNTHESIZED_REVIEW_COUNT):
        r = rng.random()
        if r < 0.7:
            value = rating + (rng.random() - 0.5)
        elif r < 0.9:
            value = rating
        else:
            value = float(rng.randint(1, 5))
        value = min(5.0, max(1.0, round(value * 2) / 2))
        pool = positive if value >= 4 and positive else (mixed or positive)
        content = pool.pop()
        author = f"{rng.choice(_FIRST_NAMES)} {rng.choice(_LAST_INITIALS)}."
        when = anchor - timedelta(days=rng.randint(0, 364))
        reviews.append(Review(author=author, rating=value, date=when.isoformat(), content=content))
    reviews.sort(key=lambda rv: rv.date, reverse=True)
    return reviews


def _parse_hours(value: Any) -> list[HoursEntry]:
    if isinstance(value, dict):
        return [HoursEntry(_text(k), _text(v)) for k, v in value.items() if _text(k) and _text(v)]
    if isinstance(value, list):
        out = []
        for item in value:
            if isinstance(item, dict):
                day = _text(_first(item, "day", "days", "dayOfWeek"))
                hours = _text(_first(item, "hours", "time", "open"))
                if day and hours:
                    out.append(HoursEntry(day, hours))
            elif _text(item):
                out.append(HoursEntry("Hours", _text(item)))
        return out
    if _text(value):
        return [HoursEntry("Hours", _text(value))]
    return []


def _parse_reviews(value: Any) -> list[Review]:
    if not isinstance(value, list):
        return []
    out: list[Review] = []
    for item in value:
        if not isinstance(item, dict):
            continue
        content = _text(_first(item, "content", "text", "comment", "reviewBody"))
        if not content:
            continue
        rating = _as_float(_first(item, "rating", "stars"))
        out.append(Review(
            author=_text(_first(item, "author", "name", "reviewer")) or "Anonymous",
            rating=_clamp_rating(rating) if rating is not None else 0.0,
            date=_iso_date(_first(item, "date", "datePublished", "time")),
            content=content,
        ))
    # Most recent first; undated reviews go last, input order kept among equals.
    out.sort(key=lambda rv: rv.date or "", reverse=True)
    return out


# ---------------------------------------------------------------------------
# Listing / location standardization
# ---------------------------------------------------------------------------
def standardize_listing(
    raw: dict,
    *,
    listing_id: str,
    slug: str,
    city_slug: str,
    city_name: str,
    state: str,
    today: date,
    config: SiteConfig | None = None,
) -> ListingRecord:
    """Map one raw record onto the canonical shape, synthesizing gaps."""
    rng = _rng_for(city_slug, slug)
    # Markers from an earlier pass survive re-standardization.
    synthesized: list[str] = _as_list(_first(raw, "metadata.synthesized"))
    name = _text(_first(raw, "name", "business_name", "businessName"))
    business_name = _text(_first(raw, "businessName", "business_name"))
    if business_name == name:
        business_name = ""

    # Address
    parts = _raw_address(raw)
    addr_state = parts["state"] or state
    addr = Address(
        street=parts["street"],
        city=parts["city"] or city_name,
        state=addr_state,
        zip=parts["zip"],
    )
    if not addr.street:
        addr.street = _synth_street(rng)
        synthesized.append("address.street")
    if not parts["city"]:
        synthesized.append("address.city")
    if not parts["state"]:
        synthesized.append("address.state")
    if not addr.zip:
        addr.zip = _synth_zip(rng, addr.state)
        synthesized.append("address.zip")

    contact = Contact(
        phone=normalize_phone(_first(raw, "contact.phone", "phone", "telephone")),
        email=normalize_email(_first(raw, "contact.email", "email")),
        website=normalize_website(_first(raw, "contact.website", "website", "url")),
    )

    # Business
    rating = _as_float(_first(raw, "business.rating", "rating"))
    if rating is None:
        rating = rng.randint(40, 49) / 10
        synthesized.append("business.rating")
    rating = _clamp_rating(rating)

    review_count = _as_int(_first(raw, "business.reviewCount", "reviewCount", "review_count", "reviews_count"))
    if review_count is None:
        review_count = rng.randint(5, 24)
        synthesized.append("business.reviewCount")
    review_count = max(0, review_count)

    years = _first(raw, "business.yearsInBusiness", "yearsInBusiness", "years_in_business")
    if isinstance(years, (int, float)) and not isinstance(years, bool):
        years_num = _as_int(years)
        years_text = f"{years_num}+ years" if years_num is not None else ""
    else:
        years_text = _text(years)
    if not years_text:
        years_text = f"{rng.randint(5, 19)}+ years"
        synthesized.append("business.yearsInBusiness")

    hours = _parse_hours(_first(raw, "business.hours", "hours", "business_hours", "businessHours"))
    if not hours:
        hours = _synth_hours(rng)
        synthesized.append("business.hours")

    pricing = _text(_first(raw, "business.pricing", "pricing", "price_range", "priceRange"))
    if not pricing:
        pricing = "Contact for pricing information"
        synthesized.append("business.pricing")

    # Expertise
    specialties = _as_list(_first(raw, "expertise.specialties", "specialties", "specialty"))
    if not specialties:
        specialties = ["Fine Art"]
        synthesized.append("expertise.specialties")
    certifications = _as_list(_first(raw, "expertise.certifications", "certifications"))
    if not certifications:
        certifications = ["Professional Appraiser"]
        synthesized.append("expertise.certifications")
    services = _as_list(_first(raw, "expertise.services", "services", "services_offered", "servicesOffered"))
    if not services:
        services = ["Art appraisal services"]
        synthesized.append("expertise.services")

    # Content
    about = _text(_first(raw, "content.about", "about", "description"))
    if not about:
        about = (
            f"{name} provides professional art appraisal services in {city_name} "
            f"specializing in {', '.join(specialties)}. Valuations are available for "
            f"insurance, estate planning, charitable donations and resale."
        )
        synthesized.append("content.about")
    notes = _text(_first(raw, "content.notes", "notes"))

    raw_updated = _iso_date(_first(raw, "metadata.lastUpdated", "lastUpdated", "last_updated"))
    reviews = _parse_reviews(_first(raw, "reviews"))
    if not reviews:
        anchor = date.fromisoformat(raw_updated) if raw_updated else REVIEW_DATE_ANCHOR
        reviews = _synth_reviews(rng, rating, anchor)
        synthesized.append("reviews")

    in_service = _first(raw, "metadata.inService", "inService", "in_service")
    last_updated = raw_updated or today.isoformat()

    image = _text(_first(raw, "imageUrl", "image", "image_url"))
    if config is not None:
        image = config.rewrite_image_url(image)

    return ListingRecord(
        id=listing_id,
        name=name,
        slug=slug,
        image_url=image,
        business_name=business_name,
        address=addr,
        contact=contact,
        business=Business(
            years_in_business=years_text,
            hours=hours,
            pricing=pricing,
            rating=rating,
            review_count=review_count,
        ),
        expertise=Expertise(specialties=specialties, certifications=certifications, services=services),
        content=Content(about=about, notes=notes),
        reviews=reviews,
        metadata=Metadata(
            last_updated=last_updated,
            in_service=in_service if isinstance(in_service, bool) else True,
            synthesized=list(dict.fromkeys(synthesized)),
        ),
    )


def title_case_slug(slug: str) -> str:
    return " ".join(part.capitalize() for part in slug.split("-") if part)


def load_city_index(path: Path | str | None) -> dict[str, dict[str, str]]:
    """Read cities.json ({"cities": [{slug, name, state}]}) -> {slug: meta}."""
    if not path:
        return {}
    p = Path(path)
    if not p.exists():
        log.warning("City index %s not found, deriving city names from slugs", p)
        return {}
    data = json.loads(p.read_text(encoding="utf-8"))
    cities = data.get("cities", []) if isinstance(data, dict) else data
    index: dict[str, dict[str, str]] = {}
    for city in cities if isinstance(cities, list) else []:
        if isinstance(city, dict) and city.get("slug"):
            index[str(city["slug"])] = {
                "name": _text(city.get("name")),
                "state": normalize_state(city.get("state")),
            }
    return index


def _infer_city(raws: list[dict], city_slug: str, meta: dict[str, str]) -> tuple[str, str]:
    if meta.get("name"):
        return meta["name"], meta.get("state", "")
    cities: Counter[str] = Counter()
    states: Counter[str] = Counter()
    for raw in raws:
        parts = _raw_address(raw)
        if parts["city"]:
            cities[parts["city"]] += 1
        if parts["state"]:
            states[parts["state"]] += 1
    name = cities.most_common(1)[0][0] if cities else title_case_slug(city_slug)
    state = meta.get("state") or (states.most_common(1)[0][0] if states else "")
    return name, state


def standardize_location(
    path: Path | str,
    *,
    city_index: dict[str, dict[str, str]] | None = None,
    today: date | None = None,
    config: SiteConfig | None = None,
    taken_ids: set[str] | None = None,
) -> LocationRecord:
    """Read one raw city file.  Raises InputError if it is unusable."""
    path = Path(path)
    city_slug = path.stem
    today = today or date.today()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise InputError(f"{path.name}: {exc}") from exc
    if not isinstance(data, dict) or not isinstance(data.get("appraisers"), list):
        raise InputError(f"{path.name}: expected an object with an 'appraisers' list")

    raws: list[dict] = []
    for i, raw in enumerate(data["appraisers"]):
        if not isinstance(raw, dict):
            log.warning("%s: entry %d is not an object, skipping", path.name, i)
            continue
        if not _text(_first(raw, "name", "business_name", "businessName")):
            log.warning("%s: entry %d has no name, skipping", path.name, i)
            continue
        raws.append(raw)

    meta = (city_index or {}).get(city_slug, {})
    city_name, state = _infer_city(raws, city_slug, meta)
    state = normalize_state(data.get("state")) or state
    city_name = _text(data.get("cityName")) or city_name

    slugs = assign_unique_slugs(
        [slugify(_text(_first(r, "name", "business_name", "businessName"))) for r in raws]
    )
    id_bases = []
    for raw, slug in zip(raws, slugs):
        raw_id = slugify(_text(raw.get("id")))
        id_bases.append(raw_id or f"{slug}-{city_slug}")
    ids = assign_unique_slugs(id_bases, taken_ids)

    try:
        listings = [
            standardize_listing(
                raw,
                listing_id=listing_id,
                slug=slug,
                city_slug=city_slug,
                city_name=city_name,
                state=state,
                today=today,
                config=config,
            )
            for raw, slug, listing_id in zip(raws, slugs, ids)
        ]
    except (ValueError, TypeError, OverflowError) as exc:
        raise InputError(f"{path.name}: {exc}") from exc
    return LocationRecord(city_slug=city_slug, city_name=city_name, state=state, listings=listings)


@dataclass
class StandardizeResult:
    locations: list[LocationRecord] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    @property
    def files_processed(self) -> int:
        return len(self.locations) + len(self.skipped)

    @property
    def listing_count(self) -> int:
        return sum(len(loc.listings) for loc in self.locations)


def list_city_files(data_dir: Path | str) -> list[Path]:
    data_dir = Path(data_dir)
    return sorted(
        p for p in data_dir.glob("*.json")
        if not p.name.startswith((".", "_"))
        and p.name != "cities.json"
        and "copy" not in p.stem
        and "lifecycle" not in p.stem
    )


def standardize_directory(
    data_dir: Path | str,
    *,
    city_index: dict[str, dict[str, str]] | None = None,
    today: date | None = None,
    config: SiteConfig | None = None,
) -> StandardizeResult:
    """Standardize every city file; malformed files are skipped, not fatal."""
    result = StandardizeResult()
    taken_ids: set[str] = set()
    files = list_city_files(data_dir)
    log.info("Found %d city files in %s", len(files), data_dir)
    for path in files:
        try:
            location = standardize_location(
                path, city_index=city_index, today=today, config=config, taken_ids=taken_ids,
            )
        except InputError as exc:
            log.error("Skipping city file %s", exc)
            result.skipped.append(path.name)
            continue
        result.locations.append(location)
        log.info("Standardized %s: %d appraisers", location.city_slug, len(location.listings))
    log.info("Standardized %d appraisers across %d cities (%d files skipped)",
             result.listing_count, len(result.locations), len(result.skipped))
    return result


def write_standardized(locations: list[LocationRecord], out_dir: Path | str) -> list[Path]:
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    written = []
    for location in locations:
        out = out_dir / f"{location.city_slug}.json"
        out.write_text(json.dumps(location.to_dict(), indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
        written.append(out)
    log.info("Wrote %d standardized city files to %s", len(written), out_dir)
    return written
