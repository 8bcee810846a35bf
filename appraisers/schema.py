"""
JSON-LD builders for directory pages.

Every value placed in a schema object here is also shown in the visible page
body: templates render the same ``Crumb`` and ``FaqItem`` lists that feed
``BreadcrumbList`` and ``FAQPage``, and the business schema only carries
fields the listing template prints.  Fallback-generated values (see
``metadata.synthesized``) are kept out of structured data entirely: no
synthesized street or ZIP in ``PostalAddress``, no synthesized ratings or
reviews.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .config import SiteConfig
from .models import Address, ListingRecord, LocationRecord

CONTEXT = "https://schema.org"

CONTACT_FALLBACK = "Visit their profile for contact details."


@dataclass(frozen=True)
class Crumb:
    name: str
    path: str


@dataclass(frozen=True)
class FaqItem:
    question: str
    answer: str


# ---------------------------------------------------------------------------
# Breadcrumbs
# ---------------------------------------------------------------------------
def breadcrumb_trail(
    location: LocationRecord | None = None,
    listing: ListingRecord | None = None,
) -> list[Crumb]:
    """Home -> City (-> Listing)."""
    trail = [Crumb("Home", "/")]
    if location is not None:
        trail.append(Crumb(location.display_name, location.path))
    if listing is not None:
        trail.append(Crumb(listing.display_name, listing.path))
    return trail


def breadcrumb_schema(trail: list[Crumb], config: SiteConfig) -> dict[str, Any]:
    return {
        "@context": CONTEXT,
        "@type": "BreadcrumbList",
        "itemListElement": [
            {
                "@type": "ListItem",
                "position": i,
                "name": crumb.name,
                "item": config.absolute_url(crumb.path),
            }
            for i, crumb in enumerate(trail, start=1)
        ],
    }


# ---------------------------------------------------------------------------
# FAQ
# ---------------------------------------------------------------------------
def _join(items: list[str]) -> str:
    if len(items) <= 1:
        return "".join(items)
    return ", ".join(items[:-1]) + " and " + items[-1]


def contact_answer(listing: ListingRecord) -> str:
    ways = []
    if listing.contact.phone:
        ways.append(f"call {listing.contact.phone}")
    if listing.contact.email:
        ways.append(f"email {listing.contact.email}")
    if listing.contact.website:
        ways.append(f"visit {listing.contact.website}")
    if not ways:
        return CONTACT_FALLBACK
    sentence = _join(ways)
    return f"You can {sentence}."


def listing_faq(listing: ListingRecord, location: LocationRecord) -> list[FaqItem]:
    name = listing.display_name
    items = []
    if listing.expertise.services:
        items.append(FaqItem(
            f"What services does {name} offer?",
            f"{name} offers {_join(listing.expertise.services)}.",
        ))
    if listing.expertise.specialties:
        items.append(FaqItem(
            f"What does {name} specialize in?",
            f"{name} specializes in {_join(listing.expertise.specialties)}.",
        ))
    items.append(FaqItem(f"How can I contact {name}?", contact_answer(listing)))
    items.append(FaqItem(
        f"Where is {name} located?",
        f"{name} serves clients in {location.display_name}.",
    ))
    return items


def location_faq(location: LocationRecord, config: SiteConfig) -> list[FaqItem]:
    city = location.display_name
    n = len(location.listings)
    if n:
        listed = f"This directory lists {n} art appraiser{'s' if n != 1 else ''} serving {city}."
    else:
        listed = (
            f"We are onboarding art appraisal partners near {city}. "
            f"In the meantime you can request an online appraisal from {config.site_name}."
        )
    return [
        FaqItem(f"How many art appraisers are listed in {city}?", listed),
        FaqItem(
            f"How much does an art appraisal cost in {city}?",
            "Fees depend on the appraiser and the number and type of items. "
            "Most appraisers quote a flat or hourly fee after a short consultation.",
        ),
        FaqItem(
            f"How do I choose an art appraiser in {city}?",
            "Look for professional credentials, experience with your kind of artwork "
            "and a written report that meets the needs of your insurer, estate or donation.",
        ),
        FaqItem(
            "Can I get an art appraisal online?",
            "Yes. Many appraisers review photographs and documentation remotely, "
            "which is often faster and less expensive than an in-person visit.",
        ),
    ]


def faq_schema(items: list[FaqItem]) -> dict[str, Any]:
    return {
        "@context": CONTEXT,
        "@type": "FAQPage",
        "mainEntity": [
            {
                "@type": "Question",
                "name": item.question,
                "acceptedAnswer": {"@type": "Answer", "text": item.answer},
            }
            for item in items
        ],
    }


# ---------------------------------------------------------------------------
# Business / service / lists
# ---------------------------------------------------------------------------
def postal_address(address: Address, listing: ListingRecord | None = None) -> dict[str, Any]:
    """PostalAddress holding only authoritative parts of *address*."""
    def known(part: str) -> bool:
        return listing is None or not listing.is_synthesized(f"address.{part}")

    out: dict[str, Any] = {"@type": "PostalAddress"}
    if address.street and known("street"):
        out["streetAddress"] = address.street
    if address.city and known("city"):
        out["addressLocality"] = address.city
    if address.state and known("state"):
        out["addressRegion"] = address.state
    if address.zip and known("zip"):
        out["postalCode"] = address.zip
    return out


def listing_business_schema(
    listing: ListingRecord,
    location: LocationRecord,
    config: SiteConfig,
) -> dict[str, Any]:
    url = config.absolute_url(listing.path)
    schema: dict[str, Any] = {
        "@context": CONTEXT,
        "@type": "ProfessionalService",
        "@id": f"{url}#business",
        "name": listing.display_name,
        "url": url,
        "description": listing.content.about,
        "address": postal_address(listing.address, listing),
        "areaServed": {"@type": "City", "name": location.city_name},
    }
    if listing.image_url:
        schema["image"] = listing.image_url
    if listing.business.pricing and not listing.is_synthesized("business.pricing"):
        schema["priceRange"] = listing.business.pricing
    if listing.contact.phone:
        schema["telephone"] = listing.contact.phone
    if listing.contact.email:
        schema["email"] = listing.contact.email
    if listing.contact.website:
        schema["sameAs"] = [listing.contact.website]
    if listing.expertise.specialties and not listing.is_synthesized("expertise.specialties"):
        schema["knowsAbout"] = list(listing.expertise.specialties)

    rating_known = not (
        listing.is_synthesized("business.rating") or listing.is_synthesized("business.reviewCount")
    )
    if rating_known and listing.business.review_count > 0 and listing.business.rating > 0:
        schema["aggregateRating"] = {
            "@type": "AggregateRating",
            "ratingValue": listing.business.rating,
            "reviewCount": listing.business.review_count,
            "bestRating": 5,
            "worstRating": 0,
        }
    if listing.reviews and not listing.is_synthesized("reviews"):
        schema["review"] = [
            {
                "@type": "Review",
                "author": {"@type": "Person", "name": review.author},
                "reviewRating": {"@type": "Rating", "ratingValue": review.rating, "bestRating": 5},
                "reviewBody": review.content,
                **({"datePublished": review.date} if review.date else {}),
            }
            for review in listing.reviews
        ]
    return schema


def location_service_schema(location: LocationRecord, config: SiteConfig) -> dict[str, Any]:
    schema: dict[str, Any] = {
        "@context": CONTEXT,
        "@type": "Service",
        "name": f"Art Appraisal Services in {location.display_name}",
        "serviceType": "Art Appraisal",
        "url": config.absolute_url(location.path),
        "areaServed": {"@type": "City", "name": location.city_name},
    }
    if location.listings:
        schema["provider"] = [
            {
                "@type": "LocalBusiness",
                "name": listing.display_name,
                "url": config.absolute_url(listing.path),
            }
            for listing in location.listings
        ]
    else:
        schema["provider"] = {
            "@type": "Organization",
            "name": config.site_name,
            "url": config.absolute_url("/"),
        }
    return schema


def item_list_schema(entries: list[tuple[str, str]], config: SiteConfig) -> dict[str, Any] | None:
    """ItemList of (name, path) pairs; None when there is nothing to list."""
    if not entries:
        return None
    return {
        "@context": CONTEXT,
        "@type": "ItemList",
        "numberOfItems": len(entries),
        "itemListElement": [
            {"@type": "ListItem", "position": i, "name": name, "url": config.absolute_url(path)}
            for i, (name, path) in enumerate(entries, start=1)
        ],
    }


def website_schema(config: SiteConfig) -> dict[str, Any]:
    return {
        "@context": CONTEXT,
        "@type": "WebSite",
        "name": config.site_name,
        "url": config.absolute_url("/"),
    }
