"""
Canonical listing and location records.

A standardized city file looks like ``{"appraisers": [ListingRecord, ...]}``
where each listing serializes with the camelCase keys produced by
``ListingRecord.to_dict``.  Every field is always present in that output so
no downstream stage has to guess at missing keys.

Fields filled in by the standardizer rather than taken from the raw record
are listed in ``metadata.synthesized`` (e.g. ``"business.hours"``).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class Address:
    street: str = ""
    city: str = ""
    state: str = ""
    zip: str = ""

    @property
    def formatted(self) -> str:
        """Always derived from the four parts, never stored."""
        region = " ".join(p for p in (self.state, self.zip) if p)
        return ", ".join(p for p in (self.street, self.city, region) if p)

    def to_dict(self) -> dict[str, Any]:
        return {
            "street": self.street,
            "city": self.city,
            "state": self.state,
            "zip": self.zip,
            "formatted": self.formatted,
        }


@dataclass
class Contact:
    phone: str = ""
    email: str = ""
    website: str = ""

    @property
    def has_any(self) -> bool:
        return bool(self.phone or self.email or self.website)

    def to_dict(self) -> dict[str, Any]:
        return {"phone": self.phone, "email": self.email, "website": self.website}


@dataclass
class HoursEntry:
    day: str
    hours: str

    def to_dict(self) -> dict[str, Any]:
        return {"day": self.day, "hours": self.hours}


@dataclass
class Business:
    years_in_business: str = ""
    hours: list[HoursEntry] = field(default_factory=list)
    pricing: str = ""
    rating: float = 0.0
    review_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "yearsInBusiness": self.years_in_business,
            "hours": [h.to_dict() for h in self.hours],
            "pricing": self.pricing,
            "rating": self.rating,
            "reviewCount": self.review_count,
        }


@dataclass
class Expertise:
    specialties: list[str] = field(default_factory=list)
    certifications: list[str] = field(default_factory=list)
    services: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "specialties": list(self.specialties),
            "certifications": list(self.certifications),
            "services": list(self.services),
        }


@dataclass
class Content:
    about: str = ""
    notes: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"about": self.about, "notes": self.notes}


@dataclass
class Review:
    author: str
    rating: float
    date: str  # ISO date (YYYY-MM-DD)
    content: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "author": self.author,
            "rating": self.rating,
            "date": self.date,
            "content": self.content,
        }


@dataclass
class Metadata:
    last_updated: str = ""
    in_service: bool = True
    synthesized: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "lastUpdated": self.last_updated,
            "inService": self.in_service,
            "synthesized": sorted(self.synthesized),
        }


@dataclass
class ListingRecord:
    """One appraiser profile."""

    id: str
    name: str
    slug: str
    image_url: str = ""
    business_name: str = ""
    address: Address = field(default_factory=Address)
    contact: Contact = field(default_factory=Contact)
    business: Business = field(default_factory=Business)
    expertise: Expertise = field(default_factory=Expertise)
    content: Content = field(default_factory=Content)
    reviews: list[Review] = field(default_factory=list)
    metadata: Metadata = field(default_factory=Metadata)

    @property
    def display_name(self) -> str:
        return self.business_name or self.name

    @property
    def path(self) -> str:
        return f"/appraiser/{self.id}/"

    @property
    def is_publishable(self) -> bool:
        """A listing without any way to contact it stays out of search indexes."""
        return self.contact.has_any

    def is_synthesized(self, field_path: str) -> bool:
        return field_path in self.metadata.synthesized

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "businessName": self.business_name,
            "imageUrl": self.image_url,
            "address": self.address.to_dict(),
            "contact": self.contact.to_dict(),
            "business": self.business.to_dict(),
            "expertise": self.expertise.to_dict(),
            "content": self.content.to_dict(),
            "reviews": [r.to_dict() for r in self.reviews],
            "metadata": self.metadata.to_dict(),
        }


@dataclass
class LocationRecord:
    """All listings for one city, keyed by ``city_slug``."""

    city_slug: str
    city_name: str
    state: str = ""
    listings: list[ListingRecord] = field(default_factory=list)

    @property
    def display_name(self) -> str:
        return f"{self.city_name}, {self.state}" if self.state else self.city_name

    @property
    def path(self) -> str:
        return f"/location/{self.city_slug}/"

    def to_dict(self) -> dict[str, Any]:
        return {
            "citySlug": self.city_slug,
            "cityName": self.city_name,
            "state": self.state,
            "appraisers": [a.to_dict() for a in self.listings],
        }
