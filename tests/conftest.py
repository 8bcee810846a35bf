import json
import threading
from datetime import date
from pathlib import Path

import pytest
import requests

from appraisers.config import SiteConfig
from appraisers.render import write_site
from appraisers.sitemap import regenerate
from appraisers.standardize import standardize_directory

TODAY = date(2026, 3, 14)

DENVER = {
    "appraisers": [
        {
            "name": "Denver Art Appraisal Group",
            "address": "1400 Larimer St, Denver, CO 80202",
            "phone": "(303) 555-0101",
            "email": "info@denverart.example.com",
            "website": "denverart.example.com",
            "specialties": ["Paintings", "Sculpture"],
            "services_offered": ["Insurance appraisals", "Estate appraisals"],
            "certifications": "ISA Accredited Member",
            "rating": 4.7,
            "reviewCount": 31,
            "yearsInBusiness": 22,
            "pricing": "$250/hour",
            "about": "Family-run appraisal firm covering fine art & sculpture since 2004.",
            "imageUrl": "https://ik.imagekit.io/appraisily/denver-art.jpg",
            "hours": [{"day": "Monday-Friday", "hours": "9:00 AM - 5:00 PM"}],
            "reviews": [
                {"author": "Ann P.", "rating": 5, "date": "2025-01-10", "content": "Clear, careful report."},
                {"author": "Tom R.", "rating": 4, "date": "2025-06-02", "content": "Quick turnaround."},
            ],
        },
        {
            "name": "Rocky Mountain Antiques",
            "address": "Denver, CO",
            "phone": "Contact via website",
            "specialties": "Antique Furniture",
        },
        {
            "name": "Denver Art Appraisal Group",
            "website": "https://second.example.org",
        },
        {
            "name": "Mile High Estate Appraisers",
            "businessName": "Mile High Estate Appraisers LLC",
            "contact": {"email": "hello@milehigh.example.com"},
            "business": {"yearsInBusiness": "12+ years"},
            "expertise": {"specialties": ["Modern Art", "modern art", "Prints"]},
        },
        "not an object",
        {"phone": "303-555-0199"},
    ]
}

CITIES = {
    "cities": [
        {"slug": "denver", "name": "Denver", "state": "Colorado"},
        {"slug": "boulder", "name": "Boulder", "state": "CO"},
    ]
}


class FakeResponse:
    def __init__(self, status_code=200, payload=None, content=b"<html>ok</html>"):
        self.status_code = status_code
        self._payload = payload
        self.content = content

    def json(self):
        if self._payload is None:
            raise ValueError("no JSON body")
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


class FakeSession:
    """Stands in for requests.Session; URLs in *ok_urls* answer 200, others 404."""

    def __init__(self, ok_urls=(), generated=None, fail_all=False, get_status=200):
        self.ok_urls = set(ok_urls)
        self.generated = generated
        self.fail_all = fail_all
        self.get_status = get_status
        self.calls = []
        self._lock = threading.Lock()

    def _record(self, method, url):
        with self._lock:
            self.calls.append((method, url))
        if self.fail_all:
            raise requests.ConnectionError(f"network down: {url}")

    def head(self, url, **kwargs):
        self._record("HEAD", url)
        return FakeResponse(200 if url in self.ok_urls else 404)

    def post(self, url, json=None, **kwargs):
        self._record("POST", url)
        if self.generated is None:
            return FakeResponse(500)
        return FakeResponse(200, {"imageUrl": self.generated})

    def get(self, url, **kwargs):
        self._record("GET", url)
        return FakeResponse(self.get_status)

    def urls(self, method):
        return [url for m, url in self.calls if m == method]


class FakeClock:
    def __init__(self, start=1_700_000_000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def config():
    return SiteConfig(
        base_url="https://directory.example.com/",
        default_image="https://img.example.com/default.jpg",
        image_host="https://img.example.com",
        image_generation_url="https://gen.example.com/generate",
        image_host_rewrites={"https://ik.imagekit.io/appraisily/": "https://img.example.com/"},
        specialty_placeholders={
            "painting": "https://img.example.com/placeholders/painting.jpg",
            "modern": "https://img.example.com/placeholders/modern.jpg",
        },
        legacy_markers=["ik.imagekit.io"],
        release_root="releases",
        container_name="directory-web",
    )


@pytest.fixture
def raw_data_dir(tmp_path):
    data = tmp_path / "data"
    data.mkdir()
    (data / "denver.json").write_text(json.dumps(DENVER), encoding="utf-8")
    (data / "boulder.json").write_text(json.dumps({"appraisers": []}), encoding="utf-8")
    (data / "broken.json").write_text("{not json", encoding="utf-8")
    (data / "denver-copy.json").write_text(json.dumps(DENVER), encoding="utf-8")
    (data / "cities.json").write_text(json.dumps(CITIES), encoding="utf-8")
    return data


@pytest.fixture
def city_index():
    return {
        "denver": {"name": "Denver", "state": "CO"},
        "boulder": {"name": "Boulder", "state": "CO"},
    }


@pytest.fixture
def standardized(raw_data_dir, city_index, config):
    return standardize_directory(raw_data_dir, city_index=city_index, today=TODAY, config=config)


@pytest.fixture
def site_dir(tmp_path, standardized, config) -> Path:
    """A fully rendered public tree (pages, hubs, sitemap, robots)."""
    out = tmp_path / "dist"
    write_site(standardized.locations, out, config)
    regenerate(out, config)
    return out


def read_page(root: Path, rel: str) -> str:
    return (root / rel).read_text(encoding="utf-8")
