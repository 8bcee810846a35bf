from dataclasses import replace

import pytest

from appraisers.images import (
    ImageResolver,
    ImageValidationCache,
    JsonDirectoryStore,
    MemoryStore,
    cache_key,
    clamp_workers,
)
from appraisers.models import Expertise, ListingRecord, LocationRecord
from conftest import FakeSession

DEFAULT = "https://img.example.com/default.jpg"


def _listing(**kwargs):
    fields = {"id": "smith-fine-art-denver", "name": "Smith Fine Art", "slug": "smith-fine-art"}
    fields.update(kwargs)
    return ListingRecord(**fields)


@pytest.fixture
def denver():
    return LocationRecord(city_slug="denver", city_name="Denver", state="CO")


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------
def test_cache_roundtrip_and_ttl_expiry(fake_clock):
    cache = ImageValidationCache(MemoryStore(), ttl_seconds=60, clock=fake_clock)
    assert cache.get("https://a.example.com/x.jpg") is None
    cache.set("https://a.example.com/x.jpg", False)
    assert cache.get("https://a.example.com/x.jpg") is False
    fake_clock.advance(59)
    assert cache.get("https://a.example.com/x.jpg") is False
    fake_clock.advance(2)
    assert cache.get("https://a.example.com/x.jpg") is None


def test_json_directory_store_persists_across_instances(tmp_path, fake_clock):
    first = ImageValidationCache(JsonDirectoryStore(tmp_path), ttl_seconds=3600, clock=fake_clock)
    first.set("https://a.example.com/x.jpg", True)
    assert (tmp_path / f"{cache_key('https://a.example.com/x.jpg')}.json").exists()

    second = ImageValidationCache(JsonDirectoryStore(tmp_path), ttl_seconds=3600, clock=fake_clock)
    assert second.get("https://a.example.com/x.jpg") is True
    assert second.clear() == 1
    assert second.get("https://a.example.com/x.jpg") is None


def test_cache_write_failure_is_not_fatal(fake_clock, caplog):
    class BrokenStore(MemoryStore):
        def put(self, key, entry):
            raise OSError("disk full")

    cache = ImageValidationCache(BrokenStore(), ttl_seconds=60, clock=fake_clock)
    cache.set("https://a.example.com/x.jpg", True)
    assert cache.get("https://a.example.com/x.jpg") is None
    assert "disk full" in caplog.text


def test_cache_reads_through_to_its_store(tmp_path, fake_clock):
    store = JsonDirectoryStore(tmp_path)
    cache = ImageValidationCache(store, ttl_seconds=3600, clock=fake_clock)
    cache.set("https://a.example.com/x.jpg", True)
    assert cache.get("https://a.example.com/x.jpg") is True
    store.clear()
    assert cache.get("https://a.example.com/x.jpg") is None
    assert (cache.hits, cache.misses) == (1, 1)


def test_clamp_workers():
    assert clamp_workers(None) == 8
    assert clamp_workers(0) == 8
    assert clamp_workers(50) == 20
    assert clamp_workers(-3) == 1


# ---------------------------------------------------------------------------
# Resolution tiers
# ---------------------------------------------------------------------------
def test_declared_image_wins_and_is_rewritten(config, denver):
    session = FakeSession(ok_urls={"https://img.example.com/smith.jpg"})
    resolver = ImageResolver(config, session=session)
    listing = _listing(image_url="https://ik.imagekit.io/appraisily/smith.jpg")
    res = resolver.resolve(listing, denver)
    assert (res.url, res.tier) == ("https://img.example.com/smith.jpg", "declared")
    assert session.urls("HEAD") == ["https://img.example.com/smith.jpg"]


def test_alternate_names_tried_in_order(config, denver):
    alt = "https://img.example.com/appraiser-images/smith-fine-art.jpg"
    session = FakeSession(ok_urls={alt})
    resolver = ImageResolver(config, session=session)
    res = resolver.resolve(_listing(image_url="https://img.example.com/gone.jpg"), denver)
    assert (res.url, res.tier) == (alt, "alternate")
    assert session.urls("HEAD") == [
        "https://img.example.com/gone.jpg",
        "https://img.example.com/appraiser-images/appraiser_smith-fine-art.jpg",
        alt,
    ]


def test_candidate_urls_include_business_and_city_variants(config, denver):
    resolver = ImageResolver(config, session=FakeSession())
    urls = resolver.candidate_urls(_listing(business_name="Smith & Co"), denver)
    names = [u.rsplit("/", 1)[-1] for u in urls]
    assert names == [
        "appraiser_smith-fine-art.jpg",
        "smith-fine-art.jpg",
        "appraiser_smith-co.jpg",
        "smith-co.jpg",
        "appraiser_smith-fine-art_denver.jpg",
    ]


def test_generated_image_is_validated_without_cache(config, denver):
    generated = "https://gen.example.com/out/smith.png"
    session = FakeSession(ok_urls={generated}, generated=generated)
    cache = ImageValidationCache(MemoryStore())
    resolver = ImageResolver(config, cache, session=session)
    res = resolver.resolve(_listing(), denver)
    assert (res.url, res.tier) == (generated, "generated")
    assert session.urls("POST") == ["https://gen.example.com/generate"]
    assert cache.get(generated) is None


def test_generated_url_that_fails_probe_falls_through(config, denver):
    session = FakeSession(
        ok_urls={"https://img.example.com/placeholders/painting.jpg"},
        generated="https://gen.example.com/out/broken.png",
    )
    resolver = ImageResolver(config, session=session)
    listing = _listing(expertise=Expertise(specialties=["Oil Paintings"]))
    res = resolver.resolve(listing, denver)
    assert (res.url, res.tier) == ("https://img.example.com/placeholders/painting.jpg", "specialty")


def test_total_network_failure_lands_on_default(config, denver):
    session = FakeSession(fail_all=True)
    resolver = ImageResolver(config, session=session)
    listing = _listing(
        image_url="https://img.example.com/smith.jpg",
        expertise=Expertise(specialties=["Modern Art"]),
    )
    res = resolver.resolve(listing, denver)
    assert (res.url, res.tier) == (DEFAULT, "default")


def test_default_image_is_never_probed(config, denver):
    session = FakeSession()
    resolver = ImageResolver(config, session=session)
    res = resolver.resolve(_listing(), denver)
    assert res.tier == "default"
    assert DEFAULT not in session.urls("HEAD")


def test_probe_results_are_cached_between_listings(config, denver):
    session = FakeSession()
    resolver = ImageResolver(config, ImageValidationCache(MemoryStore()), session=session)
    listing = _listing(image_url="https://img.example.com/shared.jpg")
    resolver.resolve(listing, denver)
    first = len(session.urls("HEAD"))
    resolver.resolve(listing, denver)
    assert len(session.urls("HEAD")) == first
    assert resolver.cache.hits >= 1


def test_generation_disabled_skips_post(config, denver):
    session = FakeSession()
    resolver = ImageResolver(replace(config, image_generation_url=""), session=session)
    assert resolver.generate(_listing(), denver) == ""
    assert session.urls("POST") == []


# ---------------------------------------------------------------------------
# Batch
# ---------------------------------------------------------------------------
def test_resolve_batch_yields_one_event_per_listing(config, denver):
    ok = "https://img.example.com/appraiser-images/appraiser_b.jpg"
    session = FakeSession(ok_urls={ok})
    resolver = ImageResolver(config, session=session)
    items = [(_listing(id=f"{s}-denver", slug=s, name=s.upper()), denver) for s in ("a", "b", "c")]
    events = list(resolver.resolve_batch(items, workers=3))

    assert [e.current for e in events] == [1, 2, 3]
    assert all(e.total == 3 for e in events)
    by_id = {e.listing_id: e for e in events}
    assert set(by_id) == {"a-denver", "b-denver", "c-denver"}
    assert by_id["b-denver"].success and by_id["b-denver"].resolution.url == ok
    assert not by_id["a-denver"].success
    assert by_id["a-denver"].resolution.url == DEFAULT


def test_resolve_batch_survives_a_crashing_listing(config, denver, monkeypatch):
    resolver = ImageResolver(config, session=FakeSession())
    real_resolve = resolver.resolve

    def flaky(listing, location):
        if listing.id == "boom-denver":
            raise KeyError("unexpected")
        return real_resolve(listing, location)

    monkeypatch.setattr(resolver, "resolve", flaky)
    items = [(_listing(id="boom-denver", slug="boom"), denver), (_listing(), denver)]
    events = {e.listing_id: e for e in resolver.resolve_batch(items, workers=2)}
    assert events["boom-denver"].resolution.tier == "default"
    assert "unexpected" in events["boom-denver"].error


def test_concurrent_batch_counts_every_request(config, denver):
    session = FakeSession(fail_all=True)
    resolver = ImageResolver(replace(config, image_generation_url=""), session=session)
    oils = Expertise(specialties=["Oil Paintings"])
    items = [(_listing(id=f"a{i}-denver", slug=f"a{i}", name=f"A{i}", expertise=oils), denver) for i in range(40)]
    events = list(resolver.resolve_batch(items, workers=8))
    assert len(events) == 40
    assert resolver.probes == len(session.urls("HEAD"))
    assert resolver.cache.misses == resolver.probes
