from __future__ import annotations

from datetime import datetime

import httpx
import pytest

from bunda.core.cache import MemoryCache
from bunda.domain.models import PropertyCreate
from bunda.geocoding.backfill import create_property, update_missing_coordinates
from bunda.geocoding.gateway import GeocodingGateway
from bunda.storage.models import Property


class _CountingPacer:
    def __init__(self):
        self.calls = 0

    def wait(self) -> float:
        self.calls += 1
        return 0.0


@pytest.fixture
def gateway(settings):
    return GeocodingGateway(settings, MemoryCache())


def _payload(**overrides) -> PropertyCreate:
    data = {
        "title": "Herenhuis",
        "street": "Wetstraat",
        "house_number": "16",
        "postal_code": "1000",
        "city": "Brussel",
        "price": 750000,
        "area": 240,
        "bedrooms": 5,
        "bathrooms": 2,
    }
    data.update(overrides)
    return PropertyCreate(**data)


def test_create_property_geocodes_missing_coordinates(session, owner, gateway, monkeypatch, mapbox):
    monkeypatch.setattr("bunda.geocoding.gateway.get_json", lambda *a, **k: mapbox(50.8466, 4.3528))

    prop, location = create_property(session, gateway, _payload(), owner.id)

    assert prop.id is not None
    assert (prop.latitude, prop.longitude) == (50.8466, 4.3528)
    assert location.has_valid_coordinates
    assert location.formatted_address == "Wetstraat 16, 1000 Brussel, België"


def test_create_property_keeps_given_coordinates(session, owner, gateway, monkeypatch):
    def no_network(*a, **k):
        raise AssertionError("provider must not be called")

    monkeypatch.setattr("bunda.geocoding.gateway.get_json", no_network)

    prop, location = create_property(session, gateway, _payload(latitude=50.85, longitude=4.35), owner.id)

    assert (prop.latitude, prop.longitude) == (50.85, 4.35)
    assert location.has_valid_coordinates


def test_create_property_survives_geocoding_failure(session, owner, gateway, monkeypatch):
    def down(*a, **k):
        raise httpx.ConnectError("connection refused")

    monkeypatch.setattr("bunda.geocoding.gateway.get_json", down)

    prop, location = create_property(session, gateway, _payload(), owner.id)

    assert session.get(Property, prop.id) is prop
    assert prop.latitude is None and prop.longitude is None
    assert not location.has_valid_coordinates
    assert location.geocode_error == "connection refused"


def test_backfill_updates_missing_and_zero_coordinates(session, settings, gateway, make_property, monkeypatch, mapbox):
    monkeypatch.setattr("bunda.geocoding.gateway.get_json", lambda *a, **k: mapbox(50.8466, 4.3528))
    missing = make_property(None)
    zeroed = make_property((0.0, 0.0))
    located = make_property((51.2194, 4.4025))
    pacer = _CountingPacer()

    report = update_missing_coordinates(session, gateway, settings=settings, pacer=pacer)

    assert report.as_dict() == {"total": 2, "updated": 2, "failed": 0}
    assert pacer.calls == 2
    assert (missing.latitude, missing.longitude) == (50.8466, 4.3528)
    assert (zeroed.latitude, zeroed.longitude) == (50.8466, 4.3528)
    assert (located.latitude, located.longitude) == (51.2194, 4.4025)


def test_backfill_counts_failures_and_leaves_rows_untouched(session, settings, gateway, make_property, monkeypatch):
    monkeypatch.setattr("bunda.geocoding.gateway.get_json", lambda *a, **k: {"features": []})
    prop = make_property(None)

    report = update_missing_coordinates(session, gateway, settings=settings, pacer=_CountingPacer())

    assert (report.total, report.updated, report.failed) == (1, 0, 1)
    assert prop.latitude is None


def test_backfill_respects_batch_size(session, settings, gateway, make_property, monkeypatch, mapbox):
    monkeypatch.setattr("bunda.geocoding.gateway.get_json", lambda *a, **k: mapbox(50.8466, 4.3528))
    props = [make_property(None) for _ in range(3)]
    small = settings.model_copy(update={"backfill": settings.backfill.model_copy(update={"batch_size": 2})})

    report = update_missing_coordinates(session, gateway, settings=small, pacer=_CountingPacer())

    assert report.total == 2
    assert [p.latitude is not None for p in props] == [True, True, False]


def test_backfill_moves_failed_rows_behind_the_queue(session, settings, gateway, make_property, monkeypatch, mapbox):
    def provider(url, **kwargs):
        return {"features": []} if "Nergensstraat" in url else mapbox(50.8466, 4.3528)

    monkeypatch.setattr("bunda.geocoding.gateway.get_json", provider)
    stuck = make_property(None, street="Nergensstraat", updated_at=datetime(2020, 1, 1))
    waiting = make_property(None, updated_at=datetime(2020, 1, 2))
    one = settings.model_copy(update={"backfill": settings.backfill.model_copy(update={"batch_size": 1})})

    first = update_missing_coordinates(session, gateway, settings=one, pacer=_CountingPacer())
    second = update_missing_coordinates(session, gateway, settings=one, pacer=_CountingPacer())

    assert (first.updated, first.failed) == (0, 1)
    assert stuck.updated_at > datetime(2020, 1, 2)
    assert (second.updated, second.failed) == (1, 0)
    assert (waiting.latitude, waiting.longitude) == (50.8466, 4.3528)
    assert stuck.latitude is None


def test_backfill_with_nothing_to_do(session, settings, gateway):
    report = update_missing_coordinates(session, gateway, settings=settings, pacer=_CountingPacer())
    assert report.as_dict() == {"total": 0, "updated": 0, "failed": 0}


def test_backfill_default_pacer_uses_configured_delay(session, settings, gateway, make_property, monkeypatch, mapbox):
    monkeypatch.setattr("bunda.geocoding.gateway.get_json", lambda *a, **k: mapbox(50.8466, 4.3528))
    sleeps: list[float] = []
    monkeypatch.setattr("bunda.core.rate_limit.time.monotonic", lambda: 0.0)
    monkeypatch.setattr("bunda.core.rate_limit.time.sleep", sleeps.append)
    make_property(None)
    make_property(None)
    make_property(None)

    update_missing_coordinates(session, gateway, settings=settings)

    assert sleeps == [pytest.approx(0.2), pytest.approx(0.2)]
