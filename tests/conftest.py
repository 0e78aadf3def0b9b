from __future__ import annotations

import pytest

from bunda.config.settings import Settings
from bunda.storage.db import build_engine, build_session_factory, init_db
from bunda.storage.models import Feature, Property, PropertyImage, User

BRUSSELS = (50.8503, 4.3517)


@pytest.fixture
def settings() -> Settings:
    # Model defaults mirror defaults.yaml; avoids picking up a developer's env/.env.
    return Settings()


@pytest.fixture
def sessions(settings):
    engine = build_engine(settings, url="sqlite://")
    init_db(engine)
    yield build_session_factory(engine)
    engine.dispose()


@pytest.fixture
def session(sessions):
    s = sessions()
    try:
        yield s
    finally:
        s.close()


@pytest.fixture
def owner(session) -> User:
    user = User(
        email="an.peeters@example.be",
        password_hash="$2b$12$notarealhash",
        first_name="An",
        last_name="Peeters",
        phone="+32 470 12 34 56",
        reset_token="reset-me",
    )
    session.add(user)
    session.flush()
    return user


@pytest.fixture
def make_property(session, owner):
    counter = {"n": 0}

    def _make(
        coords: tuple[float, float] | None = BRUSSELS,
        *,
        title: str | None = None,
        **fields,
    ) -> Property:
        counter["n"] += 1
        lat, lon = coords if coords is not None else (None, None)
        values = {
            "title": title or f"Woning {counter['n']}",
            "description": "Ruime woning met tuin",
            "price": 350000,
            "area": 120.0,
            "bedrooms": 3,
            "bathrooms": 1,
            "street": "Wetstraat",
            "house_number": str(counter["n"]),
            "postal_code": "1000",
            "city": "Brussel",
            "latitude": lat,
            "longitude": lon,
            "status": "available",
            "owner_id": owner.id,
        }
        values.update(fields)
        prop = Property(**values)
        session.add(prop)
        session.flush()
        return prop

    return _make


@pytest.fixture
def add_image(session):
    def _add(prop: Property, url: str, *, is_primary: bool = False, position: int = 0) -> PropertyImage:
        img = PropertyImage(
            property_id=prop.id,
            url=url,
            filename=url.rsplit("/", 1)[-1],
            is_primary=is_primary,
            position=position,
        )
        session.add(img)
        session.flush()
        return img

    return _add


@pytest.fixture
def add_feature(session):
    def _add(prop: Property, name: str, category: str = "comfort") -> Feature:
        feature = Feature(name=name, category=category)
        session.add(feature)
        session.flush()
        prop.features.append(feature)
        session.flush()
        return feature

    return _add


def mapbox_payload(
    lat: float,
    lon: float,
    *,
    relevance: float = 0.95,
    place_name: str = "Wetstraat 16, 1000 Brussel, België",
    street: str = "Wetstraat",
    house_number: str | None = "16",
    postal_code: str = "1000",
    locality: str = "Brussel",
) -> dict:
    feature = {
        "center": [lon, lat],
        "relevance": relevance,
        "place_name": place_name,
        "place_type": ["address"],
        "text": street,
        "context": [
            {"id": "postcode.1", "text": postal_code},
            {"id": "place.2", "text": locality},
            {"id": "region.3", "text": "Brussels Hoofdstedelijk Gewest"},
            {"id": "country.4", "text": "België"},
        ],
    }
    if house_number is not None:
        feature["address"] = house_number
    return {"type": "FeatureCollection", "features": [feature]}


@pytest.fixture
def mapbox():
    return mapbox_payload
