"""
API routes.

Endpoints:
- GET    `/api/properties`                  filter search (newest first)
- GET    `/api/properties/search`           radius search around lat/lon or an address
- GET    `/api/properties/lookup`           search box: address-like terms go through geocoding
- GET    `/api/properties/region`           properties inside a geocoded municipality
- POST   `/api/properties`                  create a property (geocoded when coordinates are missing)
- POST   `/api/properties/backfill`         geocode one batch of properties without coordinates
- GET    `/api/geocode`                     forward geocoding
- GET    `/api/geocode/reverse`             reverse geocoding
- GET    `/api/geocode/suggestions`         address autocomplete
- POST   `/api/geocode/batch`               batch forward geocoding (max 50)
- GET    `/api/geocode/cache/stats`         geocoding cache statistics
- DELETE `/api/geocode/cache`               flush the geocoding cache

Every response is `{"data": ..., "meta": {"cache": ...}}`. Geocoding trouble never
turns into a 5xx: the gateway returns tagged fallbacks that are passed through.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any, Callable, Literal

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session, sessionmaker

from bunda.config.settings import get_settings
from bunda.core.cache import record_cache_stats
from bunda.core.geo import GeoPoint as CoreGeoPoint
from bunda.domain.models import (
    Pagination,
    PropertyCreate,
    PropertyFilters,
    PropertyStatus,
    SortField,
    SortSpec,
)
from bunda.geocoding.backfill import create_property, update_missing_coordinates
from bunda.geocoding.gateway import GeocodingGateway, build_gateway
from bunda.search.proximity import (
    search_by_filters,
    search_by_term,
    search_in_radius,
    search_in_region,
    search_near_address,
)
from bunda.storage.db import build_engine, build_session_factory, init_db, session_scope

router = APIRouter()


@lru_cache
def _sessions() -> sessionmaker[Session]:
    settings = get_settings()
    engine = build_engine(settings)
    init_db(engine)
    return build_session_factory(engine)


@lru_cache
def _gateway() -> GeocodingGateway:
    # One gateway (and so one cache) per process.
    return build_gateway(get_settings())


def _run(fn: Callable[[], Any]) -> dict[str, Any]:
    try:
        with record_cache_stats() as stats:
            data = fn()
        if isinstance(data, BaseModel):
            data = data.model_dump(mode="json")
        elif isinstance(data, list):
            data = [d.model_dump(mode="json") if isinstance(d, BaseModel) else d for d in data]
        return {"data": data, "meta": {"cache": stats.as_dict()}}
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(
            status_code=400,
            detail={"code": "VALIDATION_ERROR", "message": str(e)},
        ) from e
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail={"code": "INTERNAL_ERROR", "message": str(e)},
        ) from e


def _filters(
    status: PropertyStatus | None,
    min_price: float | None,
    max_price: float | None,
    min_area: float | None,
    min_bedrooms: int | None,
    min_bathrooms: int | None,
    owner_id: int | None = None,
    city: str | None = None,
    postal_code: str | None = None,
    term: str | None = None,
) -> PropertyFilters:
    return PropertyFilters(
        status=status,
        min_price=min_price,
        max_price=max_price,
        min_area=min_area,
        min_bedrooms=min_bedrooms,
        min_bathrooms=min_bathrooms,
        owner_id=owner_id,
        city=city,
        postal_code=postal_code,
        term=term,
    )


def _pagination(page: int, page_size: int | None) -> Pagination:
    return Pagination(page=page, page_size=page_size or get_settings().search.default_page_size)


@router.get("/api/properties")
def list_properties(
    status: PropertyStatus | None = None,
    min_price: float | None = None,
    max_price: float | None = None,
    min_area: float | None = None,
    min_bedrooms: int | None = None,
    min_bathrooms: int | None = None,
    owner_id: int | None = None,
    city: str | None = None,
    postal_code: str | None = None,
    term: str | None = None,
    sort: SortField = "created_at",
    direction: Literal["asc", "desc"] = "desc",
    page: int = Query(1, ge=1),
    page_size: int | None = Query(None, ge=1),
) -> dict:
    """Filter search without distance (newest first unless sorted otherwise)."""

    def run():
        filters = _filters(
            status, min_price, max_price, min_area, min_bedrooms, min_bathrooms, owner_id, city, postal_code, term
        )
        with session_scope(_sessions()) as session:
            return search_by_filters(
                session,
                filters,
                SortSpec(field=sort, direction=direction),
                _pagination(page, page_size),
            )

    return _run(run)


@router.get("/api/properties/search")
def search_properties(
    lat: float | None = Query(None, ge=-90, le=90),
    lon: float | None = Query(None, ge=-180, le=180),
    address: str | None = None,
    radius_km: float | None = Query(None, ge=0),
    status: PropertyStatus | None = None,
    min_price: float | None = None,
    max_price: float | None = None,
    min_area: float | None = None,
    min_bedrooms: int | None = None,
    min_bathrooms: int | None = None,
    term: str | None = None,
    sort: SortField | None = None,
    direction: Literal["asc", "desc"] = "asc",
    page: int = Query(1, ge=1),
    page_size: int | None = Query(None, ge=1),
) -> dict:
    """Radius search around explicit coordinates, or around a geocoded address."""
    if (lat is None or lon is None) and not address:
        raise HTTPException(
            status_code=400,
            detail={"code": "VALIDATION_ERROR", "message": "lat and lon (or address) are required"},
        )

    def run():
        filters = _filters(status, min_price, max_price, min_area, min_bedrooms, min_bathrooms, term=term)
        sort_spec = SortSpec(field=sort, direction=direction) if sort else None
        pagination = _pagination(page, page_size)
        with session_scope(_sessions()) as session:
            if lat is not None and lon is not None:
                return search_in_radius(
                    session,
                    CoreGeoPoint(lat=lat, lon=lon),
                    radius_km,
                    filters,
                    pagination,
                    sort=sort_spec,
                )
            return search_near_address(
                session,
                _gateway(),
                address,
                radius_km,
                filters,
                pagination,
                sort=sort_spec,
            )

    return _run(run)


@router.get("/api/properties/lookup")
def lookup_properties(
    q: str = Query(..., min_length=1),
    radius_km: float | None = Query(None, ge=0),
    page: int = Query(1, ge=1),
    page_size: int | None = Query(None, ge=1),
) -> dict:
    """Search-box entry: address-like input becomes a radius search."""

    def run():
        with session_scope(_sessions()) as session:
            return search_by_term(session, _gateway(), q, radius_km, None, _pagination(page, page_size))

    return _run(run)


@router.get("/api/properties/region")
def region_properties(
    name: str = Query(..., min_length=1),
    page: int = Query(1, ge=1),
    page_size: int | None = Query(None, ge=1),
) -> dict:
    def run():
        with session_scope(_sessions()) as session:
            return search_in_region(session, _gateway(), name, None, _pagination(page, page_size))

    return _run(run)


@router.post("/api/properties")
def create_listing(body: PropertyCreate, owner_id: int = Query(..., ge=1)) -> dict:
    """Store a new property; coordinates are geocoded from the address when missing."""

    def run():
        with session_scope(_sessions()) as session:
            prop, location = create_property(session, _gateway(), body, owner_id)
            return {"id": prop.id, "location": location.model_dump(mode="json")}

    return _run(run)


@router.post("/api/properties/backfill")
def backfill_coordinates() -> dict:
    """Geocode one batch of properties that have no coordinates yet."""

    def run():
        with session_scope(_sessions()) as session:
            return update_missing_coordinates(session, _gateway()).as_dict()

    return _run(run)


@router.get("/api/geocode")
def geocode(address: str = Query(..., min_length=1)) -> dict:
    return _run(lambda: _gateway().geocode(address))


@router.get("/api/geocode/reverse")
def reverse_geocode(
    lat: float = Query(..., ge=-90, le=90),
    lon: float = Query(..., ge=-180, le=180),
) -> dict:
    return _run(lambda: _gateway().reverse_geocode(lat, lon))


@router.get("/api/geocode/suggestions")
def address_suggestions(q: str = "", limit: int | None = Query(None, ge=1, le=10)) -> dict:
    return _run(lambda: _gateway().address_suggestions(q, limit))


class BatchGeocodeRequest(BaseModel):
    addresses: list[str]


@router.post("/api/geocode/batch")
def batch_geocode(body: BatchGeocodeRequest) -> dict:
    return _run(lambda: _gateway().batch_geocode(body.addresses))


@router.get("/api/geocode/cache/stats")
def geocode_cache_stats() -> dict:
    return _run(lambda: _gateway().cache_stats())


@router.delete("/api/geocode/cache")
def clear_geocode_cache() -> dict:
    def run():
        _gateway().clear_cache()
        return {"cleared": True}

    return _run(run)
