"""
Query building blocks shared by the search operations.

- `haversine_distance()` turns the great-circle formula into a SQL expression over
  the `latitude`/`longitude` columns, with the search center bound as parameters.
- `filter_conditions()` maps `PropertyFilters` onto AND-combined predicates.
- `listing_options()` / `to_listing()` load and shape the related entities.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import ColumnElement, Float, func, or_
from sqlalchemy.orm import selectinload

from bunda.core.geo import EARTH_RADIUS_KM
from bunda.domain.models import (
    FeatureSummary,
    ImageSummary,
    OwnerSummary,
    PropertyFilters,
    PropertyListing,
    SortSpec,
)
from bunda.storage.models import Property

SORT_COLUMNS: dict[str, Any] = {
    "created_at": Property.created_at,
    "price": Property.price,
    "area": Property.area,
    "bedrooms": Property.bedrooms,
    "bathrooms": Property.bathrooms,
    "title": Property.title,
    "city": Property.city,
}


def _f(name: str, *args: Any) -> ColumnElement[float]:
    return getattr(func, name)(*args, type_=Float)


def haversine_distance(lat: float, lon: float) -> ColumnElement[float]:
    """Distance in km from (lat, lon) to each row, as a SQL expression.

    Same formula as `bunda.core.geo.haversine_km`:
    h = sin²(dLat/2) + cos(lat1)·cos(lat2)·sin²(dLon/2), d = 2R·atan2(√h, √(1-h)).
    h is clamped to [0, 1] so rounding near the antipode never reaches sqrt of a
    negative number. Rows with a NULL coordinate evaluate to NULL and fail any comparison.
    """
    half_dlat = _f("radians", Property.latitude - float(lat)) / 2
    half_dlon = _f("radians", Property.longitude - float(lon)) / 2
    h = _f("sin", half_dlat) * _f("sin", half_dlat) + _f("cos", _f("radians", float(lat))) * _f(
        "cos", _f("radians", Property.latitude)
    ) * _f("sin", half_dlon) * _f("sin", half_dlon)
    h = _f("least", 1.0, _f("greatest", 0.0, h))
    return 2 * EARTH_RADIUS_KM * _f("atan2", _f("sqrt", h), _f("sqrt", 1 - h))


def has_coordinates() -> list[ColumnElement[bool]]:
    return [Property.latitude.is_not(None), Property.longitude.is_not(None)]


def filter_conditions(filters: PropertyFilters, *, default_status: str) -> list[ColumnElement[bool]]:
    """Translate filters into a list of predicates to AND together."""
    conds: list[ColumnElement[bool]] = [Property.status == (filters.status or default_status)]

    if filters.min_price is not None:
        conds.append(Property.price >= filters.min_price)
    if filters.max_price is not None:
        conds.append(Property.price <= filters.max_price)
    if filters.min_area is not None:
        conds.append(Property.area >= filters.min_area)
    if filters.min_bedrooms is not None:
        conds.append(Property.bedrooms >= filters.min_bedrooms)
    if filters.min_bathrooms is not None:
        conds.append(Property.bathrooms >= filters.min_bathrooms)
    if filters.owner_id is not None:
        conds.append(Property.owner_id == filters.owner_id)
    if filters.city:
        conds.append(Property.city.ilike(f"%{filters.city}%"))
    if filters.postal_code:
        conds.append(Property.postal_code.ilike(f"%{filters.postal_code}%"))
    if filters.term:
        pattern = f"%{filters.term}%"
        conds.append(
            or_(
                Property.title.ilike(pattern),
                Property.description.ilike(pattern),
                Property.city.ilike(pattern),
                Property.street.ilike(pattern),
            )
        )
    return conds


def order_clauses(sort: SortSpec, distance: ColumnElement[float] | None = None) -> list[Any]:
    """ORDER BY for `sort`, with `id` as a stable tie-breaker for pagination."""
    if sort.field == "distance":
        if distance is None:
            raise ValueError("Sorting by distance requires a radius search")
        column: Any = distance
    else:
        column = SORT_COLUMNS[sort.field]
    primary = column.asc() if sort.direction == "asc" else column.desc()
    return [primary, Property.id.asc()]


def listing_options() -> list[Any]:
    return [
        selectinload(Property.owner),
        selectinload(Property.primary_images),
        selectinload(Property.features),
    ]


def to_listing(prop: Property, distance: float | None = None) -> PropertyListing:
    primary = prop.primary_images[0] if prop.primary_images else None
    return PropertyListing(
        id=prop.id,
        title=prop.title,
        description=prop.description,
        street=prop.street,
        house_number=prop.house_number,
        postal_code=prop.postal_code,
        city=prop.city,
        latitude=prop.latitude,
        longitude=prop.longitude,
        price=float(prop.price),
        area=float(prop.area),
        bedrooms=prop.bedrooms,
        bathrooms=prop.bathrooms,
        status=prop.status,
        created_at=prop.created_at,
        owner=OwnerSummary.model_validate(prop.owner) if prop.owner is not None else None,
        primary_image=ImageSummary.model_validate(primary) if primary is not None else None,
        features=[FeatureSummary.model_validate(f) for f in prop.features],
        distance=float(distance) if distance is not None else None,
    )
