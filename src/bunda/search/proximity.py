"""
Property search: radius (proximity) search and plain filter search.

`search_in_radius` is the core operation:
1) clamp the radius to `search.max_radius_km` (values above are reduced, not rejected),
2) keep only rows with both coordinates present, plus the AND-combined filters
   (status defaults to `search.default_status`),
3) let the database compute the Haversine distance per row, filter on
   `distance <= radius` and (unless another sort is asked for) order by it,
4) count the filtered set, fetch one page and attach owner, primary image and features.

The address-driven entry points (`search_near_address`, `search_by_term`,
`search_in_region`) resolve text through the geocoding gateway first and degrade to
a text search when the gateway falls back.

No range validation happens here; an out-of-range center simply yields a
meaningless (but well-formed) result.
"""

from __future__ import annotations

import logging
import math
import re
from typing import Any

from sqlalchemy import ColumnElement, func, select
from sqlalchemy.orm import Session

from bunda.config.settings import Settings, get_settings
from bunda.core.geo import GeoPoint as CoreGeoPoint, bounding_box
from bunda.domain.models import GeocodeResult, Pagination, PropertyFilters, SearchResult, SortSpec
from bunda.geocoding.gateway import GeocodingGateway
from bunda.search.queries import (
    filter_conditions,
    has_coordinates,
    haversine_distance,
    listing_options,
    order_clauses,
    to_listing,
)
from bunda.storage.models import Property

logger = logging.getLogger(__name__)

# A house number followed later by a 4-digit postal code, or a Dutch street word.
_ADDRESS_HINTS = (
    re.compile(r"\b\d+\b.*\b\d{4}\b"),
    re.compile(r"\b\w*(straat|laan|weg|plein)\b", re.IGNORECASE),
)


def looks_like_address(term: str) -> bool:
    return any(p.search(term) for p in _ADDRESS_HINTS)


def clamp_radius(radius_km: float | None, settings: Settings) -> float:
    if radius_km is None:
        radius_km = settings.search.default_radius_km
    return max(0.0, min(float(radius_km), settings.search.max_radius_km))


def _page(pagination: Pagination | None, settings: Settings) -> tuple[int, int]:
    pagination = pagination or Pagination(page_size=settings.search.default_page_size)
    page_size = min(pagination.page_size, settings.search.max_page_size)
    return pagination.page, page_size


def _total_pages(total: int, page_size: int) -> int:
    return math.ceil(total / page_size)


def _count(session: Session, conds: list[ColumnElement[bool]]) -> int:
    return int(session.execute(select(func.count()).select_from(Property).where(*conds)).scalar_one())


def search_in_radius(
    session: Session,
    center: Any,
    radius_km: float | None = None,
    filters: PropertyFilters | None = None,
    pagination: Pagination | None = None,
    *,
    sort: SortSpec | None = None,
    settings: Settings | None = None,
) -> SearchResult:
    """Return properties within `radius_km` of `center`, nearest first by default.

    `center` is anything with `lat`/`lon` attributes. Every returned item carries a
    `distance` in km that is `<= radius`.
    """
    settings = settings or get_settings()
    filters = filters or PropertyFilters()
    radius = clamp_radius(radius_km, settings)
    page, page_size = _page(pagination, settings)
    lat, lon = float(center.lat), float(center.lon)

    distance = haversine_distance(lat, lon)
    conds = [
        *has_coordinates(),
        *filter_conditions(filters, default_status=settings.search.default_status),
        distance <= radius,
    ]

    total = _count(session, conds)

    labeled = distance.label("distance")
    sort = sort or SortSpec(field="distance", direction="asc")
    stmt = (
        select(Property, labeled)
        .where(*conds)
        .order_by(*order_clauses(sort, labeled))
        .limit(page_size)
        .offset((page - 1) * page_size)
        .options(*listing_options())
    )
    rows = session.execute(stmt).all()

    logger.debug("Radius search lat=%.5f lon=%.5f r=%.1fkm: %d matches", lat, lon, radius, total)
    return SearchResult(
        items=[to_listing(prop, dist) for prop, dist in rows],
        total_count=total,
        page=page,
        page_size=page_size,
        total_pages=_total_pages(total, page_size),
        radius_km=radius,
        context={"center": {"lat": lat, "lon": lon}},
    )


def _search_where(
    session: Session,
    conds: list[ColumnElement[bool]],
    sort: SortSpec,
    page: int,
    page_size: int,
) -> tuple[list[Property], int]:
    total = _count(session, conds)
    stmt = (
        select(Property)
        .where(*conds)
        .order_by(*order_clauses(sort))
        .limit(page_size)
        .offset((page - 1) * page_size)
        .options(*listing_options())
    )
    return list(session.scalars(stmt).all()), total


def search_by_filters(
    session: Session,
    filters: PropertyFilters | None = None,
    sort: SortSpec | None = None,
    pagination: Pagination | None = None,
    *,
    settings: Settings | None = None,
) -> SearchResult:
    """Filter/sort/paginate without any distance computation (newest first by default)."""
    settings = settings or get_settings()
    filters = filters or PropertyFilters()
    sort = sort or SortSpec()
    page, page_size = _page(pagination, settings)

    conds = filter_conditions(filters, default_status=settings.search.default_status)
    props, total = _search_where(session, conds, sort, page, page_size)
    return SearchResult(
        items=[to_listing(p) for p in props],
        total_count=total,
        page=page,
        page_size=page_size,
        total_pages=_total_pages(total, page_size),
    )


def _text_search(
    session: Session,
    text: str,
    filters: PropertyFilters | None,
    pagination: Pagination | None,
    settings: Settings,
    context: dict[str, Any],
) -> SearchResult:
    filters = (filters or PropertyFilters()).model_copy(update={"term": text})
    result = search_by_filters(session, filters, None, pagination, settings=settings)
    return result.model_copy(update={"context": context})


def search_near_address(
    session: Session,
    gateway: GeocodingGateway,
    address: str,
    radius_km: float | None = None,
    filters: PropertyFilters | None = None,
    pagination: Pagination | None = None,
    *,
    sort: SortSpec | None = None,
    settings: Settings | None = None,
) -> SearchResult:
    """Radius search around a free-text address.

    If the address cannot be geocoded the search degrades to a text match on the
    address itself; `context["type"]` tells the caller which path ran.
    """
    settings = settings or get_settings()
    outcome = gateway.geocode(address)
    if not isinstance(outcome, GeocodeResult):
        return _text_search(
            session,
            address,
            filters,
            pagination,
            settings,
            {"type": "text", "query": address, "geocode_error": outcome.error},
        )

    result = search_in_radius(
        session,
        outcome,
        radius_km,
        filters,
        pagination,
        sort=sort,
        settings=settings,
    )
    context = {
        **result.context,
        "type": "address",
        "query": address,
        "resolved_address": outcome.formatted_address,
        "confidence": outcome.confidence,
    }
    return result.model_copy(update={"context": context})


def search_by_term(
    session: Session,
    gateway: GeocodingGateway,
    term: str,
    radius_km: float | None = None,
    filters: PropertyFilters | None = None,
    pagination: Pagination | None = None,
    *,
    settings: Settings | None = None,
) -> SearchResult:
    """Search box entry point: radius search for address-like terms, text search otherwise.

    The geocoded point is only trusted above `search.address_min_confidence`.
    """
    settings = settings or get_settings()
    if looks_like_address(term):
        outcome = gateway.geocode(term)
        if isinstance(outcome, GeocodeResult) and outcome.confidence > settings.search.address_min_confidence:
            result = search_in_radius(session, outcome, radius_km, filters, pagination, settings=settings)
            context = {
                **result.context,
                "type": "address",
                "query": term,
                "resolved_address": outcome.formatted_address,
            }
            return result.model_copy(update={"context": context})

    return _text_search(session, term, filters, pagination, settings, {"type": "text", "query": term})


def search_in_region(
    session: Session,
    gateway: GeocodingGateway,
    region: str,
    filters: PropertyFilters | None = None,
    pagination: Pagination | None = None,
    *,
    sort: SortSpec | None = None,
    settings: Settings | None = None,
) -> SearchResult:
    """Properties inside the bounding box of a geocoded municipality or district.

    Uses a fixed `search.region_radius_km` box around the resolved point, which is a
    rough stand-in for real administrative boundaries.
    """
    settings = settings or get_settings()
    outcome = gateway.geocode(region)
    if not isinstance(outcome, GeocodeResult) or outcome.confidence < settings.search.region_min_confidence:
        return _text_search(session, region, filters, pagination, settings, {"type": "text", "query": region})

    box = bounding_box(CoreGeoPoint(lat=outcome.lat, lon=outcome.lon), settings.search.region_radius_km)
    conds = [
        *filter_conditions(filters or PropertyFilters(), default_status=settings.search.default_status),
        Property.latitude.between(box.min_lat, box.max_lat),
        Property.longitude.between(box.min_lon, box.max_lon),
    ]
    page, page_size = _page(pagination, settings)
    props, total = _search_where(session, conds, sort or SortSpec(), page, page_size)
    return SearchResult(
        items=[to_listing(p) for p in props],
        total_count=total,
        page=page,
        page_size=page_size,
        total_pages=_total_pages(total, page_size),
        context={
            "type": "region",
            "query": region,
            "region": outcome.formatted_address or region,
            "bounding_box": box.as_dict(),
        },
    )
