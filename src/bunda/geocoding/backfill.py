"""
Coordinate enrichment for stored properties.

- `create_property()` persists a new listing and geocodes it right away when the
  owner did not supply coordinates.
- `update_missing_coordinates()` is the batch backfill: it picks up to
  `backfill.batch_size` properties without usable coordinates and geocodes them
  one by one, pausing `backfill.delay_seconds` between provider calls. It is the
  only place that deliberately slows itself down for the provider. Rows are taken
  least recently updated first, and a failed row has its `updated_at` bumped, so
  addresses that never resolve cannot keep the rest of the table waiting.

Rows stored as (0, 0) are treated as missing: that value comes from old imports
that used zero as a placeholder.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from bunda.config.settings import Settings, get_settings
from bunda.core.rate_limit import RequestPacer
from bunda.domain.models import PropertyCreate, PropertyLocation
from bunda.geocoding.gateway import GeocodingGateway
from bunda.storage.models import Property, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BackfillReport:
    total: int
    updated: int
    failed: int

    def as_dict(self) -> dict[str, int]:
        return {"total": self.total, "updated": self.updated, "failed": self.failed}


def _location_of(prop: Property) -> PropertyLocation:
    loc = PropertyLocation.model_validate(prop)
    if loc.latitude == 0 or loc.longitude == 0:
        loc = loc.model_copy(update={"latitude": None, "longitude": None})
    return loc


def create_property(
    session: Session,
    gateway: GeocodingGateway,
    payload: PropertyCreate,
    owner_id: int,
) -> tuple[Property, PropertyLocation]:
    """Insert a property and fill in its coordinates when they were not given.

    A failed geocode does not fail the insert; the property is stored without
    coordinates and left for the backfill.
    """
    prop = Property(**payload.model_dump(), owner_id=owner_id)
    session.add(prop)
    session.flush()

    location = gateway.enrich_property(_location_of(prop))
    if location.has_valid_coordinates:
        prop.latitude = location.latitude
        prop.longitude = location.longitude
        session.flush()
    else:
        logger.info("Property %s stored without coordinates: %s", prop.id, location.geocode_error)
    return prop, location


def update_missing_coordinates(
    session: Session,
    gateway: GeocodingGateway,
    *,
    settings: Settings | None = None,
    pacer: RequestPacer | None = None,
) -> BackfillReport:
    """Geocode one batch of properties lacking coordinates; caller commits."""
    settings = settings or get_settings()
    pacer = pacer or RequestPacer(min_interval_seconds=settings.backfill.delay_seconds)

    stmt = (
        select(Property)
        .where(
            or_(
                Property.latitude.is_(None),
                Property.longitude.is_(None),
                Property.latitude == 0,
                Property.longitude == 0,
            )
        )
        .order_by(Property.updated_at, Property.id)
        .limit(settings.backfill.batch_size)
    )
    props = list(session.scalars(stmt).all())
    logger.info("%d properties found without coordinates", len(props))
    if not props:
        return BackfillReport(total=0, updated=0, failed=0)

    updated = failed = 0
    for prop in props:
        pacer.wait()
        location = gateway.enrich_property(_location_of(prop))
        if location.has_valid_coordinates:
            prop.latitude = location.latitude
            prop.longitude = location.longitude
            updated += 1
        else:
            failed += 1
            # Move the row behind the rest of the queue for the next run.
            prop.updated_at = utcnow()
            logger.warning("Backfill could not geocode property %s: %s", prop.id, location.geocode_error)

    session.flush()
    logger.info("Backfill done: %d updated, %d failed", updated, failed)
    return BackfillReport(total=len(props), updated=updated, failed=failed)
