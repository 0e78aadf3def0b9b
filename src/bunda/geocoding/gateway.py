"""
Geocoding gateway (Mapbox Places) with a TTL cache in front of it.

Contract highlights:
- Forward and reverse lookups consult the cache first and only call the provider
  on a miss; successful answers are cached with the default TTL.
- Provider trouble (transport errors, timeouts, non-2xx, malformed JSON, zero
  matches) never escapes as an exception. Lookups return a `*Fallback` variant
  with the failure reason instead, and fallbacks are never cached, so the next
  call retries the provider.
- Autocomplete suggestions skip the cache, return `[]` for input shorter than the
  configured threshold, and return `[]` on provider failure.
- Batch geocoding over the configured limit is rejected before any provider call.

No single-flight: two concurrent misses for the same key both hit the provider
and the later write wins with an equivalent value.
"""

from __future__ import annotations

import logging
from typing import Any, Sequence

import httpx

from bunda.config.settings import Settings
from bunda.core.cache import MemoryCache
from bunda.core.geo import format_address
from bunda.core.http import get_json
from bunda.core.rate_limit import RequestPacer
from bunda.domain.models import (
    AddressFallback,
    AddressResult,
    AddressSuggestion,
    CacheStatsReport,
    GeocodeFallback,
    GeocodeResult,
    PropertyLocation,
)
from bunda.geocoding.mapbox import (
    ProviderError,
    first_feature,
    parse_forward,
    parse_reverse,
    parse_suggestions,
    places_url,
)

logger = logging.getLogger(__name__)

FORWARD_NAMESPACE = "geocode"
REVERSE_NAMESPACE = "reverse"

_PROVIDER_ERRORS = (httpx.HTTPError, ProviderError, ValueError, TypeError, KeyError)


class BatchLimitExceeded(ValueError):
    """Too many addresses in one batch request."""


def _reason(exc: Exception) -> str:
    return str(exc) or type(exc).__name__


class GeocodingGateway:
    """Cache-first access to the geocoding provider."""

    def __init__(self, settings: Settings, cache: MemoryCache, *, pacer: RequestPacer | None = None):
        self._settings = settings
        self._cache = cache
        rpm = settings.geocoding.max_requests_per_minute
        self._pacer = pacer or (RequestPacer.per_minute(rpm) if rpm else None)

    @property
    def cache(self) -> MemoryCache:
        return self._cache

    def _fetch(self, query: str, **params: Any) -> Any:
        """Call the provider for `query` and return decoded JSON (raises on failure)."""
        cfg = self._settings.geocoding
        if self._pacer is not None:
            self._pacer.wait()
        request_params: dict[str, Any] = {"country": cfg.country, **params}
        if cfg.access_token:
            request_params["access_token"] = cfg.access_token
        return get_json(
            places_url(cfg.base_url, query),
            params=request_params,
            timeout_seconds=self._settings.app.http_timeout_seconds,
        )

    def address_key(self, address: str) -> str:
        if self._settings.geocoding.normalize_cache_keys:
            return " ".join(address.split()).casefold()
        return address

    def reverse_key(self, lat: float, lon: float) -> str:
        if self._settings.geocoding.normalize_cache_keys:
            d = self._settings.geocoding.reverse_key_decimals
            return f"{lat:.{d}f},{lon:.{d}f}"
        return f"{lat},{lon}"

    def geocode(self, address: str) -> GeocodeResult | GeocodeFallback:
        """Resolve a free-text address to coordinates."""
        key = self.address_key(address)
        cached = self._cache.get(FORWARD_NAMESPACE, key)
        if isinstance(cached, dict):
            return GeocodeResult.model_validate(cached)

        logger.debug("Geocode cache miss for %r", address)
        try:
            feature = first_feature(self._fetch(address, limit=1))
            result = GeocodeResult(query=address, **parse_forward(feature))
        except _PROVIDER_ERRORS as exc:
            logger.warning("Geocoding failed for %r: %s", address, _reason(exc))
            fallback = self._settings.geocoding.fallback
            return GeocodeFallback(
                query=address,
                lat=fallback.lat,
                lon=fallback.lon,
                formatted_address=fallback.label,
                error=_reason(exc),
            )

        self._cache.set(FORWARD_NAMESPACE, key, result.model_dump(mode="json"))
        return result

    def reverse_geocode(self, lat: float, lon: float) -> AddressResult | AddressFallback:
        """Resolve coordinates to the nearest street address."""
        key = self.reverse_key(lat, lon)
        cached = self._cache.get(REVERSE_NAMESPACE, key)
        if isinstance(cached, dict):
            return AddressResult.model_validate(cached)

        logger.debug("Reverse geocode cache miss for %s", key)
        try:
            # Mapbox expects "lon,lat" as the query.
            feature = first_feature(self._fetch(f"{lon},{lat}", types="address", limit=1))
            parsed = parse_reverse(feature, country_name=self._settings.geocoding.country_name)
            result = AddressResult(lat=lat, lon=lon, **parsed)
        except _PROVIDER_ERRORS as exc:
            logger.warning("Reverse geocoding failed for %s: %s", key, _reason(exc))
            return AddressFallback(
                lat=lat,
                lon=lon,
                formatted_address=self._settings.geocoding.reverse_fallback_label,
                error=_reason(exc),
            )

        self._cache.set(REVERSE_NAMESPACE, key, result.model_dump(mode="json"))
        return result

    def batch_geocode(self, addresses: Sequence[str]) -> list[GeocodeResult | GeocodeFallback]:
        """Geocode several addresses in order.

        Raises:
            BatchLimitExceeded: If more than `geocoding.batch_limit` addresses are given.
        """
        limit = self._settings.geocoding.batch_limit
        if len(addresses) > limit:
            raise BatchLimitExceeded(f"Too many addresses in batch ({len(addresses)} > {limit})")
        return [self.geocode(a) for a in addresses]

    def address_suggestions(self, partial: str | None, limit: int | None = None) -> list[AddressSuggestion]:
        """Autocomplete candidates for a partially typed address (uncached)."""
        cfg = self._settings.geocoding
        if not partial or len(partial) < cfg.suggestion_min_chars:
            return []

        limit = int(limit or cfg.suggestion_default_limit)
        try:
            payload = self._fetch(
                partial,
                autocomplete="true",
                limit=limit,
                types="address,place,postcode",
            )
            return [AddressSuggestion.model_validate(s) for s in parse_suggestions(payload)]
        except _PROVIDER_ERRORS as exc:
            logger.warning("Address suggestions failed for %r: %s", partial, _reason(exc))
            return []

    def enrich_property(self, location: PropertyLocation | Any) -> PropertyLocation:
        """Fill in coordinates for a property that has none.

        A property that already has both coordinates is returned as-is (flagged
        valid) and is never re-geocoded. On a geocoding fallback the coordinates
        stay empty and `has_valid_coordinates` is False.
        """
        loc = location if isinstance(location, PropertyLocation) else PropertyLocation.model_validate(location)
        address = format_address(loc.street, loc.house_number, loc.postal_code, loc.city)

        if loc.latitude is not None and loc.longitude is not None:
            return loc.model_copy(
                update={
                    "formatted_address": loc.formatted_address or address,
                    "has_valid_coordinates": True,
                }
            )

        if not address:
            return loc.model_copy(
                update={"has_valid_coordinates": False, "geocode_error": "Property has no address"}
            )

        outcome = self.geocode(address)
        if isinstance(outcome, GeocodeResult):
            return loc.model_copy(
                update={
                    "latitude": outcome.lat,
                    "longitude": outcome.lon,
                    "formatted_address": outcome.formatted_address or address,
                    "confidence": outcome.confidence,
                    "has_valid_coordinates": True,
                    "geocode_error": None,
                }
            )

        logger.info("Could not geocode property %s (%s): %s", loc.id, address, outcome.error)
        return loc.model_copy(
            update={
                "latitude": None,
                "longitude": None,
                "formatted_address": address,
                "confidence": 0.0,
                "has_valid_coordinates": False,
                "geocode_error": outcome.error,
            }
        )

    def cache_stats(self) -> CacheStatsReport:
        self._cache.purge_expired()
        stats = self._cache.stats()
        return CacheStatsReport(
            entries=len(self._cache),
            hits=stats.hits,
            misses=stats.misses,
            hit_rate=stats.hit_rate,
        )

    def clear_cache(self) -> None:
        self._cache.clear()
        logger.info("Geocoding cache cleared")


def build_gateway(settings: Settings) -> GeocodingGateway:
    cache = MemoryCache(
        enabled=settings.cache.enabled,
        default_ttl_seconds=settings.cache.default_ttl_seconds,
    )
    return GeocodingGateway(settings, cache)
