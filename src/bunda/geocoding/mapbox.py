"""
Mapbox Places response parsing.

The gateway only needs a handful of fields out of a Mapbox feature:
- `center` as [lon, lat]
- `relevance` as confidence score
- `place_name` as formatted address
- `text` / `address` as street and house number
- `context` entries (ids like "postcode.123", "place.456", "region.789") for the
  postal code, locality and region
"""

from __future__ import annotations

from typing import Any
from urllib.parse import quote


class ProviderError(Exception):
    """Provider answered, but not with something we can use."""


def places_url(base_url: str, query: str) -> str:
    return f"{base_url.rstrip('/')}/{quote(query, safe=',')}.json"


def first_feature(payload: Any) -> dict[str, Any]:
    """Return the first feature of a FeatureCollection, or raise ProviderError."""
    if not isinstance(payload, dict):
        raise ProviderError("Malformed geocoding response")
    features = payload.get("features")
    if not isinstance(features, list):
        raise ProviderError("Malformed geocoding response")
    if not features:
        raise ProviderError("No results found")
    feature = features[0]
    if not isinstance(feature, dict):
        raise ProviderError("Malformed geocoding feature")
    return feature


def feature_center(feature: dict[str, Any]) -> tuple[float, float]:
    """Return (lat, lon) from a feature's `center`."""
    center = feature.get("center")
    try:
        lon, lat = center
        return float(lat), float(lon)
    except (TypeError, ValueError) as exc:
        raise ProviderError("Geocoding feature has no usable center") from exc


def context_text(feature: dict[str, Any], prefix: str) -> str | None:
    """Find the first context entry whose id starts with `prefix` and return its text."""
    for item in feature.get("context") or []:
        if isinstance(item, dict) and str(item.get("id", "")).startswith(prefix):
            return item.get("text")
    return None


def _optional_str(value: Any) -> str | None:
    return None if value is None else str(value)


def parse_forward(feature: dict[str, Any]) -> dict[str, Any]:
    lat, lon = feature_center(feature)
    return {
        "lat": lat,
        "lon": lon,
        "confidence": float(feature.get("relevance") or 0.0),
        "formatted_address": feature.get("place_name"),
        "street": feature.get("text"),
        "house_number": _optional_str(feature.get("address")),
        "postal_code": context_text(feature, "postcode"),
        "locality": context_text(feature, "place"),
    }


def parse_reverse(feature: dict[str, Any], *, country_name: str | None = None) -> dict[str, Any]:
    street = feature.get("text")
    house_number = _optional_str(feature.get("address"))
    postal_code = context_text(feature, "postcode")
    locality = context_text(feature, "place")
    region = context_text(feature, "region")
    return {
        "street": street,
        "house_number": house_number,
        "postal_code": postal_code,
        "locality": locality,
        "region": region,
        "formatted_address": feature.get("place_name"),
        "components": {
            "street": street,
            "house_number": house_number,
            "postal_code": postal_code,
            "locality": locality,
            "region": region,
            "country": country_name,
        },
    }


def parse_suggestions(payload: Any) -> list[dict[str, Any]]:
    if not isinstance(payload, dict):
        raise ProviderError("Malformed geocoding response")
    out: list[dict[str, Any]] = []
    for feature in payload.get("features") or []:
        if not isinstance(feature, dict):
            continue
        lat, lon = feature_center(feature)
        place_types = feature.get("place_type") or []
        out.append(
            {
                "text": feature.get("place_name") or feature.get("text") or "",
                "place": feature.get("text"),
                "lat": lat,
                "lon": lon,
                "type": place_types[0] if place_types else None,
            }
        )
    return out
