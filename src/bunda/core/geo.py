"""
Geospatial helpers.

Pure functions over decimal-degree WGS84 coordinates: distances, bounding boxes,
centroids, clustering, GeoJSON builders and a couple of Belgian-specific
conversions. Nothing here validates ranges; out-of-range input gives meaningless
but finite results instead of raising.
"""

from __future__ import annotations

from dataclasses import dataclass
from math import atan2, cos, degrees, pi, radians, sin, sqrt
from typing import Any, Callable, Iterable, Mapping, Sequence, TypeVar

EARTH_RADIUS_KM = 6371.0
KM_PER_DEGREE_LAT = 111.32

T = TypeVar("T")


@dataclass(frozen=True)
class GeoPoint:
    """A latitude/longitude pair in decimal degrees."""

    lat: float
    lon: float


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned lat/lon box (degrees)."""

    min_lat: float
    max_lat: float
    min_lon: float
    max_lon: float

    def as_dict(self) -> dict[str, float]:
        return {
            "min_lat": self.min_lat,
            "max_lat": self.max_lat,
            "min_lon": self.min_lon,
            "max_lon": self.max_lon,
        }


@dataclass(frozen=True)
class ClusterSummary:
    center: GeoPoint | None
    size: int


def to_radians(deg: float) -> float:
    return deg * (pi / 180)


def to_degrees(rad: float) -> float:
    return rad * (180 / pi)


def haversine_km(a: GeoPoint, b: GeoPoint) -> float:
    """Great-circle distance in kilometers between two points."""
    dlat = radians(b.lat - a.lat)
    dlon = radians(b.lon - a.lon)

    h = sin(dlat / 2) ** 2 + cos(radians(a.lat)) * cos(radians(b.lat)) * sin(dlon / 2) ** 2
    # Rounding can push h a hair outside [0, 1] for antipodal points.
    h = min(1.0, max(0.0, h))
    return 2 * EARTH_RADIUS_KM * atan2(sqrt(h), sqrt(1 - h))


def bounding_box(center: GeoPoint, radius_km: float) -> BoundingBox:
    """Approximate square around a radius circle.

    Uses a flat 111.32 km per degree of latitude and `111.32 * cos(lat)` per degree
    of longitude. Good enough as a cheap pre-filter; corners of the box lie outside
    the circle, and near the poles the longitude span is capped at 180 degrees.
    """
    km_per_degree_lon = abs(cos(radians(center.lat))) * KM_PER_DEGREE_LAT
    delta_lat = radius_km / KM_PER_DEGREE_LAT
    delta_lon = min(180.0, radius_km / km_per_degree_lon) if km_per_degree_lon > 0 else 180.0
    return BoundingBox(
        min_lat=center.lat - delta_lat,
        max_lat=center.lat + delta_lat,
        min_lon=center.lon - delta_lon,
        max_lon=center.lon + delta_lon,
    )


def point_in_bounding_box(point: GeoPoint, box: BoundingBox) -> bool:
    return box.min_lat <= point.lat <= box.max_lat and box.min_lon <= point.lon <= box.max_lon


def _latlon(item: Any) -> tuple[float, float] | None:
    """Extract (lat, lon) from a point-like object or mapping; None if incomplete."""
    if item is None:
        return None
    if isinstance(item, Mapping):
        lat = item.get("lat", item.get("latitude"))
        lon = item.get("lon", item.get("longitude"))
    else:
        lat = getattr(item, "lat", getattr(item, "latitude", None))
        lon = getattr(item, "lon", getattr(item, "longitude", None))
    if lat is None or lon is None:
        return None
    return float(lat), float(lon)


def centroid(points: Iterable[Any]) -> GeoPoint | None:
    """Mean position of `points` via 3D Cartesian averaging.

    Averaging unit vectors instead of raw degrees keeps the result sane across the
    antimeridian. Entries missing a latitude or longitude are skipped; returns None
    when nothing valid remains.
    """
    x = y = z = 0.0
    n = 0
    for item in points or ():
        coords = _latlon(item)
        if coords is None:
            continue
        lat, lon = radians(coords[0]), radians(coords[1])
        x += cos(lat) * cos(lon)
        y += cos(lat) * sin(lon)
        z += sin(lat)
        n += 1

    if n == 0:
        return None

    x /= n
    y /= n
    z /= n
    hyp = sqrt(x * x + y * y)
    return GeoPoint(lat=degrees(atan2(z, hyp)), lon=degrees(atan2(y, x)))


def cluster_points(
    points: Sequence[T],
    threshold_km: float = 1.0,
    *,
    get_latlon: Callable[[T], tuple[float, float] | None] = _latlon,
    sort_key: Callable[[T], Any] | None = None,
) -> list[list[T]]:
    """Greedy single-linkage clustering.

    Pops the first unclustered point as a seed, then keeps absorbing any remaining
    point within `threshold_km` of *any* member until a full pass adds nothing.
    Membership at the boundary depends on input order; pass `sort_key` for a
    deterministic result. Points without coordinates end up as singletons.
    """
    remaining = list(points)
    if sort_key is not None:
        remaining.sort(key=sort_key)

    clusters: list[list[T]] = []
    while remaining:
        cluster = [remaining.pop(0)]
        members = [get_latlon(cluster[0])]
        grew = True
        while grew:
            grew = False
            i = 0
            while i < len(remaining):
                candidate = get_latlon(remaining[i])
                if candidate is not None and _near_any(candidate, members, threshold_km):
                    cluster.append(remaining.pop(i))
                    members.append(candidate)
                    grew = True
                    continue
                i += 1
        clusters.append(cluster)
    return clusters


def _near_any(
    candidate: tuple[float, float],
    members: list[tuple[float, float] | None],
    threshold_km: float,
) -> bool:
    p = GeoPoint(lat=candidate[0], lon=candidate[1])
    for m in members:
        if m is None:
            continue
        if haversine_km(GeoPoint(lat=m[0], lon=m[1]), p) <= threshold_km:
            return True
    return False


def cluster_centroids(clusters: Iterable[Sequence[Any]]) -> list[ClusterSummary]:
    return [ClusterSummary(center=centroid(c), size=len(c)) for c in clusters]


def interpolate_points(start: GeoPoint, end: GeoPoint, count: int = 10) -> list[GeoPoint]:
    """Linearly interpolate `count` segments between two points (inclusive ends)."""
    if count <= 0:
        return [start]
    out: list[GeoPoint] = []
    for i in range(count + 1):
        f = i / count
        out.append(
            GeoPoint(
                lat=start.lat + (end.lat - start.lat) * f,
                lon=start.lon + (end.lon - start.lon) * f,
            )
        )
    return out


def geojson_point(point: GeoPoint, properties: dict[str, Any] | None = None) -> dict[str, Any]:
    # GeoJSON orders coordinates as [lon, lat].
    return {
        "type": "Feature",
        "geometry": {"type": "Point", "coordinates": [point.lon, point.lat]},
        "properties": dict(properties or {}),
    }


def geojson_feature_collection(features: Iterable[tuple[GeoPoint, dict[str, Any] | None]]) -> dict[str, Any]:
    return {
        "type": "FeatureCollection",
        "features": [geojson_point(p, props) for p, props in features],
    }


def geojson_polygon(box: BoundingBox, properties: dict[str, Any] | None = None) -> dict[str, Any]:
    ring = [
        [box.min_lon, box.min_lat],
        [box.max_lon, box.min_lat],
        [box.max_lon, box.max_lat],
        [box.min_lon, box.max_lat],
        [box.min_lon, box.min_lat],
    ]
    return {
        "type": "Feature",
        "geometry": {"type": "Polygon", "coordinates": [ring]},
        "properties": dict(properties or {}),
    }


# Belgian Lambert 1972 projection parameters (Hayford 1924 ellipsoid).
_L72_LAMBDA0 = radians(4.367486666666667)
_L72_PHI0 = radians(50.797815)
_L72_K0 = 0.7716421928
_L72_X0 = 150000.01256
_L72_Y0 = 5400088.4378
_L72_A = 6378388.0


def lambert72_to_wgs84(x: float, y: float) -> GeoPoint:
    """Convert Belgian Lambert72 (x, y) meters to an approximate WGS84 point.

    This is a simplified polar transform with fixed parameters, not a geodetic
    datum shift. Expect errors far above survey grade; it is only meant for
    placing imported records roughly on a map.
    """
    dx = x - _L72_X0
    dy = y - _L72_Y0
    rho = sqrt(dx * dx + dy * dy)
    theta = atan2(dx, dy)
    phi = _L72_PHI0 + rho / (_L72_A * _L72_K0)
    lam = _L72_LAMBDA0 + theta / _L72_K0
    return GeoPoint(lat=degrees(phi), lon=degrees(lam))


def format_postcode_locality(postal_code: str | int | None, locality: str | None) -> str:
    """Format "1000 Brussel"; drops the postal code unless it is 4 digits."""
    if not postal_code or not locality:
        return ""
    code = str(postal_code).strip()
    if len(code) != 4 or not code.isdigit():
        return locality
    return f"{code} {locality}"


def format_address(
    street: str | None,
    house_number: str | None,
    postal_code: str | int | None,
    locality: str | None,
) -> str:
    """Format a Belgian address line such as "Wetstraat 16, 1000 Brussel"."""
    postcode_locality = format_postcode_locality(postal_code, locality)
    if not street:
        return postcode_locality
    street_part = f"{street} {house_number}" if house_number else street
    if not postcode_locality:
        return street_part
    return f"{street_part}, {postcode_locality}"
