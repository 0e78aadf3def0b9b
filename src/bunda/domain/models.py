"""
Domain models (Pydantic).

These types are the contract between the storage layer, the search engine, the
geocoding gateway and the HTTP/CLI surfaces:
- search inputs (`PropertyFilters`, `SortSpec`, `Pagination`)
- search output (`PropertyListing`, `SearchResult`)
- geocoding outcomes, modelled as tagged unions: a `status` of "resolved" or
  "fallback" tells callers which variant they hold, instead of a magic
  zero-confidence payload
- the geo view of a property used by enrichment (`PropertyLocation`)
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

PropertyStatus = Literal["available", "sold", "pending"]
SortField = Literal["created_at", "price", "area", "bedrooms", "bathrooms", "title", "city", "distance"]


class PropertyFilters(BaseModel):
    """Conjunctive search filters. `status=None` means the configured default."""

    status: PropertyStatus | None = None
    min_price: float | None = Field(default=None, ge=0)
    max_price: float | None = Field(default=None, ge=0)
    min_area: float | None = Field(default=None, ge=0)
    min_bedrooms: int | None = Field(default=None, ge=0)
    min_bathrooms: int | None = Field(default=None, ge=0)
    owner_id: int | None = None
    city: str | None = None
    postal_code: str | None = None
    term: str | None = None


class SortSpec(BaseModel):
    field: SortField = "created_at"
    direction: Literal["asc", "desc"] = "desc"


class Pagination(BaseModel):
    page: int = Field(1, ge=1)
    page_size: int = Field(10, ge=1, le=100)


class OwnerSummary(BaseModel):
    """Public subset of a user. Password and reset-token fields never appear here."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    first_name: str
    last_name: str
    email: str
    phone: str | None = None


class ImageSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    url: str
    is_primary: bool


class FeatureSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    category: str


class PropertyListing(BaseModel):
    """One search hit: a property with its owner, primary image and features."""

    id: int
    title: str
    description: str | None = None
    street: str
    house_number: str
    postal_code: str
    city: str
    latitude: float | None = None
    longitude: float | None = None
    price: float
    area: float
    bedrooms: int
    bathrooms: int
    status: PropertyStatus
    created_at: datetime | None = None
    owner: OwnerSummary | None = None
    primary_image: ImageSummary | None = None
    features: list[FeatureSummary] = Field(default_factory=list)
    distance: float | None = None


class SearchResult(BaseModel):
    """A page of listings plus pagination metadata and optional search context."""

    items: list[PropertyListing]
    total_count: int
    page: int
    page_size: int
    total_pages: int
    radius_km: float | None = None
    context: dict[str, Any] = Field(default_factory=dict)


class PropertyCreate(BaseModel):
    title: str
    description: str = ""
    street: str
    house_number: str
    postal_code: str
    city: str
    price: float = Field(..., ge=0)
    area: float = Field(..., ge=0)
    bedrooms: int = Field(0, ge=0)
    bathrooms: int = Field(0, ge=0)
    status: PropertyStatus = "available"
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)


class GeocodeResult(BaseModel):
    """Forward geocoding hit."""

    status: Literal["resolved"] = "resolved"
    query: str
    lat: float
    lon: float
    confidence: float
    formatted_address: str | None = None
    street: str | None = None
    house_number: str | None = None
    postal_code: str | None = None
    locality: str | None = None

    @property
    def ok(self) -> bool:
        return True


class GeocodeFallback(BaseModel):
    """Forward geocoding failure, carrying the national fallback coordinate."""

    status: Literal["fallback"] = "fallback"
    query: str
    lat: float
    lon: float
    confidence: float = 0.0
    formatted_address: str
    error: str

    @property
    def ok(self) -> bool:
        return False


class AddressComponents(BaseModel):
    street: str | None = None
    house_number: str | None = None
    postal_code: str | None = None
    locality: str | None = None
    region: str | None = None
    country: str | None = None


class AddressResult(BaseModel):
    """Reverse geocoding hit."""

    status: Literal["resolved"] = "resolved"
    lat: float
    lon: float
    street: str | None = None
    house_number: str | None = None
    postal_code: str | None = None
    locality: str | None = None
    region: str | None = None
    formatted_address: str | None = None
    components: AddressComponents = Field(default_factory=AddressComponents)

    @property
    def ok(self) -> bool:
        return True


class AddressFallback(BaseModel):
    status: Literal["fallback"] = "fallback"
    lat: float
    lon: float
    formatted_address: str
    error: str

    @property
    def ok(self) -> bool:
        return False


class AddressSuggestion(BaseModel):
    text: str
    place: str | None = None
    lat: float
    lon: float
    type: str | None = None


class PropertyLocation(BaseModel):
    """The address + coordinate view of a property, as seen by enrichment."""

    model_config = ConfigDict(from_attributes=True)

    id: int | None = None
    street: str | None = None
    house_number: str | None = None
    postal_code: str | None = None
    city: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    formatted_address: str | None = None
    confidence: float | None = None
    has_valid_coordinates: bool = False
    geocode_error: str | None = None


class CacheStatsReport(BaseModel):
    entries: int
    hits: int
    misses: int
    hit_rate: float
