"""
Relational schema (SQLAlchemy ORM) for the geo-relevant part of the marketplace.

Only what proximity search and geocoding touch is mapped here: users (as owners),
properties, their images and their features.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Table,
    Text,
    UniqueConstraint,
    and_,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    pass


property_features = Table(
    "property_features",
    Base.metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("property_id", ForeignKey("properties.id", ondelete="CASCADE"), nullable=False),
    Column("feature_id", ForeignKey("features.id", ondelete="CASCADE"), nullable=False),
    Column("value", String(255)),
    Column("created_at", DateTime, default=utcnow),
    UniqueConstraint("property_id", "feature_id", name="uq_property_feature"),
)


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(50))
    role: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    reset_token: Mapped[str | None] = mapped_column(String(255))
    reset_token_expires_at: Mapped[datetime | None] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    properties: Mapped[list["Property"]] = relationship(back_populates="owner")


class Feature(Base):
    __tablename__ = "features"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    category: Mapped[str] = mapped_column(
        Enum(
            "indoor", "outdoor", "security", "comfort", "energy", "water", "other",
            name="feature_category",
        ),
        nullable=False,
        default="other",
    )
    icon: Mapped[str | None] = mapped_column(String(100))


class PropertyImage(Base):
    __tablename__ = "property_images"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    property_id: Mapped[int] = mapped_column(ForeignKey("properties.id", ondelete="CASCADE"), nullable=False)
    url: Mapped[str] = mapped_column(String(500), nullable=False)
    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    is_primary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class Property(Base):
    __tablename__ = "properties"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    price: Mapped[float] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=False)
    area: Mapped[float] = mapped_column(Float, nullable=False)
    bedrooms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    bathrooms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    street: Mapped[str] = mapped_column(String(255), nullable=False)
    house_number: Mapped[str] = mapped_column(String(20), nullable=False)
    postal_code: Mapped[str] = mapped_column(String(10), nullable=False)
    city: Mapped[str] = mapped_column(String(100), nullable=False)
    latitude: Mapped[float | None] = mapped_column(Float, index=True)
    longitude: Mapped[float | None] = mapped_column(Float, index=True)
    status: Mapped[str] = mapped_column(
        Enum("available", "sold", "pending", name="property_status"),
        nullable=False,
        default="available",
        index=True,
    )
    is_featured: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    owner_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    owner: Mapped[User] = relationship(back_populates="properties")
    images: Mapped[list[PropertyImage]] = relationship(
        cascade="all, delete-orphan",
        order_by=[PropertyImage.position, PropertyImage.id],
    )
    # Read-only view used by search: only primary-flagged images, first one wins.
    primary_images: Mapped[list[PropertyImage]] = relationship(
        primaryjoin=lambda: and_(
            PropertyImage.property_id == Property.id,
            PropertyImage.is_primary.is_(True),
        ),
        order_by=[PropertyImage.position, PropertyImage.id],
        viewonly=True,
    )
    features: Mapped[list[Feature]] = relationship(secondary=property_features, order_by=Feature.id)
