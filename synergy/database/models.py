"""
Database Models

Catalog tables are owned by catalog management and only read here:
- Pharmacy: dispensing pharmacies
- Manufacturer: producers, with an optional logo for display
- Product: pharmaceutical products
- Strain: strain genetics / cultivars

Relationship snapshot table, owned by the aggregation job:
- PharmacyProductRelationship: one row per composite key
  (pharmacy, manufacturer?, product?, strain?) per statistical date
"""

from datetime import date, datetime
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


# =============================================================================
# CATALOG TABLES
# =============================================================================

class Pharmacy(Base):
    """Pharmacy catalog entry"""
    __tablename__ = "pharmacies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    city: Mapped[Optional[str]] = mapped_column(String(100))
    state: Mapped[Optional[str]] = mapped_column(String(100))

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class Manufacturer(Base):
    """Manufacturer catalog entry"""
    __tablename__ = "manufacturers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    logo_url: Mapped[Optional[str]] = mapped_column(String(500))

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class Product(Base):
    """Pharmaceutical product catalog entry"""
    __tablename__ = "products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    __table_args__ = (
        Index("ix_products_name", "name"),
    )


class Strain(Base):
    """Strain genetics catalog entry"""
    __tablename__ = "cannabis_strains"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    __table_args__ = (
        Index("ix_cannabis_strains_name", "name"),
    )


# =============================================================================
# RELATIONSHIP SNAPSHOTS
# =============================================================================

class PharmacyProductRelationship(Base):
    """
    Relationship Snapshot Row

    Aggregated order count and volume for one composite key on one
    statistical date. Rows for a date are replaced as a whole by each
    aggregation run for that date.

    No unique constraint covers the composite key: the nullable
    manufacturer/product/strain columns would compare as distinct.
    """
    __tablename__ = "pharmacy_product_relationships"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    pharmacy_id: Mapped[int] = mapped_column(
        ForeignKey("pharmacies.id"), nullable=False
    )
    manufacturer_id: Mapped[Optional[int]] = mapped_column(ForeignKey("manufacturers.id"))
    product_id: Mapped[Optional[int]] = mapped_column(ForeignKey("products.id"))
    strain_id: Mapped[Optional[int]] = mapped_column(ForeignKey("cannabis_strains.id"))

    stat_date: Mapped[date] = mapped_column(Date, nullable=False)

    # Metrics
    order_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    sales_volume_grams: Mapped[float] = mapped_column(Float, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    __table_args__ = (
        CheckConstraint(
            "manufacturer_id IS NOT NULL OR product_id IS NOT NULL OR strain_id IS NOT NULL",
            name="ck_pharmacy_relationships_has_dimension",
        ),
        Index("ix_pharmacy_relationships_date", "stat_date"),
        Index("ix_pharmacy_relationships_pharmacy_date", "pharmacy_id", "stat_date"),
        Index("ix_pharmacy_relationships_strain_date", "strain_id", "stat_date"),
        Index("ix_pharmacy_relationships_manufacturer_date", "manufacturer_id", "stat_date"),
    )

    def __repr__(self) -> str:
        return (
            f"<PharmacyProductRelationship pharmacy={self.pharmacy_id} "
            f"manufacturer={self.manufacturer_id} product={self.product_id} "
            f"strain={self.strain_id} date={self.stat_date}>"
        )
