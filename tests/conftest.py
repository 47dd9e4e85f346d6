"""
Test Suite Configuration
"""
from datetime import date
from typing import AsyncGenerator, Dict, List, Optional

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from synergy.config import Settings
from synergy.database.connection import create_session_factory
from synergy.database.models import (
    Base,
    Manufacturer,
    Pharmacy,
    PharmacyProductRelationship,
    Product,
    Strain,
)
from synergy.ingestion.catalog import CatalogEntry, CatalogListing
from synergy.ingestion.order_records import RawOrderRecord
from synergy.relationships.aggregator import RelationshipCandidate

STAT_DATE = date(2025, 1, 15)

PHARMACIES = [(1, "Green Leaf"), (2, "City Apotheke")]
MANUFACTURERS = [(1, "Acme", "https://cdn.example.com/acme.png"), (2, "Aurora", None), (3, "Tilray", None)]
PRODUCTS = [(1, "Acme Flos 22/1"), (2, "Aurora Pink Kush 20/1")]
STRAINS = [(1, "Pink Kush"), (2, "Gorilla Glue")]


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings"""
    return Settings(app_env="testing")


@pytest.fixture
async def test_engine() -> AsyncGenerator[AsyncEngine, None]:
    """In-memory database shared by every session of one test"""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(test_engine)


@pytest.fixture
async def seeded_catalog(session_factory) -> async_sessionmaker[AsyncSession]:
    """Catalog tables populated with the sample pharmacies, manufacturers, products and strains"""
    async with session_factory() as session:
        async with session.begin():
            session.add_all([Pharmacy(id=i, name=n) for i, n in PHARMACIES])
            session.add_all([Manufacturer(id=i, name=n, logo_url=u) for i, n, u in MANUFACTURERS])
            session.add_all([Product(id=i, name=n) for i, n in PRODUCTS])
            session.add_all([Strain(id=i, name=n) for i, n in STRAINS])
    return session_factory


@pytest.fixture
def catalog_listing() -> CatalogListing:
    """The sample catalog as an in-memory listing"""
    return CatalogListing(
        pharmacies=[CatalogEntry(i, n) for i, n in PHARMACIES],
        manufacturers=[CatalogEntry(i, n) for i, n, _ in MANUFACTURERS],
        products=[CatalogEntry(i, n) for i, n in PRODUCTS],
        strains=[CatalogEntry(i, n) for i, n in STRAINS],
    )


def make_order(
    order_id: str,
    pharmacy: Optional[str] = "Green Leaf",
    manufacturer: Optional[str] = None,
    product: Optional[str] = None,
    strain: Optional[str] = None,
    quantity: Optional[float] = 10.0,
) -> RawOrderRecord:
    """Order record in the upstream export's field names"""
    return RawOrderRecord.model_validate({
        "ID": order_id,
        "Status": "completed",
        "OrderDate": "2025-01-15T10:00:00",
        "Quantity": quantity,
        "TotalPrice": 99.5,
        "ProductManufacturer": manufacturer,
        "ProductStrainName": strain,
        "PharmacyName": pharmacy,
        "Product": product,
    })


def make_candidate(
    pharmacy_id: Optional[int] = 1,
    manufacturer_id: Optional[int] = None,
    product_id: Optional[int] = None,
    strain_id: Optional[int] = None,
    stat_date: date = STAT_DATE,
    order_count: int = 1,
    sales_volume_grams: float = 10.0,
) -> RelationshipCandidate:
    return RelationshipCandidate(
        pharmacy_id=pharmacy_id,
        manufacturer_id=manufacturer_id,
        product_id=product_id,
        strain_id=strain_id,
        stat_date=stat_date,
        order_count=order_count,
        sales_volume_grams=sales_volume_grams,
    )


async def fetch_relationships(
    session_factory: async_sessionmaker[AsyncSession],
    stat_date: Optional[date] = None,
) -> List[PharmacyProductRelationship]:
    """Persisted snapshot rows, optionally for one date"""
    stmt = select(PharmacyProductRelationship).order_by(PharmacyProductRelationship.id)
    if stat_date is not None:
        stmt = stmt.where(PharmacyProductRelationship.stat_date == stat_date)
    async with session_factory() as session:
        result = await session.execute(stmt)
        return list(result.scalars())


def snapshot_keys(rows: List[PharmacyProductRelationship]) -> Dict[tuple, tuple]:
    """Composite key -> (order_count, volume) for comparing snapshots"""
    return {
        (r.pharmacy_id, r.manufacturer_id, r.product_id, r.strain_id, r.stat_date): (
            r.order_count,
            r.sales_volume_grams,
        )
        for r in rows
    }
