"""
Catalog Listings

Snapshot of the four catalog tables taken at the start of an aggregation run.
"""

from dataclasses import dataclass, field
from typing import List, NamedTuple

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from synergy.database.models import Manufacturer, Pharmacy, Product, Strain

logger = structlog.get_logger(__name__)


class CatalogEntry(NamedTuple):
    id: int
    name: str


@dataclass
class CatalogListing:
    """Current (id, name) listing for every entity kind"""
    pharmacies: List[CatalogEntry] = field(default_factory=list)
    manufacturers: List[CatalogEntry] = field(default_factory=list)
    products: List[CatalogEntry] = field(default_factory=list)
    strains: List[CatalogEntry] = field(default_factory=list)


async def load_catalog(session: AsyncSession) -> CatalogListing:
    """
    Load the catalog listings for one run.

    AsyncSession does not run statements concurrently, so the four tables
    are read one after another.
    """
    listing = CatalogListing()
    for attr, model in (
        ("pharmacies", Pharmacy),
        ("manufacturers", Manufacturer),
        ("products", Product),
        ("strains", Strain),
    ):
        result = await session.execute(select(model.id, model.name).order_by(model.id))
        setattr(listing, attr, [CatalogEntry(row.id, row.name) for row in result])

    logger.info(
        "Catalog loaded",
        pharmacies=len(listing.pharmacies),
        manufacturers=len(listing.manufacturers),
        products=len(listing.products),
        strains=len(listing.strains),
    )
    return listing
