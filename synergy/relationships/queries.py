"""
Relationship Query Service

Read-only queries over persisted relationship snapshots, used by the scoring
engine (synergy bonus) and by profile/leaderboard badges.

Every query runs against a single statistical date: the one passed in, or the
latest date that has rows for the query's scope: the pharmacy or strain for
rankings and synergy checks, the whole table for badge summaries. Missing
data gives empty lists, zero counts and false flags.
"""

from datetime import date
from enum import Enum
from typing import List, Optional

import structlog
from pydantic import BaseModel
from sqlalchemy import exists, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from synergy.config import get_settings
from synergy.database.models import Manufacturer, PharmacyProductRelationship

logger = structlog.get_logger(__name__)

Rel = PharmacyProductRelationship


class EntityType(str, Enum):
    """Entity kinds with a relationship summary"""
    PHARMACY = "pharmacy"
    STRAIN = "strain"
    MANUFACTURER = "manufacturer"


class ManufacturerStat(BaseModel):
    """Manufacturer ranked by orders within a scope"""
    manufacturer_id: int
    manufacturer_name: str
    logo_url: Optional[str] = None
    order_count: int
    sales_volume_grams: float


class SynergyCheck(BaseModel):
    """Relationship flags behind the synergy bonus"""
    has_pharmacy_strain: bool = False
    has_pharmacy_product: bool = False
    has_pharmacy_manufacturer: bool = False
    has_full_synergy: bool = False
    stat_date: Optional[date] = None


class RelationshipSummary(BaseModel):
    """Distinct counterparty counts; fields not relevant to the kind stay None"""
    entity_type: EntityType
    entity_id: int
    stat_date: Optional[date] = None
    manufacturer_count: Optional[int] = None
    pharmacy_count: Optional[int] = None
    strain_count: Optional[int] = None


class RelationshipQueryService:
    """
    Queries over relationship snapshots.

    Example:
        async with get_db() as db:
            service = RelationshipQueryService(db)
            check = await service.check_synergy(pharmacy_id=4, product_id=9, strain_id=2)
    """

    def __init__(self, session: AsyncSession, default_limit: Optional[int] = None):
        self.session = session
        if default_limit is None:
            default_limit = get_settings().relationships.default_top_limit
        self.default_limit = default_limit

    async def _resolve_date(self, stat_date: Optional[date], *scope) -> Optional[date]:
        """Explicit date, else the latest date with rows in `scope` (any rows if no scope)"""
        if stat_date is not None:
            return stat_date
        query = select(func.max(Rel.stat_date))
        if scope:
            query = query.where(*scope)
        return await self.session.scalar(query)

    async def _top_manufacturers(
        self,
        scope,
        stat_date: Optional[date],
        limit: Optional[int],
    ) -> List[ManufacturerStat]:
        target_date = await self._resolve_date(stat_date, scope)
        if target_date is None:
            return []

        order_total = func.sum(Rel.order_count)
        result = await self.session.execute(
            select(
                Rel.manufacturer_id,
                Manufacturer.name.label("manufacturer_name"),
                Manufacturer.logo_url,
                order_total.label("order_count"),
                func.sum(Rel.sales_volume_grams).label("sales_volume_grams"),
            )
            .join(Manufacturer, Rel.manufacturer_id == Manufacturer.id)
            .where(scope, Rel.stat_date == target_date)
            .group_by(Rel.manufacturer_id, Manufacturer.name, Manufacturer.logo_url)
            .order_by(order_total.desc(), Rel.manufacturer_id)
            .limit(self.default_limit if limit is None else limit)
        )

        return [
            ManufacturerStat(
                manufacturer_id=row.manufacturer_id,
                manufacturer_name=row.manufacturer_name,
                logo_url=row.logo_url,
                order_count=int(row.order_count or 0),
                sales_volume_grams=float(row.sales_volume_grams or 0),
            )
            for row in result
        ]

    async def top_manufacturers_for_pharmacy(
        self,
        pharmacy_id: int,
        stat_date: Optional[date] = None,
        limit: Optional[int] = None,
    ) -> List[ManufacturerStat]:
        """Manufacturers selling at a pharmacy, most orders first"""
        return await self._top_manufacturers(Rel.pharmacy_id == pharmacy_id, stat_date, limit)

    async def top_manufacturers_for_strain(
        self,
        strain_id: int,
        stat_date: Optional[date] = None,
        limit: Optional[int] = None,
    ) -> List[ManufacturerStat]:
        """Manufacturers selling a strain, most orders first"""
        return await self._top_manufacturers(Rel.strain_id == strain_id, stat_date, limit)

    async def _has_relationship(self, *conditions) -> bool:
        return bool(await self.session.scalar(select(exists().where(*conditions))))

    async def check_synergy(
        self,
        pharmacy_id: int,
        manufacturer_id: Optional[int] = None,
        product_id: Optional[int] = None,
        strain_id: Optional[int] = None,
        stat_date: Optional[date] = None,
    ) -> SynergyCheck:
        """
        Check which relationships a pharmacy has on the target date.

        Each dimension is an independent existence check, so the strain and
        the product (or manufacturer) may come from different snapshot rows.
        Full synergy needs the strain plus the product or the manufacturer.
        """
        target_date = await self._resolve_date(stat_date, Rel.pharmacy_id == pharmacy_id)
        if target_date is None:
            return SynergyCheck()

        base = (Rel.pharmacy_id == pharmacy_id, Rel.stat_date == target_date)

        has_strain = strain_id is not None and await self._has_relationship(
            *base, Rel.strain_id == strain_id
        )
        has_product = product_id is not None and await self._has_relationship(
            *base, Rel.product_id == product_id
        )
        has_manufacturer = manufacturer_id is not None and await self._has_relationship(
            *base, Rel.manufacturer_id == manufacturer_id
        )

        check = SynergyCheck(
            has_pharmacy_strain=has_strain,
            has_pharmacy_product=has_product,
            has_pharmacy_manufacturer=has_manufacturer,
            has_full_synergy=has_strain and (has_product or has_manufacturer),
            stat_date=target_date,
        )

        logger.debug(
            "Synergy check",
            pharmacy_id=pharmacy_id,
            manufacturer_id=manufacturer_id,
            product_id=product_id,
            strain_id=strain_id,
            stat_date=target_date.isoformat(),
            full_synergy=check.has_full_synergy,
        )
        return check

    async def relationship_summary(
        self,
        entity_type: EntityType,
        entity_id: int,
        stat_date: Optional[date] = None,
    ) -> RelationshipSummary:
        """
        Distinct counterparty counts for a badge.

        Without `stat_date` the latest date with any snapshot rows is used, so an
        entity missing from the newest snapshot reports zero counts.

        pharmacy -> manufacturers; strain -> manufacturers and pharmacies;
        manufacturer -> pharmacies and strains.
        """
        entity_type = EntityType(entity_type)
        scope_column = {
            EntityType.PHARMACY: Rel.pharmacy_id,
            EntityType.STRAIN: Rel.strain_id,
            EntityType.MANUFACTURER: Rel.manufacturer_id,
        }[entity_type]
        counted = {
            EntityType.PHARMACY: {"manufacturer_count": Rel.manufacturer_id},
            EntityType.STRAIN: {
                "manufacturer_count": Rel.manufacturer_id,
                "pharmacy_count": Rel.pharmacy_id,
            },
            EntityType.MANUFACTURER: {
                "pharmacy_count": Rel.pharmacy_id,
                "strain_count": Rel.strain_id,
            },
        }[entity_type]

        scope = scope_column == entity_id
        summary = RelationshipSummary(entity_type=entity_type, entity_id=entity_id)
        target_date = await self._resolve_date(stat_date)

        counts = {name: 0 for name in counted}
        if target_date is not None:
            result = await self.session.execute(
                select(
                    *(func.count(func.distinct(column)).label(name) for name, column in counted.items())
                ).where(scope, Rel.stat_date == target_date)
            )
            row = result.one()
            counts = {name: int(getattr(row, name) or 0) for name in counted}

        return summary.model_copy(update={"stat_date": target_date, **counts})
