"""
Unit Tests - Relationship Query Service
"""
from datetime import date

import pytest
from sqlalchemy import delete

from synergy.database.models import PharmacyProductRelationship
from synergy.relationships.queries import EntityType, RelationshipQueryService
from synergy.relationships.writer import DateLocks, SnapshotWriter
from tests.conftest import STAT_DATE, make_candidate

EARLIER = date(2025, 1, 10)


@pytest.fixture
async def snapshots(seeded_catalog):
    """
    Two dates of snapshots.

    EARLIER: Green Leaf sells Tilray only.
    STAT_DATE: Green Leaf sells Acme (5 orders over two rows) and Aurora (3),
    City Apotheke sells Acme Pink Kush.
    """
    writer = SnapshotWriter(seeded_catalog, locks=DateLocks())
    await writer.write(EARLIER, [
        make_candidate(manufacturer_id=3, order_count=9, stat_date=EARLIER),
    ])
    await writer.write(STAT_DATE, [
        make_candidate(manufacturer_id=1, strain_id=1, order_count=2, sales_volume_grams=20),
        make_candidate(manufacturer_id=1, product_id=1, order_count=3, sales_volume_grams=30),
        make_candidate(manufacturer_id=2, order_count=3, sales_volume_grams=15),
        make_candidate(pharmacy_id=2, manufacturer_id=1, strain_id=1, order_count=1, sales_volume_grams=5),
        make_candidate(strain_id=2, order_count=4, sales_volume_grams=40),
    ])
    return seeded_catalog


async def run_query(session_factory, method, *args, **kwargs):
    async with session_factory() as session:
        service = RelationshipQueryService(session)
        return await getattr(service, method)(*args, **kwargs)


class TestTopManufacturers:
    """Tests for manufacturer rankings"""

    async def test_pharmacy_ranking_uses_latest_date(self, snapshots):
        stats = await run_query(snapshots, "top_manufacturers_for_pharmacy", 1)

        assert [(s.manufacturer_id, s.order_count) for s in stats] == [(1, 5), (2, 3)]
        assert stats[0].manufacturer_name == "Acme"
        assert stats[0].logo_url == "https://cdn.example.com/acme.png"
        assert stats[0].sales_volume_grams == 50

    async def test_explicit_date(self, snapshots):
        stats = await run_query(snapshots, "top_manufacturers_for_pharmacy", 1, stat_date=EARLIER)

        assert [(s.manufacturer_name, s.order_count) for s in stats] == [("Tilray", 9)]

    async def test_limit(self, snapshots):
        stats = await run_query(snapshots, "top_manufacturers_for_pharmacy", 1, limit=1)

        assert [s.manufacturer_id for s in stats] == [1]

    async def test_zero_limit(self, snapshots):
        assert await run_query(snapshots, "top_manufacturers_for_pharmacy", 1, limit=0) == []

    async def test_latest_date_is_scoped_to_pharmacy(self, seeded_catalog):
        """City Apotheke has a newer snapshot than Green Leaf"""
        writer = SnapshotWriter(seeded_catalog, locks=DateLocks())
        await writer.write(EARLIER, [make_candidate(manufacturer_id=3, order_count=4, stat_date=EARLIER)])
        await writer.write(STAT_DATE, [make_candidate(pharmacy_id=2, manufacturer_id=1)])

        stats = await run_query(seeded_catalog, "top_manufacturers_for_pharmacy", 1)

        assert [(s.manufacturer_id, s.order_count) for s in stats] == [(3, 4)]

    async def test_latest_date_is_scoped_to_strain(self, seeded_catalog):
        writer = SnapshotWriter(seeded_catalog, locks=DateLocks())
        await writer.write(EARLIER, [make_candidate(manufacturer_id=2, strain_id=2, stat_date=EARLIER)])
        await writer.write(STAT_DATE, [make_candidate(manufacturer_id=1, strain_id=1)])

        stats = await run_query(seeded_catalog, "top_manufacturers_for_strain", 2)

        assert [s.manufacturer_id for s in stats] == [2]

    async def test_strain_ranking(self, snapshots):
        stats = await run_query(snapshots, "top_manufacturers_for_strain", 1)

        # Pharmacy 1 and 2 both sell Acme Pink Kush
        assert [(s.manufacturer_id, s.order_count) for s in stats] == [(1, 3)]

    async def test_rows_without_manufacturer_are_excluded(self, snapshots):
        stats = await run_query(snapshots, "top_manufacturers_for_strain", 2)

        assert stats == []

    async def test_no_data(self, seeded_catalog):
        assert await run_query(seeded_catalog, "top_manufacturers_for_pharmacy", 1) == []


class TestSynergyCheck:
    """Tests for the synergy predicate"""

    async def test_strain_and_product_on_separate_rows(self, seeded_catalog):
        writer = SnapshotWriter(seeded_catalog, locks=DateLocks())
        await writer.write(STAT_DATE, [make_candidate(strain_id=1), make_candidate(product_id=2)])

        check = await run_query(
            seeded_catalog, "check_synergy", 1, manufacturer_id=None, product_id=2, strain_id=1,
            stat_date=STAT_DATE,
        )

        assert check.has_pharmacy_strain
        assert check.has_pharmacy_product
        assert not check.has_pharmacy_manufacturer
        assert check.has_full_synergy

    async def test_removing_strain_row_breaks_synergy(self, seeded_catalog):
        writer = SnapshotWriter(seeded_catalog, locks=DateLocks())
        await writer.write(STAT_DATE, [make_candidate(strain_id=1), make_candidate(product_id=2)])

        async with seeded_catalog() as session:
            async with session.begin():
                await session.execute(
                    delete(PharmacyProductRelationship).where(PharmacyProductRelationship.strain_id == 1)
                )

        check = await run_query(seeded_catalog, "check_synergy", 1, product_id=2, strain_id=1, stat_date=STAT_DATE)

        assert not check.has_pharmacy_strain
        assert check.has_pharmacy_product
        assert not check.has_full_synergy

    async def test_manufacturer_can_stand_in_for_product(self, snapshots):
        check = await run_query(snapshots, "check_synergy", 1, manufacturer_id=2, strain_id=1)

        assert check.has_pharmacy_manufacturer
        assert check.has_full_synergy
        assert check.stat_date == STAT_DATE

    async def test_strain_alone_is_not_synergy(self, snapshots):
        check = await run_query(snapshots, "check_synergy", 1, strain_id=1)

        assert check.has_pharmacy_strain
        assert not check.has_full_synergy

    async def test_dimensions_are_scoped_to_pharmacy(self, snapshots):
        """City Apotheke never sold Aurora or Gorilla Glue"""
        check = await run_query(snapshots, "check_synergy", 2, manufacturer_id=2, strain_id=2)

        assert not check.has_pharmacy_strain
        assert not check.has_pharmacy_manufacturer
        assert not check.has_full_synergy

    async def test_only_target_date_counts(self, snapshots):
        check = await run_query(snapshots, "check_synergy", 1, manufacturer_id=3, strain_id=1)

        assert check.has_pharmacy_strain
        assert not check.has_pharmacy_manufacturer
        assert not check.has_full_synergy

    async def test_latest_date_is_scoped_to_pharmacy(self, seeded_catalog):
        """City Apotheke has a newer snapshot than Green Leaf"""
        writer = SnapshotWriter(seeded_catalog, locks=DateLocks())
        await writer.write(EARLIER, [
            make_candidate(strain_id=1, stat_date=EARLIER),
            make_candidate(product_id=2, stat_date=EARLIER),
        ])
        await writer.write(STAT_DATE, [make_candidate(pharmacy_id=2, strain_id=2)])

        check = await run_query(seeded_catalog, "check_synergy", 1, product_id=2, strain_id=1)

        assert check.stat_date == EARLIER
        assert check.has_full_synergy

    async def test_no_data(self, seeded_catalog):
        check = await run_query(seeded_catalog, "check_synergy", 1, product_id=1, strain_id=1)

        assert not check.has_full_synergy
        assert check.stat_date is None


class TestRelationshipSummary:
    """Tests for badge summaries"""

    async def test_pharmacy(self, snapshots):
        summary = await run_query(snapshots, "relationship_summary", EntityType.PHARMACY, 1)

        assert summary.manufacturer_count == 2
        assert summary.pharmacy_count is None
        assert summary.strain_count is None
        assert summary.stat_date == STAT_DATE

    async def test_strain(self, snapshots):
        summary = await run_query(snapshots, "relationship_summary", EntityType.STRAIN, 1)

        assert summary.manufacturer_count == 1
        assert summary.pharmacy_count == 2

    async def test_manufacturer(self, snapshots):
        summary = await run_query(snapshots, "relationship_summary", "manufacturer", 1)

        assert summary.entity_type == EntityType.MANUFACTURER
        assert summary.pharmacy_count == 2
        assert summary.strain_count == 1

    async def test_entity_missing_from_latest_snapshot(self, snapshots):
        """Tilray only appears on the earlier date"""
        summary = await run_query(snapshots, "relationship_summary", EntityType.MANUFACTURER, 3)

        assert summary.stat_date == STAT_DATE
        assert summary.pharmacy_count == 0
        assert summary.strain_count == 0

    async def test_explicit_date(self, snapshots):
        summary = await run_query(
            snapshots, "relationship_summary", EntityType.MANUFACTURER, 3, stat_date=EARLIER
        )

        assert summary.stat_date == EARLIER
        assert summary.pharmacy_count == 1

    async def test_unknown_entity(self, snapshots):
        summary = await run_query(snapshots, "relationship_summary", EntityType.STRAIN, 99)

        assert summary.manufacturer_count == 0
        assert summary.pharmacy_count == 0
        assert summary.stat_date == STAT_DATE

    async def test_no_data(self, seeded_catalog):
        summary = await run_query(seeded_catalog, "relationship_summary", EntityType.PHARMACY, 1)

        assert summary.manufacturer_count == 0
        assert summary.stat_date is None

    async def test_invalid_entity_type(self, snapshots):
        with pytest.raises(ValueError):
            await run_query(snapshots, "relationship_summary", "product", 1)
