"""
Relationship Aggregator

Folds one statistical date's order records into relationship candidates keyed
by (pharmacy, manufacturer?, product?, strain?), counting orders and summing
volume in grams.

Records that cannot be anchored are dropped and counted, never raised:
- row fails validation (e.g. a non-numeric quantity)
- no pharmacy name on the record
- pharmacy name not in the catalog
- pharmacy found but no manufacturer, product or strain resolved
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple, Union

import structlog
from pydantic import ValidationError

from synergy.ingestion.order_records import RawOrderRecord
from .resolver import EntityResolver

logger = structlog.get_logger(__name__)

CompositeKey = Tuple[int, Optional[int], Optional[int], Optional[int]]
OrderRow = Union[RawOrderRecord, Dict[str, Any]]


@dataclass
class RelationshipCandidate:
    """A snapshot row ready to be written"""
    pharmacy_id: int
    manufacturer_id: Optional[int]
    product_id: Optional[int]
    strain_id: Optional[int]
    stat_date: date
    order_count: int = 0
    sales_volume_grams: float = 0.0

    @property
    def key(self) -> CompositeKey:
        return (self.pharmacy_id, self.manufacturer_id, self.product_id, self.strain_id)


@dataclass
class AggregationDiagnostics:
    """Skip counters and unmatched names collected during one run"""
    total_records: int = 0
    matched: int = 0
    invalid_records: int = 0
    no_pharmacy_name: int = 0
    pharmacy_not_found: int = 0
    no_relationships: int = 0
    unmatched_pharmacies: Set[str] = field(default_factory=set)
    unmatched_manufacturers: Set[str] = field(default_factory=set)
    unmatched_products: Set[str] = field(default_factory=set)
    unmatched_strains: Set[str] = field(default_factory=set)
    invalid_samples: List[str] = field(default_factory=list)

    @property
    def discarded(self) -> int:
        return (
            self.invalid_records
            + self.no_pharmacy_name
            + self.pharmacy_not_found
            + self.no_relationships
        )

    def samples(self, limit: int) -> Dict[str, List[str]]:
        """Sorted sample of at most `limit` unmatched names per kind"""
        return {
            "pharmacies": sorted(self.unmatched_pharmacies)[:limit],
            "manufacturers": sorted(self.unmatched_manufacturers)[:limit],
            "products": sorted(self.unmatched_products)[:limit],
            "strains": sorted(self.unmatched_strains)[:limit],
        }


@dataclass
class AggregationResult:
    stat_date: date
    candidates: List[RelationshipCandidate]
    diagnostics: AggregationDiagnostics


class RelationshipAggregator:
    """
    Aggregates order records into relationship candidates for one date.

    The aggregate map is local to each `aggregate()` call, so one aggregator
    may serve several dates without state leaking between them.

    Example:
        resolver = EntityResolver.from_catalog(catalog)
        aggregator = RelationshipAggregator(resolver)
        result = aggregator.aggregate(date(2025, 1, 15), records)
    """

    def __init__(self, resolver: EntityResolver, sample_limit: int = 3):
        self.resolver = resolver
        self.sample_limit = sample_limit

    def aggregate(
        self,
        stat_date: date,
        records: Sequence[OrderRow],
    ) -> AggregationResult:
        """
        Fold `records` into candidates for `stat_date`.

        Raw export rows are validated one by one; a row that fails is counted
        under `invalid_records` and left out.
        """
        diagnostics = AggregationDiagnostics(total_records=len(records))
        relationships: Dict[CompositeKey, RelationshipCandidate] = {}

        logger.info(
            "Aggregating pharmacy relationships",
            stat_date=stat_date.isoformat(),
            records=len(records),
        )

        for row in records:
            record = self._validate(row, diagnostics)
            if record is None:
                continue

            pharmacy_name = record.effective_pharmacy_name
            if not pharmacy_name:
                diagnostics.no_pharmacy_name += 1
                continue

            pharmacy_id = self.resolver.resolve_pharmacy(pharmacy_name)
            if pharmacy_id is None:
                diagnostics.pharmacy_not_found += 1
                diagnostics.unmatched_pharmacies.add(pharmacy_name)
                continue

            manufacturer_id = self.resolver.resolve_manufacturer(record.manufacturer_name)
            product_id = self.resolver.resolve_product(record.product_name)
            strain_id = self.resolver.resolve_strain(record.strain_name)

            if record.manufacturer_name and manufacturer_id is None:
                diagnostics.unmatched_manufacturers.add(record.manufacturer_name)
            if record.product_name and product_id is None:
                diagnostics.unmatched_products.add(record.product_name)
            if record.strain_name and strain_id is None:
                diagnostics.unmatched_strains.add(record.strain_name)

            if manufacturer_id is None and product_id is None and strain_id is None:
                diagnostics.no_relationships += 1
                continue

            diagnostics.matched += 1

            key = (pharmacy_id, manufacturer_id, product_id, strain_id)
            candidate = relationships.get(key)
            if candidate is None:
                candidate = RelationshipCandidate(
                    pharmacy_id=pharmacy_id,
                    manufacturer_id=manufacturer_id,
                    product_id=product_id,
                    strain_id=strain_id,
                    stat_date=stat_date,
                )
                relationships[key] = candidate

            candidate.order_count += 1
            candidate.sales_volume_grams += record.volume_grams

        self._log_diagnostics(stat_date, diagnostics, len(relationships))

        return AggregationResult(
            stat_date=stat_date,
            candidates=list(relationships.values()),
            diagnostics=diagnostics,
        )

    def _validate(self, row: OrderRow, diagnostics: AggregationDiagnostics) -> Optional[RawOrderRecord]:
        if isinstance(row, RawOrderRecord):
            return row
        try:
            return RawOrderRecord.model_validate(row)
        except ValidationError as e:
            diagnostics.invalid_records += 1
            if len(diagnostics.invalid_samples) < self.sample_limit:
                diagnostics.invalid_samples.append(_describe_invalid(row, e))
            return None

    def _log_diagnostics(
        self,
        stat_date: date,
        diagnostics: AggregationDiagnostics,
        unique_relationships: int,
    ) -> None:
        logger.info(
            "Order processing stats",
            stat_date=stat_date.isoformat(),
            matched=diagnostics.matched,
            invalid_records=diagnostics.invalid_records,
            no_pharmacy_name=diagnostics.no_pharmacy_name,
            pharmacy_not_found=diagnostics.pharmacy_not_found,
            no_relationships=diagnostics.no_relationships,
            unique_relationships=unique_relationships,
        )

        unmatched = {
            "pharmacies": diagnostics.unmatched_pharmacies,
            "manufacturers": diagnostics.unmatched_manufacturers,
            "products": diagnostics.unmatched_products,
            "strains": diagnostics.unmatched_strains,
        }
        samples = diagnostics.samples(self.sample_limit)
        for kind, names in unmatched.items():
            if names:
                logger.warning(
                    f"Unmatched {kind}",
                    stat_date=stat_date.isoformat(),
                    count=len(names),
                    sample=samples[kind],
                )

        if diagnostics.invalid_records:
            logger.warning(
                "Invalid order records",
                stat_date=stat_date.isoformat(),
                count=diagnostics.invalid_records,
                sample=diagnostics.invalid_samples,
            )


def _describe_invalid(row: Any, error: ValidationError) -> str:
    """Short `<order id>: <field> <message>` line for the log sample"""
    first = error.errors()[0]
    location = ".".join(str(part) for part in first["loc"]) or "row"
    order_id = row.get("ID", row.get("id")) if isinstance(row, dict) else None
    return f"{order_id if order_id is not None else '?'}: {location} {first['msg']}"
