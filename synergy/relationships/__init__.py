"""
Pharmacy Relationship Module

Aggregation, snapshot persistence and synergy queries.
"""
from .aggregator import (
    AggregationDiagnostics,
    AggregationResult,
    RelationshipAggregator,
    RelationshipCandidate,
)
from .pipeline import sync_pharmacy_relationships
from .queries import (
    EntityType,
    ManufacturerStat,
    RelationshipQueryService,
    RelationshipSummary,
    SynergyCheck,
)
from .resolver import EntityResolver
from .writer import SnapshotWriter, SnapshotWriteResult, WriteStatus

__all__ = [
    "AggregationDiagnostics",
    "AggregationResult",
    "RelationshipAggregator",
    "RelationshipCandidate",
    "sync_pharmacy_relationships",
    "EntityType",
    "ManufacturerStat",
    "RelationshipQueryService",
    "RelationshipSummary",
    "SynergyCheck",
    "EntityResolver",
    "SnapshotWriter",
    "SnapshotWriteResult",
    "WriteStatus",
]
