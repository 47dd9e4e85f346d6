"""
Entity Resolver

Case-insensitive, exact name-to-id lookups for the four catalog kinds.
Built fresh for every aggregation run since the catalog can change between runs.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional

from synergy.ingestion.catalog import CatalogEntry, CatalogListing


def _index(entries: Iterable[CatalogEntry]) -> Dict[str, int]:
    return {entry.name.lower(): entry.id for entry in entries}


def _lookup(index: Dict[str, int], name: Optional[str]) -> Optional[int]:
    if not name:
        return None
    return index.get(name.lower())


@dataclass(frozen=True)
class EntityResolver:
    """
    Name -> id lookup tables for one run.

    Matching is exact modulo case; no trimming or fuzzy matching is applied.
    """
    pharmacies: Dict[str, int] = field(default_factory=dict)
    manufacturers: Dict[str, int] = field(default_factory=dict)
    products: Dict[str, int] = field(default_factory=dict)
    strains: Dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_catalog(cls, catalog: CatalogListing) -> "EntityResolver":
        return cls(
            pharmacies=_index(catalog.pharmacies),
            manufacturers=_index(catalog.manufacturers),
            products=_index(catalog.products),
            strains=_index(catalog.strains),
        )

    def resolve_pharmacy(self, name: Optional[str]) -> Optional[int]:
        return _lookup(self.pharmacies, name)

    def resolve_manufacturer(self, name: Optional[str]) -> Optional[int]:
        return _lookup(self.manufacturers, name)

    def resolve_product(self, name: Optional[str]) -> Optional[int]:
        return _lookup(self.products, name)

    def resolve_strain(self, name: Optional[str]) -> Optional[int]:
        return _lookup(self.strains, name)
