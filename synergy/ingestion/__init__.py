"""
Data Ingestion Module
"""
from .catalog import CatalogEntry, CatalogListing, load_catalog
from .order_records import RawOrderRecord, read_order_rows

__all__ = [
    "CatalogEntry",
    "CatalogListing",
    "load_catalog",
    "RawOrderRecord",
    "read_order_rows",
]
