"""
Raw Order Records

Order rows as exported by the market-data sync. Records are validated into
`RawOrderRecord` and live only for the duration of one aggregation run.

Supports reading exports from:
- CSV
- JSON / JSON Lines
- Parquet
"""

from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import polars as pl
import structlog
from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = structlog.get_logger(__name__)

NULL_VALUES = ["", "NULL", "null", "None", "NA", "N/A"]


def _number_to_str(v: Any) -> Any:
    if isinstance(v, (int, float)) and not isinstance(v, bool):
        return str(int(v)) if float(v).is_integer() else str(v)
    return v


class FileFormat(str, Enum):
    """Supported export formats"""
    CSV = "csv"
    JSON = "json"
    JSONL = "jsonl"
    PARQUET = "parquet"


class RawOrderRecord(BaseModel):
    """
    One order line from the upstream export.

    Accepts the export's column names (``PharmacyName``, ``ProductStrainName``...)
    as well as the snake_case field names. Blank strings are read as missing.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: Optional[str] = Field(default=None, alias="ID")
    status: Optional[str] = Field(default=None, alias="Status")
    order_date: Optional[str] = Field(default=None, alias="OrderDate")
    quantity: Optional[float] = Field(default=None, alias="Quantity", description="Grams")
    total_price: Optional[float] = Field(default=None, alias="TotalPrice")
    manufacturer_name: Optional[str] = Field(default=None, alias="ProductManufacturer")
    strain_name: Optional[str] = Field(default=None, alias="ProductStrainName")
    brand_name: Optional[str] = Field(default=None, alias="ProductBrand")
    pharmacy_name: Optional[str] = Field(default=None, alias="PharmacyName")
    pharmacy: Optional[str] = Field(default=None, alias="Pharmacy")
    product_name: Optional[str] = Field(default=None, alias="Product")

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> Any:
        """Numeric order ids are kept as strings"""
        return _number_to_str(v)

    @field_validator("order_date", mode="before")
    @classmethod
    def coerce_order_date(cls, v: Any) -> Any:
        if isinstance(v, (datetime, date)):
            return v.isoformat()
        return v

    @field_validator(
        "status",
        "manufacturer_name",
        "strain_name",
        "brand_name",
        "pharmacy_name",
        "pharmacy",
        "product_name",
        mode="before",
    )
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        """Treat empty and whitespace-only names as missing; digit-only names arrive as numbers"""
        if isinstance(v, str) and not v.strip():
            return None
        return _number_to_str(v)

    @field_validator("quantity", "total_price", mode="before")
    @classmethod
    def blank_number_to_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def effective_pharmacy_name(self) -> Optional[str]:
        """Pharmacy name, falling back to the alternate ``Pharmacy`` column"""
        return self.pharmacy_name or self.pharmacy

    @property
    def volume_grams(self) -> float:
        return self.quantity or 0.0


def _detect_format(path: Path) -> FileFormat:
    suffix = path.suffix.lower().lstrip(".")
    if suffix == "ndjson":
        suffix = FileFormat.JSONL.value
    try:
        return FileFormat(suffix)
    except ValueError:
        raise ValueError(f"Unsupported file format: {path.suffix}") from None


def _read_frame(path: Path, file_format: FileFormat) -> pl.DataFrame:
    """Read an export file with Polars"""
    if file_format == FileFormat.CSV:
        # Every column as text; a strain named "1024" must not become an integer
        return pl.read_csv(path, null_values=NULL_VALUES, infer_schema_length=0)
    if file_format == FileFormat.JSON:
        return pl.read_json(path)
    if file_format == FileFormat.JSONL:
        return pl.read_ndjson(path)
    return pl.read_parquet(path)


def read_order_rows(path: Union[str, Path]) -> List[Dict[str, Any]]:
    """
    Read an order export file into raw rows.

    Rows are not validated here. The aggregator validates each row into a
    `RawOrderRecord` and counts the ones that fail, so a single malformed
    line never rejects the whole export.

    Args:
        path: CSV, JSON, JSONL/NDJSON or Parquet file

    Returns:
        List of column -> value dicts in file order

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the extension is not a supported format
    """
    path = Path(path)
    file_format = _detect_format(path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")

    rows = _read_frame(path, file_format).to_dicts()

    logger.info(
        "Read order export",
        file=str(path),
        format=file_format.value,
        rows=len(rows),
    )
    return rows
