"""Import parsing and artifact helpers."""

from asin_tracker.infrastructure.imports.error_artifacts import ImportErrorArtifactStore
from asin_tracker.infrastructure.imports.keepa_csv_parser import (
    KEEPA_HEADER_FIELDS,
    KeepaCsvParser,
    normalize_header,
    parse_number,
)

__all__ = [
    "ImportErrorArtifactStore",
    "KEEPA_HEADER_FIELDS",
    "KeepaCsvParser",
    "normalize_header",
    "parse_number",
]
