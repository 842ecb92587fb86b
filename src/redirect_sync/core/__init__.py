"""Core input handling - CSV reading, encoding and validation."""

from .csv_io import (
    encode,
    format_row,
    header_line,
    normalize_path,
    read_records,
    sort_key,
    write_paths,
)
from .validator import format_violations, validate_records

__all__ = [
    "encode",
    "format_row",
    "header_line",
    "normalize_path",
    "read_records",
    "sort_key",
    "write_paths",
    "format_violations",
    "validate_records",
]
