"""Redirect CSV reading and writing.

Wire Format:
-----------
```
from;to;type;endDate;binding
"/old-path";"/new-path";"PERMANENT";"";"b1"
```

- Fields are separated by ';' and, when exported, always double-quoted with
  embedded quotes doubled.
- A ';' inside a path is written as '%3B'. Reading never decodes it: the
  value that was exported is the value that gets imported.
- Delete files only need the 'from' column.

Canonical Order:
---------------
Rows are sorted by md5(normalize_path(from)). Batches are slices of this
order, so a checkpointed batch index points at the same rows every time the
same file is read.
"""

import csv
import hashlib
from collections.abc import Iterable
from pathlib import Path
from typing import Any
from urllib.parse import quote, unquote

import structlog

from ..constants import DELIMITER, ENCODED_FIELDS, FIELDS
from ..utils.exceptions import CSVReadError

logger = structlog.get_logger(__name__)

_ENCODED_DELIMITER = quote(DELIMITER, safe="")


def encode(value: str) -> str:
    """
    Percent-encode every delimiter occurrence in a path.

    Args:
        value: Raw path

    Returns:
        Path that can be written into a CSV cell without a bare delimiter
    """
    return value.replace(DELIMITER, _ENCODED_DELIMITER)


def header_line() -> str:
    """Header row of exported files (unquoted)."""
    return DELIMITER.join(FIELDS) + "\n"


def format_row(record: dict[str, Any]) -> str:
    """
    Format one route as a CSV line in the fixed export column order.

    Args:
        record: Route dictionary using API field names

    Returns:
        Line with every field quoted, terminated by a newline
    """
    cells = []
    for name in FIELDS:
        value = record.get(name)
        text = "" if value is None else str(value)
        if name in ENCODED_FIELDS:
            text = encode(text)
        cells.append('"' + text.replace('"', '""') + '"')
    return DELIMITER.join(cells) + "\n"


def normalize_path(path: str) -> str:
    """
    Identity key of a redirect source path.

    URI-decodes, lowercases and strips trailing slashes, so '/Foo/' and
    '/foo' identify the same redirect.

    Raises:
        UnicodeDecodeError: If the path holds an invalid percent-encoded sequence
    """
    try:
        decoded = unquote(path, errors="strict")
    except UnicodeDecodeError:
        logger.error("Error in URI", path=path)
        raise
    return decoded.lower().rstrip("/")


def sort_key(record: dict[str, Any]) -> str:
    """Canonical ordering key: hex MD5 of the normalized 'from' path."""
    source = record.get("from") or ""
    return hashlib.md5(normalize_path(str(source)).encode("utf-8")).hexdigest()


def read_records(path: str | Path) -> list[dict[str, Any]]:
    """
    Read a redirect CSV into row dictionaries sorted in canonical order.

    Blank lines and rows whose cells are all empty are skipped; cells beyond
    the header width are dropped. Values are not type-checked here, see
    core.validator.

    Args:
        path: CSV file path

    Returns:
        Rows keyed by header name, sorted by sort_key

    Raises:
        CSVReadError: If the file cannot be read or parsed
    """
    csv_path = Path(path)
    logger.info("Reading CSV", csv_path=str(csv_path))

    try:
        with open(csv_path, encoding="utf-8-sig", newline="") as f:
            reader = csv.DictReader(f, delimiter=DELIMITER, quotechar='"')
            headers = [h.strip() for h in (reader.fieldnames or [])]
            if not headers:
                logger.warning("empty_csv", message="CSV file is empty", csv_path=str(csv_path))
                return []
            if "from" not in headers:
                raise CSVReadError(str(csv_path), "missing required column 'from'")
            reader.fieldnames = headers

            rows = []
            for row in reader:
                row.pop(None, None)
                if all(v is None or not str(v).strip() for v in row.values()):
                    continue
                rows.append(row)

        rows.sort(key=sort_key)
    except CSVReadError as e:
        logger.error("Error reading file", csv_path=str(csv_path), error=str(e))
        raise
    except (OSError, UnicodeDecodeError, csv.Error) as e:
        logger.error("Error reading file", csv_path=str(csv_path), error=str(e))
        raise CSVReadError(str(csv_path), str(e), original_error=e) from e

    logger.info("CSV read complete", csv_path=str(csv_path), rows=len(rows))
    return rows


def write_paths(path: str | Path, paths: Iterable[str]) -> int:
    """
    Write a delete-input CSV holding only a 'from' column.

    Paths are written verbatim; cells containing the delimiter are quoted
    so they read back unchanged.

    Args:
        path: Destination file (overwritten)
        paths: Source paths to delete

    Returns:
        Number of paths written
    """
    count = 0
    with open(path, "w", encoding="utf-8", newline="") as f:
        writer = csv.writer(f, delimiter=DELIMITER, lineterminator="\n")
        writer.writerow(["from"])
        for source in paths:
            writer.writerow([source])
            count += 1
    return count
