"""Test data builders shared by unit and integration tests."""

import asyncio
from pathlib import Path
from typing import Any

from src.redirect_sync.client.response_models import ExportPage

API_URL = "https://rewriter.example.com/graphql"


def make_routes(count: int, start: int = 0) -> list[dict[str, Any]]:
    """Build route dictionaries as returned by listRedirects."""
    return [
        {
            "from": f"/old/{i}",
            "to": f"/new/{i}",
            "type": "PERMANENT" if i % 2 == 0 else "TEMPORARY",
            "endDate": None,
            "binding": "b1",
        }
        for i in range(start, start + count)
    ]


def paginate(routes: list[dict[str, Any]], page_size: int) -> dict[str | None, ExportPage]:
    """
    Split routes into pages keyed by the cursor that requests them.

    The first page is keyed by None; page N is requested with cursor "cN".
    """
    chunks = [routes[i : i + page_size] for i in range(0, len(routes), page_size)] or [[]]
    pages: dict[str | None, ExportPage] = {}
    for index, chunk in enumerate(chunks):
        cursor = None if index == 0 else f"c{index}"
        next_cursor = f"c{index + 1}" if index + 1 < len(chunks) else None
        pages[cursor] = ExportPage(routes=chunk, next=next_cursor)
    return pages


def write_redirect_csv(path: Path, rows: list[dict[str, str]]) -> Path:
    """Write an import CSV with the standard header."""
    lines = ["from;to;type;endDate;binding"]
    for row in rows:
        lines.append(
            ";".join(
                row.get(field, "") or "" for field in ("from", "to", "type", "endDate", "binding")
            )
        )
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


class FakeRewriter:
    """Serves pre-built export pages by cursor and records every request."""

    def __init__(self, pages: dict[str | None, ExportPage], delay: float = 0.0) -> None:
        self.pages = pages
        self.delay = delay
        self.cursors: list[str | None] = []

    async def export_page(self, cursor: str | None = None) -> ExportPage:
        self.cursors.append(cursor)
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.pages[cursor]
