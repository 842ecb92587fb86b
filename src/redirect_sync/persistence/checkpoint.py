"""Checkpoint store for resumable transfers.

All resume state lives in one JSON document (the "metainfo" file):

    {
        "exports": {"<fingerprint>": {"counter": 0, "data": {"next": "...", "routeCount": 200}}},
        "imports": {"<fingerprint>": {"counter": 3, "data": {}}},
        "deletes": {}
    }

Every save rewrites the whole document through a temp file and os.replace, so
a crash leaves either the previous or the new document on disk, never a
partial one.
"""

import hashlib
import json
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog

from ..models.transfer import OperationType

logger = structlog.get_logger(__name__)

Metainfo = dict[str, dict[str, dict[str, Any]]]


@dataclass
class CheckpointEntry:
    """Resume state of one logical run."""

    counter: int
    data: dict[str, Any] = field(default_factory=dict)


def compute_fingerprint(
    account: str,
    workspace: str,
    path: str | Path,
    content: bytes | None = None,
) -> str:
    """
    Identify one (account, workspace, file) run for checkpoint lookup.

    Args:
        account: Account name
        workspace: Workspace name
        path: Path of the CSV file as given by the user
        content: File bytes; when given, editing the file yields a new fingerprint

    Returns:
        Hex MD5 digest
    """
    seed = f"{account}_{workspace}_{path}"
    if content is not None:
        seed = f"{seed}_{hashlib.md5(content).hexdigest()}"
    return hashlib.md5(seed.encode("utf-8")).hexdigest()


class CheckpointStore:
    """
    JSON-file checkpoint store.

    Features:
    - Fail-soft load (missing or corrupt file reads as empty)
    - Upsert per (operation, fingerprint), other entries preserved
    - Synchronous atomic writes after every change
    """

    def __init__(self, path: str | Path) -> None:
        """
        Initialize CheckpointStore.

        Args:
            path: Location of the metainfo JSON file
        """
        self.path = Path(path)
        self._metainfo: Metainfo | None = None

    def load(self) -> Metainfo:
        """
        Read the metainfo file from disk, replacing the cached snapshot.

        Returns:
            The metainfo mapping; {} when the file is missing or unreadable
        """
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            data = {}
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable checkpoint file", path=str(self.path), error=str(e))
            data = {}

        if not isinstance(data, dict):
            logger.warning(
                "Ignoring malformed checkpoint file",
                path=str(self.path),
                found=type(data).__name__,
            )
            data = {}

        self._metainfo = {k: v for k, v in data.items() if isinstance(v, dict)}
        return self._metainfo

    @property
    def metainfo(self) -> Metainfo:
        """Cached snapshot, loaded from disk on first access."""
        if self._metainfo is None:
            return self.load()
        return self._metainfo

    def get(self, operation: OperationType | str, fingerprint: str) -> CheckpointEntry | None:
        """
        Look up the checkpoint of one run.

        Args:
            operation: Operation namespace (exports, imports, deletes)
            fingerprint: Run fingerprint

        Returns:
            CheckpointEntry or None
        """
        raw = self.metainfo.get(_key(operation), {}).get(fingerprint)
        if not isinstance(raw, dict):
            return None
        try:
            counter = int(raw.get("counter", 0))
        except (TypeError, ValueError):
            logger.warning("Ignoring checkpoint with invalid counter", fingerprint=fingerprint)
            return None
        data = raw.get("data")
        return CheckpointEntry(counter=counter, data=data if isinstance(data, dict) else {})

    def save(
        self,
        operation: OperationType | str,
        fingerprint: str,
        counter: int,
        data: dict[str, Any] | None = None,
    ) -> None:
        """
        Upsert a checkpoint and persist the whole document.

        Args:
            operation: Operation namespace
            fingerprint: Run fingerprint
            counter: Next unprocessed batch index, or pages written for exports
            data: Extra resume state (export cursor, row count, offset)
        """
        metainfo = self.metainfo
        metainfo.setdefault(_key(operation), {})[fingerprint] = {
            "counter": counter,
            "data": data or {},
        }
        self._write(metainfo)

        logger.debug(
            "Checkpoint saved",
            operation=_key(operation),
            fingerprint=fingerprint,
            counter=counter,
        )

    def clear(self, operation: OperationType | str, fingerprint: str) -> None:
        """
        Remove one checkpoint; no-op if it does not exist.

        Args:
            operation: Operation namespace
            fingerprint: Run fingerprint
        """
        entries = self.metainfo.get(_key(operation))
        if not entries or fingerprint not in entries:
            return

        del entries[fingerprint]
        self._write(self.metainfo)

        logger.debug("Checkpoint cleared", operation=_key(operation), fingerprint=fingerprint)

    def _write(self, metainfo: Metainfo) -> None:
        """Atomically replace the metainfo file."""
        directory = self.path.parent
        directory.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", suffix=".tmp", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(metainfo, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise


def _key(operation: OperationType | str) -> str:
    return operation.value if isinstance(operation, OperationType) else str(operation)
