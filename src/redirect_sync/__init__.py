"""Redirect Sync - resumable bulk export, import and delete of URL redirects."""

from .cli import app
from .config import SyncConfig

__version__ = "0.1.0"
__all__ = ["app", "SyncConfig"]
