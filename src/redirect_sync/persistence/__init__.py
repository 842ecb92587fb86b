"""Persistence layer for transfer checkpoints."""

from .checkpoint import CheckpointEntry, CheckpointStore, compute_fingerprint

__all__ = ["CheckpointEntry", "CheckpointStore", "compute_fingerprint"]
