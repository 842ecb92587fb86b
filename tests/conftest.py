"""Pytest configuration and shared fixtures.

Fixtures are organized by category:
- Config fixtures: SyncConfig tuned for fast tests (no real backoff waits)
- Mock fixtures: Rewriter client mock, recording sleep
- Infrastructure fixtures: Checkpoint store in a temp dir, quiet console

Data builders (routes, pages, CSV files) live in tests/helpers.py.
"""

import io
from pathlib import Path
from unittest.mock import AsyncMock

import pytest
from rich.console import Console

from src.redirect_sync.client.response_models import ExportPage
from src.redirect_sync.client.rewriter import RewriterClient
from src.redirect_sync.config import RemoteConfig, RetryConfig, SyncConfig, TransferConfig
from src.redirect_sync.persistence.checkpoint import CheckpointStore
from tests.helpers import API_URL

# =============================================================================
# Config Fixtures
# =============================================================================


@pytest.fixture
def sync_config() -> SyncConfig:
    """Configuration with fast retries and small batches."""
    return SyncConfig(
        remote=RemoteConfig(url=API_URL, token="test-token", account="acme", workspace="master"),
        retry=RetryConfig(max_retries=2, base_delay=0.0, max_delay=0.0),
        transfer=TransferConfig(
            export_concurrency=2,
            write_batch_size=100,
            batch_size=10,
            concurrency=1,
            page_timeout=5.0,
            max_restarts=2,
            restart_interval=0.0,
        ),
    )


# =============================================================================
# Mock Fixtures
# =============================================================================


@pytest.fixture
def mock_client() -> AsyncMock:
    """Create a mock Rewriter client.

    Mutations succeed by default; export_page must be configured per test,
    usually with FakeRewriter.export_page as side effect.
    """
    client = AsyncMock(spec=RewriterClient)
    client.import_batch.return_value = True
    client.delete_batch.return_value = True
    client.export_page.return_value = ExportPage()
    return client


@pytest.fixture
def no_sleep() -> AsyncMock:
    """Awaitable replacement for asyncio.sleep that records requested delays."""
    return AsyncMock(return_value=None)


# =============================================================================
# Infrastructure Fixtures
# =============================================================================


@pytest.fixture
def store(tmp_path: Path) -> CheckpointStore:
    """Checkpoint store backed by a temp file."""
    return CheckpointStore(tmp_path / ".redirects_metainfo.json")


@pytest.fixture
def console() -> Console:
    """Rich console writing to memory; read output with console.file.getvalue()."""
    return Console(file=io.StringIO(), force_terminal=False, width=200)
