"""Tests for the redirect-sync command line."""

import json
import logging

import httpx
import pytest
import respx
import structlog
from typer.testing import CliRunner

from src.redirect_sync.cli import app
from src.redirect_sync.execution.runner import TransferRunner
from src.redirect_sync.utils.exceptions import TransferInterrupted
from tests.helpers import API_URL, write_redirect_csv

runner = CliRunner()


def saved_routes(route) -> list[list[str]]:
    """Source paths sent in each SaveMany request."""
    batches = []
    for call in route.calls:
        variables = json.loads(call.request.content.decode())["variables"]
        batches.append([r["from"] for r in variables["routes"]])
    return batches


@pytest.fixture(autouse=True)
def cli_env(tmp_path, monkeypatch):
    """Run every command in a temp dir against the fake endpoint."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("REDIRECTS_API_URL", API_URL)
    monkeypatch.setenv("REDIRECTS_API_TOKEN", "secret")
    monkeypatch.setenv("REDIRECTS_ACCOUNT", "acme")
    for name in ("EXPORT_CONCURRENCY", "EXPORT_BATCH_SIZE", "LOG_LEVEL", "LOG_FORMAT"):
        monkeypatch.delenv(name, raising=False)
    yield tmp_path
    structlog.reset_defaults()
    logging.basicConfig(handlers=[logging.NullHandler()], force=True)


class TestCLI:
    """Test command parsing and exit codes."""

    def test_help(self):
        result = runner.invoke(app, ["--help"])

        assert result.exit_code == 0
        assert "export" in result.stdout
        assert "import" in result.stdout
        assert "delete" in result.stdout

    def test_missing_remote_configuration(self, monkeypatch, tmp_path):
        monkeypatch.delenv("REDIRECTS_API_URL")
        path = write_redirect_csv(tmp_path / "in.csv", [{"from": "/a", "to": "/b"}])

        result = runner.invoke(app, ["import", str(path)])

        assert result.exit_code == 1
        assert "Rewriter API not configured" in result.stdout

    def test_missing_config_file(self, tmp_path):
        result = runner.invoke(app, ["export", "out.csv", "--config", str(tmp_path / "nope.yaml")])

        assert result.exit_code == 1
        assert "Configuration file not found" in result.stdout

    def test_import_missing_file(self):
        result = runner.invoke(app, ["import", "nope.csv"])
        assert result.exit_code == 2

    def test_invalid_batch_size(self, tmp_path):
        path = write_redirect_csv(tmp_path / "in.csv", [{"from": "/a", "to": "/b"}])

        result = runner.invoke(app, ["import", str(path), "-b", "0"])

        assert result.exit_code == 2

    @respx.mock
    def test_import(self, tmp_path):
        """Rows are sent in batches of the requested size."""
        route = respx.post(API_URL).mock(
            return_value=httpx.Response(200, json={"data": {"redirect": {"saveMany": True}}})
        )
        rows = [{"from": f"/old/{i}", "to": f"/new/{i}"} for i in range(5)]
        path = write_redirect_csv(tmp_path / "in.csv", rows)

        result = runner.invoke(app, ["import", str(path), "-b", "2", "--yes"])

        assert result.exit_code == 0, result.stdout
        assert [len(b) for b in saved_routes(route)] == [2, 2, 1]
        assert "Finished!" in result.stdout
        assert route.calls[0].request.headers["Authorization"] == "Bearer secret"

    @respx.mock
    def test_last_batch_size_flag_wins(self, tmp_path):
        route = respx.post(API_URL).mock(
            return_value=httpx.Response(200, json={"data": {"redirect": {"saveMany": True}}})
        )
        rows = [{"from": f"/old/{i}", "to": f"/new/{i}"} for i in range(5)]
        path = write_redirect_csv(tmp_path / "in.csv", rows)

        result = runner.invoke(app, ["import", str(path), "-b", "5", "--batchSize", "2", "-y"])

        assert result.exit_code == 0, result.stdout
        assert [len(b) for b in saved_routes(route)] == [2, 2, 1]

    @respx.mock
    def test_delete(self, tmp_path):
        route = respx.post(API_URL).mock(
            return_value=httpx.Response(200, json={"data": {"redirect": {"deleteMany": True}}})
        )
        path = tmp_path / "delete.csv"
        path.write_text("from\n/a\n/b\n", encoding="utf-8")

        result = runner.invoke(app, ["delete", str(path), "-y"])

        assert result.exit_code == 0, result.stdout
        variables = json.loads(route.calls[0].request.content.decode())["variables"]
        assert sorted(variables["paths"]) == ["/a", "/b"]

    @respx.mock
    def test_invalid_rows_exit_1(self, tmp_path):
        route = respx.post(API_URL)
        path = write_redirect_csv(tmp_path / "in.csv", [{"from": "/a", "to": ""}])

        result = runner.invoke(app, ["import", str(path), "-y"])

        assert result.exit_code == 1
        assert "validation errors" in result.stdout
        assert not route.called

    @respx.mock
    def test_graphql_error_exit_1(self, tmp_path):
        respx.post(API_URL).mock(
            return_value=httpx.Response(200, json={"errors": [{"message": "Forbidden"}]})
        )

        result = runner.invoke(app, ["export", "out.csv", "-y"])

        assert result.exit_code == 1
        assert "Forbidden" in result.stdout

    def test_interrupt_exit_130(self, mocker):
        mocker.patch.object(TransferRunner, "run", side_effect=TransferInterrupted())

        result = runner.invoke(app, ["export", "out.csv", "-y"])

        assert result.exit_code == 130
        assert "Interrupted." in result.stdout
