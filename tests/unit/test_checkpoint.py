"""Unit tests for the JSON checkpoint store."""

import json

import pytest

from src.redirect_sync.models.transfer import OperationType
from src.redirect_sync.persistence.checkpoint import (
    CheckpointEntry,
    CheckpointStore,
    compute_fingerprint,
)


class TestComputeFingerprint:
    """Test run fingerprints."""

    def test_deterministic(self):
        """Same inputs give the same fingerprint."""
        assert compute_fingerprint("acme", "master", "out.csv") == compute_fingerprint(
            "acme", "master", "out.csv"
        )

    def test_depends_on_every_part(self):
        """Account, workspace and path all change the fingerprint."""
        base = compute_fingerprint("acme", "master", "out.csv")
        assert compute_fingerprint("other", "master", "out.csv") != base
        assert compute_fingerprint("acme", "dev", "out.csv") != base
        assert compute_fingerprint("acme", "master", "other.csv") != base

    def test_content_changes_fingerprint(self):
        """Editing the input file yields a new fingerprint."""
        first = compute_fingerprint("acme", "master", "in.csv", b"from\n/a\n")
        second = compute_fingerprint("acme", "master", "in.csv", b"from\n/b\n")
        assert first != second
        assert first != compute_fingerprint("acme", "master", "in.csv")


class TestCheckpointStore:
    """Test CheckpointStore load/save/clear."""

    @pytest.fixture(autouse=True)
    def setup_method(self, tmp_path):
        """Set up test fixtures."""
        self.path = tmp_path / ".redirects_metainfo.json"
        self.store = CheckpointStore(self.path)

    def test_load_missing_file(self):
        """A missing file reads as empty."""
        assert self.store.load() == {}

    def test_load_corrupt_file(self):
        """Unparseable JSON reads as empty instead of failing."""
        self.path.write_text("{not json", encoding="utf-8")
        assert self.store.load() == {}

    def test_load_non_object(self):
        """A JSON document that is not an object reads as empty."""
        self.path.write_text("[1, 2, 3]", encoding="utf-8")
        assert self.store.load() == {}

    def test_load_drops_malformed_sections(self):
        """Operation sections that are not objects are ignored."""
        self.path.write_text(json.dumps({"exports": [], "imports": {"fp": {"counter": 2}}}))
        assert self.store.load() == {"imports": {"fp": {"counter": 2}}}

    def test_save_and_get(self):
        """Saved checkpoints can be read back."""
        self.store.save(OperationType.IMPORTS, "fp1", 3)

        entry = self.store.get(OperationType.IMPORTS, "fp1")
        assert entry == CheckpointEntry(counter=3, data={})

    def test_save_persists_indented_json(self):
        """The whole document is written to disk after each save."""
        self.store.save(OperationType.EXPORTS, "fp", 2, {"next": "c2", "routeCount": 200})

        raw = self.path.read_text(encoding="utf-8")
        assert raw.startswith("{\n  ")
        assert json.loads(raw) == {
            "exports": {"fp": {"counter": 2, "data": {"next": "c2", "routeCount": 200}}}
        }

    def test_save_preserves_other_entries(self):
        """Upserting one run keeps every other run's entry."""
        self.store.save(OperationType.IMPORTS, "fp1", 1)
        self.store.save(OperationType.DELETES, "fp2", 4)
        self.store.save(OperationType.IMPORTS, "fp1", 2)

        reloaded = CheckpointStore(self.path)
        assert reloaded.get(OperationType.IMPORTS, "fp1").counter == 2
        assert reloaded.get(OperationType.DELETES, "fp2").counter == 4

    def test_save_is_idempotent(self):
        """Saving the same state twice leaves the same document."""
        self.store.save(OperationType.IMPORTS, "fp1", 5)
        first = self.path.read_text(encoding="utf-8")
        self.store.save(OperationType.IMPORTS, "fp1", 5)
        assert self.path.read_text(encoding="utf-8") == first

    def test_get_unknown(self):
        """Unknown operations and fingerprints return None."""
        assert self.store.get(OperationType.EXPORTS, "missing") is None
        self.store.save(OperationType.EXPORTS, "fp", 1)
        assert self.store.get(OperationType.EXPORTS, "other") is None

    def test_get_invalid_counter(self):
        """Entries with a non-numeric counter are treated as absent."""
        self.path.write_text(json.dumps({"imports": {"fp": {"counter": "abc"}}}))
        assert self.store.get(OperationType.IMPORTS, "fp") is None

    def test_accepts_string_operation(self):
        """Operation names can be given as plain strings."""
        self.store.save("imports", "fp", 7)
        assert self.store.get(OperationType.IMPORTS, "fp").counter == 7

    def test_clear_removes_entry(self):
        """Clearing removes only the targeted run."""
        self.store.save(OperationType.IMPORTS, "fp1", 1)
        self.store.save(OperationType.IMPORTS, "fp2", 2)

        self.store.clear(OperationType.IMPORTS, "fp1")

        reloaded = CheckpointStore(self.path)
        assert reloaded.get(OperationType.IMPORTS, "fp1") is None
        assert reloaded.get(OperationType.IMPORTS, "fp2").counter == 2

    def test_clear_missing_does_not_write(self, mocker):
        """Clearing an absent entry is a no-op without disk I/O."""
        write = mocker.patch.object(self.store, "_write")

        self.store.clear(OperationType.DELETES, "nothing")

        write.assert_not_called()
        assert not self.path.exists()

    def test_failed_write_keeps_previous_file(self, mocker):
        """A crash while writing leaves the previous document and no temp files."""
        self.store.save(OperationType.IMPORTS, "fp", 1)
        before = self.path.read_text(encoding="utf-8")

        mocker.patch(
            "src.redirect_sync.persistence.checkpoint.json.dump", side_effect=OSError("disk full")
        )
        with pytest.raises(OSError, match="disk full"):
            self.store.save(OperationType.IMPORTS, "fp", 2)

        assert self.path.read_text(encoding="utf-8") == before
        assert sorted(p.name for p in self.path.parent.iterdir()) == [self.path.name]

    def test_load_refreshes_snapshot(self):
        """load() picks up changes written by another store instance."""
        self.store.save(OperationType.IMPORTS, "fp", 1)

        other = CheckpointStore(self.path)
        other.save(OperationType.IMPORTS, "fp", 9)

        assert self.store.get(OperationType.IMPORTS, "fp").counter == 1
        self.store.load()
        assert self.store.get(OperationType.IMPORTS, "fp").counter == 9
