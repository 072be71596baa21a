"""Tests for the file checkpoint store."""

import pytest
import torch

from algorithms.dqn.checkpoint import FileCheckpointStore
from game.errors import PersistenceUnavailableError


class TestFileCheckpointStore:
    """Save, load, exists and delete."""

    @pytest.fixture
    def store(self, tmp_path):
        return FileCheckpointStore(str(tmp_path / "checkpoints"))

    def test_round_trip(self, store):
        weights = {"layer": torch.arange(6, dtype=torch.float32).reshape(2, 3)}
        metadata = {"epsilon": 0.5, "learning_rate": 0.0001, "episode_count": 3,
                    "step_count": 40, "frame_count": 80}

        store.save("model", weights, metadata)
        loaded_weights, loaded_metadata = store.load("model")

        assert torch.equal(loaded_weights["layer"], weights["layer"])
        assert loaded_metadata == metadata

    def test_creates_directory_and_single_file(self, store):
        store.save("model", {}, {})

        files = sorted(p.name for p in store.root.iterdir())
        assert files == ["model.pt"]

    def test_save_overwrites(self, store):
        store.save("model", {"v": torch.tensor(1)}, {"step_count": 1})
        store.save("model", {"v": torch.tensor(2)}, {"step_count": 2})

        weights, metadata = store.load("model")
        assert weights["v"].item() == 2
        assert metadata["step_count"] == 2

    def test_exists_and_delete(self, store):
        assert not store.exists("model")
        store.save("model", {}, {})
        assert store.exists("model")

        store.delete("model")
        assert not store.exists("model")
        store.delete("model")

    def test_load_missing_raises(self, store):
        with pytest.raises(PersistenceUnavailableError):
            store.load("missing")

    def test_load_corrupt_raises(self, store):
        store.root.mkdir(parents=True)
        store.path_for("broken").write_bytes(b"not a checkpoint")

        with pytest.raises(PersistenceUnavailableError):
            store.load("broken")

    def test_load_malformed_payload_raises(self, store):
        store.root.mkdir(parents=True)
        torch.save({"something": 1}, store.path_for("odd"))

        with pytest.raises(PersistenceUnavailableError):
            store.load("odd")

    def test_save_failure_raises(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x")
        store = FileCheckpointStore(str(blocker / "checkpoints"))

        with pytest.raises(PersistenceUnavailableError):
            store.save("model", {}, {})

    @pytest.mark.parametrize("name", ["", "../escape", ".hidden", "a/b"])
    def test_invalid_names(self, store, name):
        with pytest.raises(ValueError):
            store.path_for(name)
