"""
Checkpoint storage for DQN agents.

A checkpoint is one named unit holding network weights and a flat metadata
record. FileCheckpointStore writes each unit as a single torch file,
replacing it atomically so a reader never sees weights from one save and
metadata from another.
"""

import os
import pickle
from pathlib import Path
from typing import Any, Dict, Protocol, Tuple

import torch

from game.errors import PersistenceUnavailableError

CHECKPOINT_SUFFIX = ".pt"


class CheckpointStore(Protocol):
    """Durable store for (weights, metadata) pairs."""

    def save(self, name: str, weights: Dict[str, Any], metadata: Dict[str, Any]) -> None:
        ...

    def load(self, name: str) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        ...

    def exists(self, name: str) -> bool:
        ...

    def delete(self, name: str) -> None:
        ...


class FileCheckpointStore:
    """Checkpoint store backed by a directory of .pt files.

    Args:
        root: Directory holding checkpoints (created on first save)
    """

    def __init__(self, root: str):
        self.root = Path(root)

    def path_for(self, name: str) -> Path:
        if not name or "/" in name or "\\" in name or name.startswith("."):
            raise ValueError(f"Invalid checkpoint name: {name!r}")
        return self.root / f"{name}{CHECKPOINT_SUFFIX}"

    def save(self, name: str, weights: Dict[str, Any], metadata: Dict[str, Any]) -> None:
        """Write weights and metadata as one unit.

        Raises:
            PersistenceUnavailableError: If the file cannot be written
        """
        path = self.path_for(name)
        tmp_path = path.with_name(path.name + ".tmp")
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            torch.save({"weights": weights, "metadata": dict(metadata)}, tmp_path)
            os.replace(tmp_path, path)
        except (OSError, RuntimeError) as e:
            if tmp_path.exists():
                tmp_path.unlink()
            raise PersistenceUnavailableError(f"Failed to save checkpoint '{name}': {e}") from e

    def load(self, name: str) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        """Read a checkpoint onto the CPU.

        Raises:
            PersistenceUnavailableError: If the checkpoint is missing or unreadable
        """
        path = self.path_for(name)
        if not path.exists():
            raise PersistenceUnavailableError(f"Checkpoint not found: {path}")
        try:
            payload = torch.load(path, map_location="cpu")
        except (OSError, RuntimeError, ValueError, EOFError, pickle.UnpicklingError) as e:
            raise PersistenceUnavailableError(f"Failed to load checkpoint '{name}': {e}") from e

        if not isinstance(payload, dict) or "weights" not in payload or "metadata" not in payload:
            raise PersistenceUnavailableError(f"Malformed checkpoint: {path}")
        return payload["weights"], payload["metadata"]

    def exists(self, name: str) -> bool:
        return self.path_for(name).exists()

    def delete(self, name: str) -> None:
        path = self.path_for(name)
        if path.exists():
            path.unlink()
