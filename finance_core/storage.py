"""Persistence utilities for the finance tracker core services."""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Any, Dict, Iterable, List

from .exceptions import PersistenceError


class JSONStorage:
    """File-based JSON record store with crash-safe writes.

    Each resource is a single JSON array of record dicts. Writes are
    serialised through a lock so concurrent request threads cannot interleave
    temp-file replacements for the same resource.
    """

    def __init__(self, base_path: Path) -> None:
        self._base_path = Path(base_path)
        self._base_path.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()

    def load(self, resource: str) -> List[Dict[str, Any]]:
        path = self._base_path / resource
        with self._lock:
            if not path.exists():
                return []
            try:
                with path.open("r", encoding="utf-8") as handle:
                    payload = json.load(handle)
            except json.JSONDecodeError as exc:
                raise PersistenceError(f"Corrupted JSON data in {path}") from exc
            except OSError as exc:
                raise PersistenceError(f"Unable to read from {path}") from exc

        if not isinstance(payload, list):
            raise PersistenceError(f"Expected list payload in {path}")
        return payload

    def save(self, resource: str, records: Iterable[Dict[str, Any]]) -> None:
        path = self._base_path / resource
        temp_path = path.with_suffix(path.suffix + ".tmp")
        with self._lock:
            try:
                with temp_path.open("w", encoding="utf-8") as handle:
                    json.dump(list(records), handle, indent=2)
                    handle.flush()
                # Atomic on POSIX; readers never observe a half-written file.
                temp_path.replace(path)
            except OSError as exc:
                raise PersistenceError(f"Unable to write to {path}") from exc

    @property
    def base_path(self) -> Path:
        return self._base_path
