"""File-based key-value backend: one file per key in a local directory.

Used by the CLI so a login survives between invocations.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Mapping, Optional

from nephro_client.exceptions import PersistenceError

log = logging.getLogger(__name__)


class FilePersistenceBackend:
    """Stores each value as a text file named after its key."""

    def __init__(self, base_path: Path) -> None:
        self._base = Path(base_path).expanduser()
        try:
            self._base.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PersistenceError(f"Cannot create store directory {self._base}: {e}") from e

    def _key_path(self, key: str) -> Path:
        safe_key = key.replace("/", "_").replace("\\", "_")
        return self._base / safe_key

    def save(self, key: str, data: str) -> None:
        path = self._key_path(key)
        try:
            path.write_text(data, encoding="utf-8")
            # tokens live here
            os.chmod(path, 0o600)
        except OSError as e:
            raise PersistenceError(f"Cannot write {key}: {e}") from e
        log.debug("Saved %s to %s", key, path)

    def load(self, key: str) -> str:
        path = self._key_path(key)
        if not path.is_file():
            raise KeyError(f"Not found: {key} (path: {path})")
        return path.read_text(encoding="utf-8")

    def exists(self, key: str) -> bool:
        return self._key_path(key).is_file()

    def delete(self, key: str) -> None:
        path = self._key_path(key)
        if path.is_file():
            path.unlink()

    def update(self, values: Mapping[str, Optional[str]]) -> None:
        # one file per key, so the batch is applied key by key
        for key, value in values.items():
            if value is None:
                self.delete(key)
            else:
                self.save(key, value)

    def list_keys(self, prefix: str = "") -> list[str]:
        return sorted(
            path.name for path in self._base.iterdir()
            if path.is_file() and path.name.startswith(prefix)
        )
