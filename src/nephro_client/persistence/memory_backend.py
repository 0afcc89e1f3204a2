"""In-memory key-value backend, the default for a single process."""

from __future__ import annotations

import logging
from typing import Mapping, Optional

log = logging.getLogger(__name__)


class MemoryPersistenceBackend:
    """Session store kept in a dict; nothing touches disk.

    ``update`` builds the next state aside and swaps it in, so readers see
    either the old session or the new one.
    """

    def __init__(self, initial: Optional[Mapping[str, str]] = None) -> None:
        self._store: dict[str, str] = dict(initial or {})

    def save(self, key: str, data: str) -> None:
        self._store[key] = data
        log.debug("Stored %s in memory", key)

    def load(self, key: str) -> str:
        try:
            return self._store[key]
        except KeyError:
            raise KeyError(f"No session value for {key!r}") from None

    def exists(self, key: str) -> bool:
        return key in self._store

    def delete(self, key: str) -> None:
        self._store.pop(key, None)

    def update(self, values: Mapping[str, Optional[str]]) -> None:
        staged = dict(self._store)
        for key, value in values.items():
            if value is None:
                staged.pop(key, None)
            else:
                staged[key] = value
        self._store = staged
        log.debug("Stored %d keys in memory", len(values))

    def list_keys(self, prefix: str = "") -> list[str]:
        return sorted(key for key in self._store if key.startswith(prefix))
