"""Key-value backend protocol: the contract session and audit storage rely on."""

from __future__ import annotations

from typing import Mapping, Optional, Protocol, runtime_checkable


@runtime_checkable
class IPersistenceBackend(Protocol):
    """String-valued key-value store holding session fields and the audit trail.

    Values are tokens and identifiers; implementations may log keys but
    never values.
    """

    def save(self, key: str, data: str) -> None:
        """Save a string value under the given key."""
        ...

    def load(self, key: str) -> str:
        """Load a value by key. Raises KeyError if not found."""
        ...

    def exists(self, key: str) -> bool:
        ...

    def delete(self, key: str) -> None:
        """Delete a key (no-op if not found)."""
        ...

    def update(self, values: Mapping[str, Optional[str]]) -> None:
        """Write several keys at once; a ``None`` value deletes its key.

        The session is always replaced as a whole, so backends should make
        the batch visible together where they can.
        """
        ...

    def list_keys(self, prefix: str = "") -> list[str]:
        """List all keys matching the optional prefix."""
        ...
