"""Pluggable key-value backends for session tokens and the audit trail."""

from __future__ import annotations

from typing import TYPE_CHECKING

from nephro_client.persistence.file_backend import FilePersistenceBackend
from nephro_client.persistence.memory_backend import MemoryPersistenceBackend
from nephro_client.persistence.protocols import IPersistenceBackend

if TYPE_CHECKING:
    from nephro_client.config import SessionConfig

__all__ = [
    "IPersistenceBackend",
    "FilePersistenceBackend",
    "MemoryPersistenceBackend",
    "create_persistence_backend",
]


def create_persistence_backend(config: SessionConfig | None = None) -> IPersistenceBackend:
    """Create a backend from ``SessionConfig``; memory when no config is given."""
    if config is None or config.backend == "memory":
        return MemoryPersistenceBackend()
    if config.backend == "file":
        return FilePersistenceBackend(config.store_path)
    raise ValueError(f"Unknown session backend: {config.backend!r}")
