"""Document store factory and initialization."""

from __future__ import annotations

import os
from typing import Optional

from ..config import IngestConfig, load_config
from ..errors import ConfigurationError
from .base import DocumentStore
from .inmemory import InMemoryDocumentStore


def get_store(
    backend: Optional[str] = None, config: Optional[IngestConfig] = None
) -> DocumentStore:
    """Factory function to get the configured document store."""

    config = config or load_config()
    backend = (
        backend
        or os.getenv("CATALOG_INGEST_STORE")
        or config.store.backend
    ).lower()

    if backend == "inmemory":
        return InMemoryDocumentStore()
    elif backend == "cosmos":
        from .cosmos import CosmosDocumentStore

        return CosmosDocumentStore(connection_verify=config.store.cosmos.connection_verify)
    else:
        raise ConfigurationError(f"Unsupported store backend: {backend}")


__all__ = ["DocumentStore", "InMemoryDocumentStore", "get_store"]
