"""Base document store interface."""

from __future__ import annotations

import abc
from typing import Any, AsyncIterator, Optional

from ..models import ContainerHandle


class DocumentStore(metaclass=abc.ABCMeta):
    """Abstract partitioned document store.

    Implementations raise the exceptions from :mod:`catalog_ingest.errors`
    rather than their client library's own.
    """

    #: Largest stored procedure body, in bytes, the store will accept.
    max_procedure_size: int = 256 * 1024

    async def connect(self, endpoint: str, key: str) -> None:
        """Open a client for the account (no-op by default)."""
        pass

    async def close(self) -> None:
        """Release the client (no-op by default)."""
        pass

    @abc.abstractmethod
    async def ensure_database(self, database: str) -> bool:
        """Create the database if absent. Returns True when it was created."""
        raise NotImplementedError

    @abc.abstractmethod
    async def ensure_container(
        self, database: str, container: str, partition_key_path: str
    ) -> ContainerHandle:
        """Create the container if absent and describe it as it exists.

        The returned handle carries the container's actual partition-key
        path, which may differ from the requested one for an existing
        container.
        """
        raise NotImplementedError

    @abc.abstractmethod
    async def create_stored_procedure(
        self, handle: ContainerHandle, name: str, body: str
    ) -> None:
        """Register a procedure. Raises ConflictError when the name is taken."""
        raise NotImplementedError

    @abc.abstractmethod
    async def read_stored_procedure(
        self, handle: ContainerHandle, name: str
    ) -> Optional[str]:
        """Return the registered body, or None when absent."""
        raise NotImplementedError

    @abc.abstractmethod
    async def replace_stored_procedure(
        self, handle: ContainerHandle, name: str, body: str
    ) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    async def execute_stored_procedure(
        self,
        handle: ContainerHandle,
        name: str,
        partition_key_value: str,
        params: list[Any],
    ) -> Any:
        """Run a procedure scoped to one partition and return its response body."""
        raise NotImplementedError

    @abc.abstractmethod
    async def read_item(
        self, handle: ContainerHandle, item_id: str, partition_key_value: str
    ) -> Optional[dict[str, Any]]:
        raise NotImplementedError

    @abc.abstractmethod
    def query_items(
        self,
        handle: ContainerHandle,
        query: str,
        partition_key_value: Optional[str] = None,
    ) -> AsyncIterator[list[dict[str, Any]]]:
        """Yield result pages until the store reports no continuation."""
        raise NotImplementedError
