"""Azure Cosmos DB implementation of the document store."""

from __future__ import annotations

import logging
import re
from typing import Any, AsyncIterator, Optional

from azure.core.exceptions import (
    ClientAuthenticationError,
    ServiceRequestError,
    ServiceResponseError,
)
from azure.cosmos import PartitionKey, exceptions
from azure.cosmos.aio import CosmosClient

from ..errors import (
    ConfigurationError,
    ConflictError,
    ConnectivityError,
    IngestError,
    ProcedureError,
    ValidationError,
)
from ..models import ContainerHandle
from .base import DocumentStore

logger = logging.getLogger(__name__)

# Rejected credentials, throttling and service faults all surface as connectivity failures.
TRANSIENT_STATUS_CODES = {401, 403, 408, 429, 449, 500, 503}

_CONFLICT_DIAGNOSTIC = re.compile(r"Error 409|\bConflict\b|already exists", re.IGNORECASE)


def _diagnostic(exc: exceptions.CosmosHttpResponseError) -> dict[str, Any]:
    return {
        "status_code": exc.status_code,
        "sub_status": getattr(exc, "sub_status", None),
        "message": getattr(exc, "http_error_message", None) or str(exc),
    }


def translate_error(exc: Exception, action: str, procedure: bool = False) -> IngestError:
    """Map an azure exception onto the ingest error taxonomy.

    Args:
        exc: Exception raised by the Cosmos client.
        action: Short description used in the message, e.g. "create database".
        procedure: Whether the failing call executed a stored procedure, in
            which case unclassified faults become :class:`ProcedureError`.
    """
    if isinstance(exc, (ServiceRequestError, ServiceResponseError, ClientAuthenticationError)):
        return ConnectivityError(f"Could not {action}: {exc}")

    if not isinstance(exc, exceptions.CosmosHttpResponseError):
        return IngestError(f"Could not {action}: {exc}")

    status = exc.status_code
    message = getattr(exc, "http_error_message", None) or str(exc)
    if status in TRANSIENT_STATUS_CODES:
        return ConnectivityError(f"Could not {action} (HTTP {status}): {message}", status_code=status)
    if status == 409:
        return ConflictError(f"Could not {action}: {message}")
    if status == 413:
        return ValidationError(f"Could not {action}: request entity too large")
    if procedure:
        if _CONFLICT_DIAGNOSTIC.search(message):
            return ConflictError(f"Could not {action}: {message}")
        return ProcedureError(
            f"Could not {action} (HTTP {status})",
            diagnostic=_diagnostic(exc),
            status_code=status,
        )
    return ConfigurationError(f"Could not {action} (HTTP {status}): {message}")


class CosmosDocumentStore(DocumentStore):
    """Talk to a Cosmos DB NoSQL account through ``azure.cosmos.aio``."""

    def __init__(self, connection_verify: bool = True, page_size: Optional[int] = None) -> None:
        self.connection_verify = connection_verify
        self.page_size = page_size
        self._client: Optional[CosmosClient] = None

    async def connect(self, endpoint: str, key: str) -> None:
        await self.close()
        try:
            self._client = CosmosClient(
                endpoint, credential=key, connection_verify=self.connection_verify
            )
        except ValueError as exc:
            raise ConfigurationError(f"Invalid Cosmos endpoint {endpoint!r}: {exc}") from exc
        logger.debug(f"Created Cosmos client for {endpoint}")

    async def close(self) -> None:
        if self._client is not None:
            client, self._client = self._client, None
            await client.close()

    # ------------------------------------------------------------------
    @property
    def client(self) -> CosmosClient:
        if self._client is None:
            raise ConnectivityError("Cosmos client is not connected")
        return self._client

    def _container(self, handle: ContainerHandle):
        return self.client.get_database_client(handle.database).get_container_client(
            handle.container
        )

    # ------------------------------------------------------------------
    async def ensure_database(self, database: str) -> bool:
        client = self.client
        try:
            await client.create_database(id=database)
            return True
        except exceptions.CosmosResourceExistsError:
            return False
        except Exception as exc:
            raise translate_error(exc, f"create database {database}") from exc

    async def ensure_container(
        self, database: str, container: str, partition_key_path: str
    ) -> ContainerHandle:
        db = self.client.get_database_client(database)
        try:
            proxy = await db.create_container(
                id=container, partition_key=PartitionKey(path=partition_key_path)
            )
            logger.debug(f"Created container {database}/{container}")
        except exceptions.CosmosResourceExistsError:
            proxy = db.get_container_client(container)
        except Exception as exc:
            raise translate_error(exc, f"create container {container}") from exc

        try:
            properties = await proxy.read()
        except Exception as exc:
            raise translate_error(exc, f"read container {container}") from exc

        paths = properties.get("partitionKey", {}).get("paths", [])
        return ContainerHandle(
            database=database,
            container=container,
            partition_key_path=paths[0] if paths else partition_key_path,
            resource_id=properties.get("_rid"),
        )

    async def create_stored_procedure(
        self, handle: ContainerHandle, name: str, body: str
    ) -> None:
        scripts = self._container(handle).scripts
        try:
            await scripts.create_stored_procedure(
                body={"id": name, "body": body}
            )
        except Exception as exc:
            raise translate_error(exc, f"register stored procedure {name}") from exc

    async def read_stored_procedure(
        self, handle: ContainerHandle, name: str
    ) -> Optional[str]:
        scripts = self._container(handle).scripts
        try:
            properties = await scripts.get_stored_procedure(name)
        except exceptions.CosmosResourceNotFoundError:
            return None
        except Exception as exc:
            raise translate_error(exc, f"read stored procedure {name}") from exc
        return properties.get("body")

    async def replace_stored_procedure(
        self, handle: ContainerHandle, name: str, body: str
    ) -> None:
        scripts = self._container(handle).scripts
        try:
            await scripts.replace_stored_procedure(
                sproc=name, body={"id": name, "body": body}
            )
        except Exception as exc:
            raise translate_error(exc, f"replace stored procedure {name}") from exc

    async def execute_stored_procedure(
        self,
        handle: ContainerHandle,
        name: str,
        partition_key_value: str,
        params: list[Any],
    ) -> Any:
        scripts = self._container(handle).scripts
        try:
            return await scripts.execute_stored_procedure(
                sproc=name, partition_key=partition_key_value, params=params
            )
        except Exception as exc:
            raise translate_error(exc, f"execute stored procedure {name}", procedure=True) from exc

    async def read_item(
        self, handle: ContainerHandle, item_id: str, partition_key_value: str
    ) -> Optional[dict[str, Any]]:
        container = self._container(handle)
        try:
            return await container.read_item(
                item=item_id, partition_key=partition_key_value
            )
        except exceptions.CosmosResourceNotFoundError:
            return None
        except Exception as exc:
            raise translate_error(exc, f"read item {item_id}") from exc

    async def query_items(
        self,
        handle: ContainerHandle,
        query: str,
        partition_key_value: Optional[str] = None,
    ) -> AsyncIterator[list[dict[str, Any]]]:
        kwargs: dict[str, Any] = {"query": query}
        if partition_key_value is not None:
            kwargs["partition_key"] = partition_key_value
        if self.page_size:
            kwargs["max_item_count"] = self.page_size
        container = self._container(handle)
        try:
            pages = container.query_items(**kwargs).by_page()
            async for page in pages:
                yield [document async for document in page]
        except Exception as exc:
            raise translate_error(exc, f"query container {handle.container}") from exc
