"""In-memory document store for testing and local runs."""

from __future__ import annotations

import copy
import re
import time
import uuid
from collections import defaultdict
from typing import Any, AsyncIterator, Dict, Optional

from ..errors import (
    ConfigurationError,
    ConflictError,
    ConnectivityError,
    ProcedureError,
    ValidationError,
)
from ..models import ContainerHandle, partition_key_property
from .base import DocumentStore

_SELECT_ALL = re.compile(r"^\s*select\s+\*\s+from\s+\w+\s*$", re.IGNORECASE)


class _Container:
    def __init__(self, partition_key_path: str) -> None:
        self.partition_key_path = partition_key_path
        self.resource_id = uuid.uuid4().hex[:12]
        self.procedures: Dict[str, str] = {}
        # partition key value -> id -> document
        self.partitions: Dict[str, Dict[str, dict]] = defaultdict(dict)


class InMemoryDocumentStore(DocumentStore):
    """Emulates a partitioned document store in process memory.

    Registered procedures are opaque: executing any of them applies the
    create-document-or-fail contract to its first argument. Data is not
    persisted across process restarts.
    """

    def __init__(self, page_size: int = 100) -> None:
        self.page_size = page_size
        self._databases: Dict[str, Dict[str, _Container]] = {}
        self._connected = False

    async def connect(self, endpoint: str, key: str) -> None:
        self._connected = True

    async def close(self) -> None:
        self._connected = False

    # ------------------------------------------------------------------
    def _require_connection(self) -> None:
        if not self._connected:
            raise ConnectivityError("In-memory store is not connected")

    def _container(self, handle: ContainerHandle) -> _Container:
        self._require_connection()
        try:
            return self._databases[handle.database][handle.container]
        except KeyError:
            raise ConfigurationError(
                f"Container {handle.database}/{handle.container} does not exist"
            ) from None

    # ------------------------------------------------------------------
    async def ensure_database(self, database: str) -> bool:
        self._require_connection()
        if database in self._databases:
            return False
        self._databases[database] = {}
        return True

    async def ensure_container(
        self, database: str, container: str, partition_key_path: str
    ) -> ContainerHandle:
        self._require_connection()
        if database not in self._databases:
            raise ConfigurationError(f"Database {database} does not exist")
        containers = self._databases[database]
        if container not in containers:
            partition_key_property(partition_key_path)
            containers[container] = _Container(partition_key_path)
        existing = containers[container]
        return ContainerHandle(
            database=database,
            container=container,
            partition_key_path=existing.partition_key_path,
            resource_id=existing.resource_id,
        )

    async def create_stored_procedure(
        self, handle: ContainerHandle, name: str, body: str
    ) -> None:
        target = self._container(handle)
        if name in target.procedures:
            raise ConflictError(f"Stored procedure {name} already exists")
        if len(body.encode("utf-8")) > self.max_procedure_size:
            raise ValidationError(f"Stored procedure {name} exceeds the size limit")
        target.procedures[name] = body

    async def read_stored_procedure(
        self, handle: ContainerHandle, name: str
    ) -> Optional[str]:
        return self._container(handle).procedures.get(name)

    async def replace_stored_procedure(
        self, handle: ContainerHandle, name: str, body: str
    ) -> None:
        target = self._container(handle)
        if name not in target.procedures:
            raise ProcedureError(f"Stored procedure {name} does not exist", status_code=404)
        target.procedures[name] = body

    async def execute_stored_procedure(
        self,
        handle: ContainerHandle,
        name: str,
        partition_key_value: str,
        params: list[Any],
    ) -> Any:
        target = self._container(handle)
        if name not in target.procedures:
            raise ProcedureError(
                f"Stored procedure {name} does not exist",
                diagnostic={"code": "NotFound"},
                status_code=404,
            )
        if not params or not isinstance(params[0], dict):
            raise ProcedureError(
                f"Stored procedure {name} expects a document argument",
                diagnostic={"code": "BadRequest"},
                status_code=400,
            )
        document = copy.deepcopy(params[0])
        prop = partition_key_property(target.partition_key_path)
        if document.get(prop) != partition_key_value:
            raise ProcedureError(
                "PartitionKey extracted from document doesn't match the one specified",
                diagnostic={"code": "BadRequest"},
                status_code=400,
            )
        partition = target.partitions[partition_key_value]
        if document.get("id") in partition:
            raise ConflictError(
                f"Entity with the specified id {document.get('id')} already exists"
            )
        return self._insert(handle, partition, document)

    def _insert(self, handle: ContainerHandle, partition: Dict[str, dict], document: dict) -> dict:
        rid = uuid.uuid4().hex[:16]
        document.update(
            {
                "_rid": rid,
                "_self": f"dbs/{handle.database}/colls/{handle.container}/docs/{rid}/",
                "_etag": f'"{uuid.uuid4()}"',
                "_attachments": "attachments/",
                "_ts": int(time.time()),
            }
        )
        partition[document["id"]] = document
        return copy.deepcopy(document)

    async def read_item(
        self, handle: ContainerHandle, item_id: str, partition_key_value: str
    ) -> Optional[dict[str, Any]]:
        document = self._container(handle).partitions.get(partition_key_value, {}).get(item_id)
        return copy.deepcopy(document) if document is not None else None

    async def query_items(
        self,
        handle: ContainerHandle,
        query: str,
        partition_key_value: Optional[str] = None,
    ) -> AsyncIterator[list[dict[str, Any]]]:
        if not _SELECT_ALL.match(query):
            raise ValidationError("In-memory store only supports 'SELECT * FROM <alias>' queries")
        target = self._container(handle)
        if partition_key_value is not None:
            documents = list(target.partitions.get(partition_key_value, {}).values())
        else:
            documents = [doc for part in target.partitions.values() for doc in part.values()]
        for start in range(0, len(documents), self.page_size):
            self._require_connection()
            yield [copy.deepcopy(doc) for doc in documents[start : start + self.page_size]]

    def document_count(self, handle: ContainerHandle) -> int:
        return sum(len(p) for p in self._container(handle).partitions.values())
