"""Provisioning and single-item ingestion workflow."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, AsyncIterator, Mapping, Optional, Union

from .config import TopologySettings
from .errors import (
    ConfigurationError,
    ConflictError,
    ConnectivityError,
    ProcedureError,
    ValidationError,
    WorkflowStateError,
)
from .models import ContainerHandle, Item, PersistedItem, StoredProcedure
from .stores import DocumentStore

logger = logging.getLogger(__name__)

SELECT_ALL_QUERY = "SELECT * FROM c"


class WorkflowState(str, Enum):
    UNCONNECTED = "unconnected"
    CONNECTED = "connected"
    TOPOLOGY_ENSURED = "topology_ensured"
    PROCEDURE_REGISTERED = "procedure_registered"
    READY = "ready"
    FAILED = "failed"


class IngestionWorkflow:
    """Provision a container, register the insertion procedure and ingest items.

    The workflow keeps no shared mutable data besides its state; the
    container handle returned by :meth:`ensure_topology` is passed explicitly
    to every later call. Any :class:`ConnectivityError` moves the workflow to
    ``FAILED`` and only a new :meth:`ensure_topology` call recovers from it.
    """

    def __init__(self, store: DocumentStore) -> None:
        self._store = store
        self._state = WorkflowState.UNCONNECTED
        self._handle: Optional[ContainerHandle] = None
        self._procedure: Optional[str] = None
        self._connection: Optional[tuple[str, str]] = None

    @property
    def state(self) -> WorkflowState:
        return self._state

    async def __aenter__(self) -> "IngestionWorkflow":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def close(self) -> None:
        await self._store.close()
        self._state = WorkflowState.UNCONNECTED
        self._handle = None
        self._procedure = None
        self._connection = None

    # ------------------------------------------------------------------
    def _transition(self, state: WorkflowState) -> None:
        if state != self._state:
            logger.debug(f"Workflow state {self._state.value} -> {state.value}")
        self._state = state

    def _fail(self, exc: ConnectivityError) -> None:
        logger.warning(f"Document store unreachable, workflow failed: {exc}")
        self._transition(WorkflowState.FAILED)

    def _require_ready(self, handle: ContainerHandle) -> None:
        if self._state is not WorkflowState.READY:
            raise WorkflowStateError(
                f"Workflow is {self._state.value}; register the insertion procedure first"
            )
        if handle != self._handle:
            raise WorkflowStateError(
                f"Container {handle.database}/{handle.container} was not provisioned by this workflow"
            )

    # ------------------------------------------------------------------
    async def ensure_topology(self, settings: TopologySettings) -> ContainerHandle:
        """Connect and create the database and container if they are absent.

        Safe to call repeatedly: an existing database and container are
        reused and an equal handle is returned.
        Settings naming a different endpoint or key reconnect the store and
        drop the previously registered procedure.

        Raises:
            ConfigurationError: A required setting is empty, or the container
                exists with a different partition-key path.
            ConnectivityError: The endpoint is unreachable or the credential
                is rejected.
        """
        if not isinstance(settings, TopologySettings):
            settings = TopologySettings.build(**dict(settings))

        try:
            connection = (settings.endpoint, settings.key)
            if (
                self._state in (WorkflowState.UNCONNECTED, WorkflowState.FAILED)
                or connection != self._connection
            ):
                if self._connection is not None and connection != self._connection:
                    logger.info(f"Switching document store account to {settings.endpoint}")
                self._connection = None
                self._handle = None
                self._procedure = None
                await self._store.connect(settings.endpoint, settings.key)
                self._connection = connection
                self._transition(WorkflowState.CONNECTED)
                logger.info(f"Connected to document store at {settings.endpoint}")

            created = await self._store.ensure_database(settings.database)
            logger.info(
                f"Database {settings.database} {'created' if created else 'already exists'}"
            )
            handle = await self._store.ensure_container(
                settings.database, settings.container, settings.partition_key_path
            )
        except ConnectivityError as exc:
            self._fail(exc)
            raise

        if handle.partition_key_path != settings.partition_key_path:
            raise ConfigurationError(
                f"Container {settings.container} is partitioned by "
                f"{handle.partition_key_path}, not {settings.partition_key_path}"
            )

        if self._state is WorkflowState.READY and handle == self._handle:
            logger.debug(f"Topology unchanged for {handle.database}/{handle.container}")
            return handle

        self._handle = handle
        self._procedure = None
        self._transition(WorkflowState.TOPOLOGY_ENSURED)
        logger.info(
            f"Container {handle.database}/{handle.container} ready "
            f"(partition key {handle.partition_key_path})"
        )
        return handle

    async def register_insertion_procedure(
        self, handle: ContainerHandle, procedure_name: str, procedure_body: str
    ) -> None:
        """Register the insertion routine if it is not already present.

        An existing registration with the same body is accepted as is; one
        with a different body is replaced.
        """
        procedure = StoredProcedure.build(
            procedure_name, procedure_body, max_size=self._store.max_procedure_size
        )
        if self._state in (WorkflowState.UNCONNECTED, WorkflowState.CONNECTED, WorkflowState.FAILED):
            raise WorkflowStateError(
                f"Workflow is {self._state.value}; ensure the topology first"
            )
        if handle != self._handle:
            raise WorkflowStateError(
                f"Container {handle.database}/{handle.container} was not provisioned by this workflow"
            )

        try:
            try:
                await self._store.create_stored_procedure(handle, procedure.name, procedure.body)
                logger.info(f"Registered stored procedure {procedure.name}")
            except ConflictError:
                existing = await self._store.read_stored_procedure(handle, procedure.name)
                if existing == procedure.body:
                    logger.info(f"Stored procedure {procedure.name} already registered")
                else:
                    logger.warning(
                        f"Stored procedure {procedure.name} differs from the configured body, replacing it"
                    )
                    await self._store.replace_stored_procedure(
                        handle, procedure.name, procedure.body
                    )
        except ConnectivityError as exc:
            self._fail(exc)
            raise

        self._procedure = procedure.name
        self._transition(WorkflowState.PROCEDURE_REGISTERED)
        self._transition(WorkflowState.READY)

    async def prepare(
        self, settings: TopologySettings, procedure_name: str, procedure_body: str
    ) -> ContainerHandle:
        """Ensure the topology and register the insertion procedure."""
        handle = await self.ensure_topology(settings)
        await self.register_insertion_procedure(handle, procedure_name, procedure_body)
        return handle

    # ------------------------------------------------------------------
    async def ingest_item(
        self, handle: ContainerHandle, item: Union[Item, Mapping[str, Any]]
    ) -> PersistedItem:
        """Insert one item through the registered procedure.

        The item is validated before anything is sent to the store: a
        missing or empty partition key raises ``ValidationError`` without a
        network call.

        Raises:
            ValidationError: The item has no partition key value, or one
                of its fields collides with the partition-key property.
            ConflictError: An item with the same id already exists.
            ProcedureError: The server-side routine failed.
            ConnectivityError: The store could not be reached.
        """
        if not isinstance(item, Item):
            item = Item.from_document(item, handle.partition_key_path)
        prop = handle.partition_key_property
        if prop in item.payload and item.payload[prop] != item.partition_key_value:
            raise ValidationError(
                f"Item field {prop!r} is {item.payload[prop]!r} but its partition key value "
                f"is {item.partition_key_value!r}"
            )
        self._require_ready(handle)

        document = item.to_document(handle.partition_key_path)
        logger.debug(
            f"Executing {self._procedure} for item {item.id} in partition {item.partition_key_value}"
        )
        try:
            response = await self._store.execute_stored_procedure(
                handle, self._procedure, item.partition_key_value, [document]
            )
        except ConnectivityError as exc:
            self._fail(exc)
            raise
        except ConflictError:
            logger.info(f"Item {item.id} already exists in partition {item.partition_key_value}")
            raise
        except ProcedureError as exc:
            logger.error(f"Stored procedure {self._procedure} failed: {exc.diagnostic}")
            raise

        if not isinstance(response, Mapping):
            raise ProcedureError(
                f"Stored procedure {self._procedure} returned no document",
                diagnostic=response,
            )
        persisted = PersistedItem.from_document(response, handle.partition_key_path)
        logger.info(f"Ingested item {persisted.id} into {handle.container}")
        return persisted

    async def read_item(
        self, handle: ContainerHandle, item_id: str, partition_key_value: str
    ) -> Optional[PersistedItem]:
        """Point lookup of one item. Returns None when it does not exist."""
        self._require_ready(handle)
        try:
            document = await self._store.read_item(handle, item_id, partition_key_value)
        except ConnectivityError as exc:
            self._fail(exc)
            raise
        if document is None:
            return None
        return PersistedItem.from_document(document, handle.partition_key_path)

    async def query_all_items(
        self, handle: ContainerHandle, partition_key_value: Optional[str] = None
    ) -> AsyncIterator[PersistedItem]:
        """Lazily yield every item, optionally restricted to one partition.

        Pages are fetched on demand. Items already yielded stay yielded if a
        later page fails.
        """
        self._require_ready(handle)
        pages = 0
        try:
            async for page in self._store.query_items(
                handle, SELECT_ALL_QUERY, partition_key_value=partition_key_value
            ):
                pages += 1
                logger.debug(f"Fetched page {pages} with {len(page)} items from {handle.container}")
                for document in page:
                    yield PersistedItem.from_document(document, handle.partition_key_path)
        except ConnectivityError as exc:
            self._fail(exc)
            raise


__all__ = ["IngestionWorkflow", "WorkflowState", "SELECT_ALL_QUERY"]
