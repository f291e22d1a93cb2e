"""catalog_ingest: provision a partitioned document store and ingest items."""

from .config import IngestConfig, TopologySettings, load_config
from .errors import (
    ConfigurationError,
    ConflictError,
    ConnectivityError,
    IngestError,
    ProcedureError,
    ValidationError,
    WorkflowStateError,
)
from .models import ContainerHandle, Item, PersistedItem, StoredProcedure
from .stores import DocumentStore, InMemoryDocumentStore, get_store
from .workflow import IngestionWorkflow, WorkflowState

__version__ = "0.1.0"
__all__ = [
    "ConfigurationError",
    "ConflictError",
    "ConnectivityError",
    "ContainerHandle",
    "DocumentStore",
    "IngestConfig",
    "IngestError",
    "IngestionWorkflow",
    "InMemoryDocumentStore",
    "Item",
    "PersistedItem",
    "ProcedureError",
    "StoredProcedure",
    "TopologySettings",
    "ValidationError",
    "WorkflowState",
    "WorkflowStateError",
    "get_store",
    "load_config",
]
