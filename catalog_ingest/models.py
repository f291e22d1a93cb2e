"""Data models for items, containers and stored procedures."""

from __future__ import annotations

import uuid
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from .errors import ConfigurationError, ValidationError


def partition_key_property(path: str) -> str:
    """Return the document property addressed by a partition-key path.

    Only top-level paths such as ``/categoryId`` are supported.
    """
    if not path or not path.startswith("/") or len(path) < 2 or "/" in path[1:]:
        raise ConfigurationError(
            f"Partition key path must look like '/property', got {path!r}"
        )
    return path[1:]


def _first_error(exc: PydanticValidationError) -> str:
    err = exc.errors()[0]
    location = ".".join(str(part) for part in err.get("loc", ())) or "item"
    return f"{location}: {err.get('msg')}"


class Item(BaseModel):
    """Unit of storage: an id, a partition key value and free-form payload."""

    model_config = ConfigDict(extra="allow", frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    partition_key_value: str

    @field_validator("id", "partition_key_value", mode="before")
    @classmethod
    def _non_empty(cls, value: Any) -> Any:
        if value is None:
            raise ValueError("value is required")
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            value = str(value)
        if isinstance(value, str) and not value.strip():
            raise ValueError("value must not be empty")
        return value

    @classmethod
    def build(cls, **fields: Any) -> "Item":
        """Construct an item, raising :class:`ValidationError` on bad input."""
        try:
            return cls(**fields)
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid item: {_first_error(exc)}") from exc

    @classmethod
    def from_document(cls, document: Mapping[str, Any], partition_key_path: str) -> "Item":
        """Build an item from a raw document keyed by the partition-key property.

        Store metadata (properties starting with ``_``) is dropped.
        """
        prop = partition_key_property(partition_key_path)
        data = {k: v for k, v in document.items() if not k.startswith("_")}
        if "partition_key_value" in data and prop != "partition_key_value":
            raise ValidationError("Item payload may not use the reserved 'partition_key_value' field")
        value = data.pop(prop, None)
        return cls.build(partition_key_value=value, **data)

    @property
    def payload(self) -> dict[str, Any]:
        """Caller-supplied fields other than ``id`` and the partition key."""
        return dict(self.model_extra or {})

    def to_document(self, partition_key_path: str) -> dict[str, Any]:
        """Render the wire document for a container with the given path."""
        prop = partition_key_property(partition_key_path)
        document: dict[str, Any] = {"id": self.id}
        document.update(self.payload)
        document[prop] = self.partition_key_value
        return document


class PersistedItem(BaseModel):
    """An item as acknowledged by the store, with server-assigned metadata."""

    model_config = ConfigDict(frozen=True)

    item: Item
    metadata: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_document(
        cls, document: Mapping[str, Any], partition_key_path: str
    ) -> "PersistedItem":
        metadata = {k: v for k, v in document.items() if k.startswith("_")}
        return cls(item=Item.from_document(document, partition_key_path), metadata=metadata)

    @property
    def id(self) -> str:
        return self.item.id

    @property
    def etag(self) -> Optional[str]:
        return self.metadata.get("_etag")

    @property
    def timestamp(self) -> Optional[int]:
        return self.metadata.get("_ts")

    def to_document(self, partition_key_path: str) -> dict[str, Any]:
        document = self.item.to_document(partition_key_path)
        document.update(self.metadata)
        return document


class ContainerHandle(BaseModel):
    """Immutable reference to a provisioned container."""

    model_config = ConfigDict(frozen=True)

    database: str
    container: str
    partition_key_path: str
    resource_id: Optional[str] = None

    @property
    def partition_key_property(self) -> str:
        return partition_key_property(self.partition_key_path)


class StoredProcedure(BaseModel):
    """A named server-side routine. The body is treated as opaque text."""

    model_config = ConfigDict(frozen=True)

    name: str
    body: str

    @classmethod
    def build(cls, name: str, body: str, max_size: Optional[int] = None) -> "StoredProcedure":
        if not name or not name.strip():
            raise ValidationError("Stored procedure name must not be empty")
        if not body or not body.strip():
            raise ValidationError(f"Stored procedure '{name}' has an empty body")
        size = len(body.encode("utf-8"))
        if max_size is not None and size > max_size:
            raise ValidationError(
                f"Stored procedure '{name}' body is {size} bytes, limit is {max_size}"
            )
        return cls(name=name, body=body)


__all__ = [
    "ContainerHandle",
    "Item",
    "PersistedItem",
    "StoredProcedure",
    "partition_key_property",
]
