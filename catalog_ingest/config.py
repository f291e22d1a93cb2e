from __future__ import annotations

import os
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from .errors import ConfigurationError
from .models import partition_key_property


class CosmosConfig(BaseModel):
    """Connection settings for the Cosmos DB account."""

    endpoint: Optional[str] = None
    key: Optional[str] = None
    connection_verify: bool = True


class StoreConfig(BaseModel):
    """Document store backend selection."""

    backend: Literal["cosmos", "inmemory"] = "cosmos"
    cosmos: CosmosConfig = Field(default_factory=CosmosConfig)


class ProcedureConfig(BaseModel):
    """Insertion procedure registration settings."""

    name: str = "createProduct"
    path: Optional[str] = None


class RetryConfig(BaseModel):
    max_attempts: int = 3


class TopologySettings(BaseModel):
    """Everything needed to reach and shape the target container."""

    endpoint: str
    key: str
    database: str
    container: str
    partition_key_path: str

    @field_validator("endpoint", "key", "database", "container", "partition_key_path")
    @classmethod
    def _required(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("must not be empty")
        return value

    @field_validator("partition_key_path")
    @classmethod
    def _valid_path(cls, value: str) -> str:
        try:
            partition_key_property(value)
        except ConfigurationError as exc:
            raise ValueError(str(exc)) from exc
        return value

    @classmethod
    def build(cls, **fields: Optional[str]) -> "TopologySettings":
        try:
            return cls(**{k: v if v is not None else "" for k, v in fields.items()})
        except PydanticValidationError as exc:
            problems = ", ".join(
                f"{'.'.join(str(p) for p in err['loc'])} {err['msg']}" for err in exc.errors()
            )
            raise ConfigurationError(f"Invalid topology settings: {problems}") from exc


class IngestConfig(BaseModel):
    """Top-level configuration model."""

    store: StoreConfig = Field(default_factory=StoreConfig)
    database: str = "Store"
    container: str = "ProductCatalog"
    partition_key_path: str = "/categoryId"
    procedure: ProcedureConfig = Field(default_factory=ProcedureConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)

    def topology_settings(self) -> TopologySettings:
        endpoint = self.store.cosmos.endpoint
        key = self.store.cosmos.key
        if self.store.backend == "inmemory":
            # The in-process store accepts any credential.
            endpoint = endpoint or "memory://local"
            key = key or "local"
        return TopologySettings.build(
            endpoint=endpoint,
            key=key,
            database=self.database,
            container=self.container,
            partition_key_path=self.partition_key_path,
        )


def load_config(path: Optional[str] = None) -> IngestConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to CATALOG_INGEST_CONFIG
            env variable or 'catalog_ingest.yaml' in the current directory.

    ``COSMOS_ENDPOINT``, ``COSMOS_KEY`` and ``CATALOG_INGEST_STORE`` override
    the file so the credential never has to live in it.
    """

    config_path = path or os.getenv("CATALOG_INGEST_CONFIG", "catalog_ingest.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        try:
            config = IngestConfig(**data)
        except PydanticValidationError as exc:
            raise ConfigurationError(f"Invalid config file {config_path}: {exc}") from exc
    elif path:
        raise ConfigurationError(f"Config file not found: {path}")
    else:
        config = IngestConfig()

    env_endpoint = os.getenv("COSMOS_ENDPOINT")
    if env_endpoint:
        config.store.cosmos.endpoint = env_endpoint
    env_key = os.getenv("COSMOS_KEY")
    if env_key:
        config.store.cosmos.key = env_key
    env_backend = os.getenv("CATALOG_INGEST_STORE")
    if env_backend:
        if env_backend not in ("cosmos", "inmemory"):
            raise ConfigurationError(f"Unsupported store backend: {env_backend}")
        config.store.backend = env_backend  # type: ignore[assignment]
    return config
