"""Command line interface for provisioning the catalog and ingesting items."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, List, Optional

import typer

from catalog_ingest.config import IngestConfig, load_config
from catalog_ingest.errors import IngestError, ValidationError
from catalog_ingest.models import ContainerHandle, Item, partition_key_property
from catalog_ingest.procedures import load_procedure_body
from catalog_ingest.stores import get_store
from catalog_ingest.utils.retry import retry_transient
from catalog_ingest.workflow import IngestionWorkflow

app = typer.Typer(help="CLI for provisioning a document store and ingesting items")

Command = Callable[[IngestionWorkflow, IngestConfig], Awaitable[None]]


@dataclass
class CliOptions:
    config_path: Optional[Path] = None
    timeout: Optional[float] = None


@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(
        None, "--config", "-c", help="YAML config file (default: CATALOG_INGEST_CONFIG)"
    ),
    log_level: str = typer.Option("WARNING", help="Logging level"),
    timeout: Optional[float] = typer.Option(
        None, help="Abort the command after this many seconds"
    ),
) -> None:
    """catalog-ingest CLI entry point."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = CliOptions(config_path=config, timeout=timeout)


def _run(ctx: typer.Context, command: Command) -> None:
    """Run ``command`` against a fresh workflow and report failures."""
    options: CliOptions = ctx.obj or CliOptions()
    try:
        config = load_config(str(options.config_path) if options.config_path else None)
        asyncio.run(_execute(config, command, options.timeout))
    except IngestError as exc:
        typer.secho(f"{exc.code}: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    except asyncio.TimeoutError:
        typer.secho(
            f"timeout: command did not finish within {options.timeout}s",
            fg=typer.colors.RED,
        )
        raise typer.Exit(code=1)


async def _execute(
    config: IngestConfig, command: Command, timeout: Optional[float]
) -> None:
    async with IngestionWorkflow(get_store(config=config)) as workflow:
        await asyncio.wait_for(command(workflow, config), timeout)


async def _prepare(workflow: IngestionWorkflow, config: IngestConfig) -> ContainerHandle:
    settings = config.topology_settings()
    body = load_procedure_body(config.procedure.path)
    return await retry_transient(
        lambda: workflow.prepare(settings, config.procedure.name, body),
        max_attempts=config.retry.max_attempts,
    )


def _parse_fields(fields: List[str], partition_key_field: str) -> dict:
    parsed = {}
    for entry in fields:
        key, sep, raw = entry.partition("=")
        if not sep or not key:
            raise ValidationError(f"Field {entry!r} must look like key=value")
        if key in ("partition_key_value", partition_key_field):
            raise ValidationError("Use --partition-key to set the partition key value")
        try:
            parsed[key] = json.loads(raw)
        except json.JSONDecodeError:
            parsed[key] = raw
    return parsed


@app.command("provision")
def provision(ctx: typer.Context) -> None:
    """
    Create the database, container and insertion procedure if missing.

    Safe to run repeatedly; existing resources are reused.

    Example:
        catalog-ingest provision
        # Output: Provisioned Store/ProductCatalog (partition key /categoryId)
    """

    async def command(workflow: IngestionWorkflow, config: IngestConfig) -> None:
        handle = await _prepare(workflow, config)
        typer.echo(
            f"Provisioned {handle.database}/{handle.container} "
            f"(partition key {handle.partition_key_path})"
        )

    _run(ctx, command)


@app.command("ingest")
def ingest(
    ctx: typer.Context,
    partition_key: str = typer.Option(
        ..., "--partition-key", "-p", help="Partition key value of the item"
    ),
    name: Optional[str] = typer.Option(None, help="Item name"),
    price: Optional[float] = typer.Option(None, help="Item price"),
    field: List[str] = typer.Option(
        [], "--field", "-f", help="Extra field as key=value (value parsed as JSON when possible)"
    ),
    item_id: Optional[str] = typer.Option(None, "--id", help="Item id (default: random UUID)"),
) -> None:
    """
    Provision the container and insert one item through the stored procedure.

    Prints the persisted item, including server-assigned metadata, as JSON.

    Example:
        catalog-ingest ingest -p 23 --name "IPhone 14" --price 1099.99
        catalog-ingest ingest -p 23 --name Case -f stock=12 -f color=black
    """

    async def command(workflow: IngestionWorkflow, config: IngestConfig) -> None:
        fields = _parse_fields(field, partition_key_property(config.partition_key_path))
        if name is not None:
            fields["name"] = name
        if price is not None:
            fields["price"] = price
        if item_id is not None:
            fields["id"] = item_id
        item = Item.build(partition_key_value=partition_key, **fields)
        handle = await _prepare(workflow, config)
        persisted = await workflow.ingest_item(handle, item)
        typer.echo(json.dumps(persisted.to_document(handle.partition_key_path), indent=2))

    _run(ctx, command)


@app.command("list")
def list_items(
    ctx: typer.Context,
    partition_key: Optional[str] = typer.Option(
        None, "--partition-key", "-p", help="Only list items in this partition"
    ),
) -> None:
    """
    Stream every item in the container, one JSON document per line.

    Example:
        catalog-ingest list
        catalog-ingest list -p 23
    """

    async def command(workflow: IngestionWorkflow, config: IngestConfig) -> None:
        handle = await _prepare(workflow, config)
        count = 0
        async for persisted in workflow.query_all_items(handle, partition_key):
            typer.echo(json.dumps(persisted.to_document(handle.partition_key_path)))
            count += 1
        if not count:
            typer.echo("No items found")

    _run(ctx, command)


@app.command("show")
def show(ctx: typer.Context, item_id: str, partition_key: str) -> None:
    """
    Show one item by id and partition key value.

    Example:
        catalog-ingest show 5f0c... 23
    """

    async def command(workflow: IngestionWorkflow, config: IngestConfig) -> None:
        handle = await _prepare(workflow, config)
        persisted = await workflow.read_item(handle, item_id, partition_key)
        if persisted is None:
            typer.echo("Item not found")
            raise typer.Exit(code=1)
        typer.echo(json.dumps(persisted.to_document(handle.partition_key_path), indent=2))

    _run(ctx, command)


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
