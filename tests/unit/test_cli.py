import json

import pytest
from typer.testing import CliRunner

import catalog_ingest.cli as cli
from catalog_ingest.cli import app
from catalog_ingest.stores.inmemory import InMemoryDocumentStore


@pytest.fixture
def store(tmp_path, monkeypatch):
    for name in ("COSMOS_ENDPOINT", "COSMOS_KEY"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("CATALOG_INGEST_CONFIG", str(tmp_path / "catalog_ingest.yaml"))
    monkeypatch.setenv("CATALOG_INGEST_STORE", "inmemory")
    shared = InMemoryDocumentStore()
    monkeypatch.setattr(cli, "get_store", lambda backend=None, config=None: shared)
    return shared


def test_provision_command(store):
    """Provisioning twice succeeds and reports the container."""
    runner = CliRunner()
    result = runner.invoke(app, ["provision"])
    assert result.exit_code == 0, result.stdout
    assert "Provisioned Store/ProductCatalog (partition key /categoryId)" in result.stdout

    again = runner.invoke(app, ["provision"])
    assert again.exit_code == 0, again.stdout


def test_ingest_command_prints_persisted_item(store):
    """Ingest prints the stored document and show reads it back."""
    runner = CliRunner()
    result = runner.invoke(
        app,
        ["ingest", "-p", "23", "--name", "IPhone 14", "--price", "1099.99", "-f", "stock=12", "--id", "a1"],
    )
    assert result.exit_code == 0, result.stdout

    document = json.loads(result.stdout)
    assert document["id"] == "a1"
    assert document["categoryId"] == "23"
    assert document["name"] == "IPhone 14"
    assert document["price"] == 1099.99
    assert document["stock"] == 12
    assert "_ts" in document

    shown = runner.invoke(app, ["show", "a1", "23"])
    assert shown.exit_code == 0, shown.stdout
    assert json.loads(shown.stdout)["_etag"] == document["_etag"]


def test_ingest_empty_partition_key_fails(store):
    """An empty partition key exits with a validation error."""
    runner = CliRunner()
    result = runner.invoke(app, ["ingest", "-p", "", "--name", "Widget"])
    assert result.exit_code == 1
    assert "validation_error" in result.stdout


def test_ingest_duplicate_id_reports_conflict(store):
    """Re-ingesting an id in the same partition reports a conflict."""
    runner = CliRunner()
    first = runner.invoke(app, ["ingest", "-p", "cat-1", "--id", "a1"])
    assert first.exit_code == 0, first.stdout

    second = runner.invoke(app, ["ingest", "-p", "cat-1", "--id", "a1"])
    assert second.exit_code == 1
    assert "conflict" in second.stdout


def test_ingest_rejects_malformed_field(store):
    """A -f entry without '=' is rejected."""
    runner = CliRunner()
    result = runner.invoke(app, ["ingest", "-p", "23", "-f", "color"])
    assert result.exit_code == 1
    assert "validation_error" in result.stdout


def test_ingest_rejects_partition_key_field(store):
    """A -f field may not shadow the container's partition-key property."""
    runner = CliRunner()
    result = runner.invoke(app, ["ingest", "-p", "23", "-f", "categoryId=24", "--id", "a1"])
    assert result.exit_code == 1
    assert "validation_error" in result.stdout

    shown = runner.invoke(app, ["show", "a1", "23"])
    assert "Item not found" in shown.stdout


def test_list_command(store):
    """List reports an empty container and filters by partition."""
    runner = CliRunner()
    empty = runner.invoke(app, ["list"])
    assert empty.exit_code == 0, empty.stdout
    assert "No items found" in empty.stdout

    runner.invoke(app, ["ingest", "-p", "cat-1", "--id", "a1", "--name", "Widget"])
    runner.invoke(app, ["ingest", "-p", "cat-2", "--id", "b1", "--name", "Gadget"])

    listed = runner.invoke(app, ["list", "-p", "cat-1"])
    assert listed.exit_code == 0, listed.stdout
    documents = [json.loads(line) for line in listed.stdout.splitlines() if line.strip()]
    assert [d["id"] for d in documents] == ["a1"]


def test_show_missing_item(store):
    """Show exits non-zero for an unknown item."""
    runner = CliRunner()
    result = runner.invoke(app, ["show", "missing", "23"])
    assert result.exit_code == 1
    assert "Item not found" in result.stdout


def test_missing_cosmos_credentials_is_reported(tmp_path, monkeypatch):
    """The Cosmos backend without credentials is a configuration error."""
    for name in ("COSMOS_ENDPOINT", "COSMOS_KEY", "CATALOG_INGEST_STORE"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("CATALOG_INGEST_CONFIG", str(tmp_path / "catalog_ingest.yaml"))

    runner = CliRunner()
    result = runner.invoke(app, ["provision"])
    assert result.exit_code == 1
    assert "configuration_error" in result.stdout
