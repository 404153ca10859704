"""Shared fixtures: an in-memory CouchDB and connectors wired to it."""

from __future__ import annotations

import pytest
from fake_couch import FakeCouchServer
from sample_models import DB, DISCRIMINATOR, customer_definition, product_definition

from couch_mango import CouchConnector, CouchSettings, ModelRegistry
from couch_mango.database import CouchDatabase
from couch_mango.model_handle import ModelHandle


@pytest.fixture
def couch() -> FakeCouchServer:
    return FakeCouchServer(DB)


@pytest.fixture
def settings() -> CouchSettings:
    return CouchSettings(url=f"http://localhost:5984/{DB}")


@pytest.fixture
def registry() -> ModelRegistry:
    return ModelRegistry([customer_definition(), product_definition()])


@pytest.fixture
async def connector(couch, settings, registry):
    """Connected adapter talking to the in-memory server."""
    conn = CouchConnector(settings, registry, transport=couch.transport())
    await conn.connect()
    yield conn
    await conn.close()


@pytest.fixture
def customer_handle(connector) -> ModelHandle:
    return connector.select_model("Customer")


@pytest.fixture
def offline_handle() -> ModelHandle:
    """Handle for pure translation tests; its database is never called."""
    return ModelHandle(customer_definition(), CouchDatabase(None, DB), DISCRIMINATOR)  # type: ignore[arg-type]
