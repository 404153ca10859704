"""CouchDB Mango persistence adapter.

Translates model-level where-filters, orders and projections into Mango
queries, plans JSON indexes per model and performs revision-aware writes.
"""

from __future__ import annotations

from .connection import CouchConnectionManager
from .connector import CouchConnector, initialize
from .database import CouchDatabase
from .definitions import (
    CouchModelSettings,
    IndexDefinition,
    ModelDefinition,
    ModelRegistry,
    PropertyDefinition,
)
from .exceptions import (
    BatchWriteError,
    CouchConnectionError,
    CouchHTTPError,
    CouchPersistenceError,
    CouchProtocolError,
    CouchQueryError,
    CouchValidationError,
    DocumentConflictError,
    DocumentNotFoundError,
    DuplicateDocumentError,
    MalformedDocumentError,
    UpdateConflictError,
)
from .filters import parse_where
from .indexes import CouchIndexPlanner, IndexDescriptor, IndexField, IndexPlan
from .mapper import CouchDocumentMapper
from .model_handle import ModelHandle
from .query_executor import CouchQueryExecutor
from .selector import CouchSelectorBuilder
from .settings import CouchSettings
from .write_coordinator import CouchWriteCoordinator

__all__ = [
    # Connector
    "CouchConnector",
    "initialize",
    "CouchSettings",
    # Models
    "ModelDefinition",
    "ModelRegistry",
    "PropertyDefinition",
    "IndexDefinition",
    "CouchModelSettings",
    "ModelHandle",
    # Building blocks
    "CouchConnectionManager",
    "CouchDatabase",
    "CouchSelectorBuilder",
    "CouchIndexPlanner",
    "IndexDescriptor",
    "IndexField",
    "IndexPlan",
    "CouchDocumentMapper",
    "CouchQueryExecutor",
    "CouchWriteCoordinator",
    "parse_where",
    # Exceptions
    "CouchPersistenceError",
    "CouchConnectionError",
    "CouchValidationError",
    "CouchQueryError",
    "CouchProtocolError",
    "MalformedDocumentError",
    "CouchHTTPError",
    "DocumentNotFoundError",
    "DocumentConflictError",
    "DuplicateDocumentError",
    "UpdateConflictError",
    "BatchWriteError",
]
