"""CouchConnector: model-level CRUD, querying and migration over one CouchDB server."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from .connection import CouchConnectionManager
from .database import CouchDatabase
from .definitions import ModelRegistry
from .exceptions import (
    CouchConnectionError,
    CouchProtocolError,
    CouchQueryError,
    DocumentNotFoundError,
)
from .indexes import (
    IndexDescriptor,
    IndexField,
    append_discriminator,
    coerce_directions,
    index_ddoc_name,
)
from .mapper import CouchDocumentMapper, plain_data
from .migration import CouchMigrator, drop_design_doc
from .model_handle import ModelHandle
from .query_executor import CouchQueryExecutor
from .selector import CouchSelectorBuilder, excluded_fields
from .settings import DEFAULT_MODEL_VIEW, CouchSettings
from .views import view_docs
from .write_coordinator import CouchWriteCoordinator

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from .definitions import ModelDefinition
    from .indexes import ExistingIndex, IndexPlan

logger = logging.getLogger("couch_mango.connector")

_FILTER_KEYS = frozenset({"where", "fields", "order", "limit", "offset", "skip"})


def _without(data: dict[str, Any], names: list[str]) -> dict[str, Any]:
    return {k: v for k, v in data.items() if k not in names}


class CouchConnector:
    """Adapter between a model registry and a CouchDB database.

    Per-model state (database, id property, discriminator) is resolved once
    and cached; :meth:`automigrate` and :meth:`autoupdate` refresh it.
    Extra keyword arguments go to ``httpx.AsyncClient``.
    """

    def __init__(
        self,
        settings: CouchSettings | Mapping[str, Any],
        registry: ModelRegistry | None = None,
        **client_kwargs: Any,
    ) -> None:
        if not isinstance(settings, CouchSettings):
            settings = CouchSettings.from_mapping(dict(settings))
        self._settings = settings
        self.registry = registry or ModelRegistry()
        self.connection = CouchConnectionManager(settings, **client_kwargs)
        self.selectors = CouchSelectorBuilder()
        self.executor = CouchQueryExecutor(page_size=settings.page_size)
        self.writes = CouchWriteCoordinator(
            self.selectors, self.executor, global_limit=settings.global_limit
        )
        self.migrator = CouchMigrator()
        self._databases: dict[str, CouchDatabase] = {}
        self._pool: dict[str, ModelHandle] = {}

    @property
    def settings(self) -> CouchSettings:
        return self._settings

    # -- lifecycle ---------------------------------------------------------

    async def connect(self) -> None:
        await self.connection.connect(self._settings.database_name)
        logger.info(
            "connected to %s/%s", self._settings.server_url, self._settings.database_name
        )

    async def ping(self) -> bool:
        if not await self.connection.health_check():
            raise CouchConnectionError("ping failed")
        return True

    async def close(self) -> None:
        await self.connection.close()

    # -- models ------------------------------------------------------------

    def define(self, definition: ModelDefinition) -> ModelDefinition:
        """Register a model. A cached handle is only replaced by migration."""
        return self.registry.define(definition)

    def database(self, name: str | None = None) -> CouchDatabase:
        name = name or self._settings.database_name
        db = self._databases.get(name)
        if db is None:
            db = self._databases[name] = CouchDatabase(self.connection, name)
        return db

    def select_model(self, name: str, refresh: bool = False) -> ModelHandle:
        """Resolve (and cache) everything the query and write paths need for a model."""
        handle = self._pool.get(name)
        if handle is not None and not refresh:
            return handle
        definition = self.registry.get(name)
        model_settings = definition.settings
        database = self.database(model_settings.database)
        if model_settings.model_selector is not None:
            handle = ModelHandle(
                definition, database, None, dict(model_settings.model_selector)
            )
        else:
            discriminator = (
                model_settings.model_index
                or self._settings.model_index
                or DEFAULT_MODEL_VIEW
            )
            handle = ModelHandle(definition, database, discriminator)
        self._pool[name] = handle
        return handle

    # -- queries -----------------------------------------------------------

    async def all(
        self,
        model: str,
        criteria: Mapping[str, Any] | None = None,
        *,
        raw: bool = False,
        use_index: str | list[str] | None = None,
    ) -> list[dict[str, Any]]:
        """Find instances matching ``{where, fields, order, limit, offset|skip}``.

        ``raw`` returns the stored documents without mapping them back.
        """
        criteria = dict(criteria or {})
        unknown = set(criteria) - _FILTER_KEYS
        if unknown:
            raise CouchQueryError(f"Unsupported filter keys: {sorted(unknown)}")
        handle = self.select_model(model)
        fields = criteria.get("fields")
        query = self.executor.build_query(
            self.selectors.build_selector(handle, criteria.get("where")),
            sort=self.selectors.build_sort(handle, criteria.get("order")),
            fields=self.selectors.build_fields(handle, fields),
            use_index=use_index,
        )
        docs = await self.executor.execute(
            handle.database,
            query,
            limit=criteria.get("limit") or self._settings.global_limit,
            offset=criteria.get("offset") or criteria.get("skip"),
            numeric_id=handle.id_is_numeric,
        )
        excluded = excluded_fields(fields)
        if raw:
            dropped = ["_id" if name == handle.id_name else name for name in excluded]
            return [_without(doc, dropped) for doc in docs] if dropped else docs
        if excluded:
            found = CouchDocumentMapper.for_handle(handle).from_docs(docs)
            return [_without(instance, excluded) for instance in found]
        if isinstance(fields, dict):
            fields = [k for k, keep in fields.items() if keep]
        return CouchDocumentMapper.for_handle(handle).from_docs(docs, fields or None)

    async def find_by_id(self, model: str, doc_id: Any) -> dict[str, Any] | None:
        handle = self.select_model(model)
        if handle.model_selector is not None:
            found = await self.all(model, {"where": {handle.id_name: doc_id}, "limit": 1})
            return found[0] if found else None
        try:
            doc = await handle.database.get(str(doc_id))
        except DocumentNotFoundError:
            return None
        if doc.get(handle.discriminator) != handle.name:
            return None
        return CouchDocumentMapper.for_handle(handle).from_doc(doc)

    async def count(self, model: str, where: Mapping[str, Any] | None = None) -> int:
        handle = self.select_model(model)
        docs = await self.all(
            model, {"where": where, "fields": [handle.id_name]}, raw=True
        )
        return len(docs)

    async def exists(self, model: str, doc_id: Any) -> bool:
        return await self.find_by_id(model, doc_id) is not None

    # -- writes ------------------------------------------------------------

    async def create(self, model: str, data: Any) -> tuple[Any, str]:
        """Insert a new document. Returns ``(id, rev)``."""
        return await self.writes.insert(self.select_model(model), data)

    async def save(self, model: str, data: Any) -> dict[str, Any]:
        """Write the whole instance; without an id this is a create."""
        handle = self.select_model(model)
        values = plain_data(data)
        doc_id = values.get(handle.id_name)
        if doc_id is None:
            new_id, rev = await self.writes.insert(handle, values)
            return {**values, handle.id_name: new_id, "_rev": rev}
        return await self.writes.replace_by_id(handle, doc_id, values)

    async def update_attributes(
        self, model: str, doc_id: Any, data: Any
    ) -> dict[str, Any]:
        return await self.writes.upsert_by_revision_match(
            self.select_model(model), doc_id, data
        )

    async def update_or_create(
        self, model: str, data: Any
    ) -> tuple[dict[str, Any], bool]:
        """Merge into the existing instance, or create one. Returns ``(instance, is_new)``."""
        handle = self.select_model(model)
        values = plain_data(data)
        doc_id = values.get(handle.id_name)
        if doc_id is not None:
            try:
                instance = await self.writes.upsert_by_revision_match(handle, doc_id, values)
            except DocumentNotFoundError:
                pass
            else:
                return instance, False
        new_id, rev = await self.writes.insert(handle, values)
        return {**values, handle.id_name: new_id, "_rev": rev}, True

    async def replace_or_create(
        self, model: str, data: Any
    ) -> tuple[dict[str, Any], bool]:
        """Replace the whole instance, or create it when the id is not stored yet.

        A replace must carry the stored ``_rev``; a missing or stale one ends
        in :class:`UpdateConflictError`.
        """
        handle = self.select_model(model)
        values = plain_data(data)
        doc_id = values.get(handle.id_name)
        if doc_id is not None:
            try:
                rev = await handle.database.head_revision(str(doc_id))
            except DocumentNotFoundError:
                rev = None
            if rev is not None:
                return await self.writes.replace_by_id(handle, doc_id, values), False
        new_id, rev = await self.writes.insert(handle, values)
        return {**values, handle.id_name: new_id, "_rev": rev}, True

    async def replace_by_id(self, model: str, doc_id: Any, data: Any) -> dict[str, Any]:
        return await self.writes.replace_by_id(self.select_model(model), doc_id, data)

    async def update_all(
        self, model: str, where: Mapping[str, Any] | None, data: Any
    ) -> int:
        return await self.writes.update_where(self.select_model(model), where, data)

    async def bulk_replace(self, model: str, data_list: list[Any]) -> list[dict[str, Any]]:
        return await self.writes.bulk_replace(self.select_model(model), data_list)

    async def destroy(self, model: str, doc_id: Any) -> int:
        return await self.writes.destroy(self.select_model(model), doc_id)

    async def destroy_all(self, model: str, where: Mapping[str, Any] | None = None) -> int:
        return await self.writes.destroy_all(self.select_model(model), where)

    async def get_current_revision(self, model: str, doc_id: Any) -> str:
        handle = self.select_model(model)
        try:
            rev = await handle.database.head_revision(str(doc_id))
        except DocumentNotFoundError as e:
            raise DocumentNotFoundError(
                f"No instance with id {doc_id} found for {handle.name}",
                status_code=e.status_code,
                error=e.error,
                reason=e.reason,
                model=handle.name,
                doc_id=str(doc_id),
            ) from e
        if rev is None:
            raise CouchProtocolError(f"No ETag returned for {handle.name} id={doc_id!r}")
        return rev

    # -- migration and indexes ---------------------------------------------

    def _model_names(self, models: str | Iterable[str] | None) -> list[str]:
        if models is None:
            return self.registry.names()
        if isinstance(models, str):
            return [models]
        return list(models)

    async def automigrate(
        self, models: str | Iterable[str] | None = None
    ) -> dict[str, IndexPlan]:
        """Delete every instance of each model, then rebuild all of its indexes."""
        plans: dict[str, IndexPlan] = {}
        for name in self._model_names(models):
            handle = self.select_model(name, refresh=True)
            deleted = await self.writes.destroy_all(handle)
            logger.info("automigrate %s: %d document(s) deleted", name, deleted)
            plans[name] = await self.migrator.migrate(handle, full_rebuild=True)
        return plans

    async def autoupdate(
        self, models: str | Iterable[str] | None = None
    ) -> dict[str, IndexPlan]:
        """Add new and changed indexes and drop orphaned ones; data is kept."""
        plans: dict[str, IndexPlan] = {}
        for name in self._model_names(models):
            handle = self.select_model(name, refresh=True)
            plans[name] = await self.migrator.migrate(handle, full_rebuild=False)
        return plans

    async def get_indexes(self, database: str | None = None) -> list[dict[str, Any]]:
        """Every index of a database as reported by ``GET _index``."""
        listing = await self.database(database).list_indexes()
        return listing.get("indexes", [])

    async def get_model_indexes(self, model: str) -> dict[str, ExistingIndex]:
        return await self.migrator.existing_indexes(self.select_model(model))

    async def create_index(
        self, model: str, name: str, fields: list[str | dict[str, str]]
    ) -> dict[str, Any]:
        """Create one named index for a model, following the model's naming scheme."""
        handle = self.select_model(model)
        index_fields = coerce_directions(name, (IndexField.from_json(f) for f in fields))
        descriptor = IndexDescriptor(
            name=name,
            fields=append_discriminator(index_fields, handle.discriminator),
            ddoc_name=index_ddoc_name(
                handle.name,
                name,
                model_prefix=self.migrator.planner.model_prefix,
                property_prefix=self.migrator.planner.property_prefix,
            ),
        )
        return await self.migrator.create(handle, descriptor)

    async def delete_index(self, model: str, ddoc: str) -> bool:
        return await drop_design_doc(self.select_model(model).database, ddoc)

    # -- discovery ---------------------------------------------------------

    async def discover_model_definitions(self) -> list[str]:
        """Names of every database on the server; each one can back a model."""
        return await self.connection.list_databases()

    def discover_schemas(
        self, db_name: str, visited: dict[str, dict[str, Any]] | None = None
    ) -> dict[str, dict[str, Any]]:
        """Skeleton schema for a database, keyed by name into ``visited``.

        Documents are schemaless, so ``properties`` is empty. An entry already
        in ``visited`` is kept as it is.
        """
        visited = {} if visited is None else visited
        visited.setdefault(
            db_name,
            {
                "name": db_name,
                "options": {"idInjection": True, "dbName": db_name},
                "properties": {},
            },
        )
        return visited

    async def view_docs(
        self,
        ddoc: str,
        view_name: str,
        params: dict[str, Any] | None = None,
        *,
        database: str | None = None,
    ) -> dict[str, Any]:
        return await view_docs(self.database(database), ddoc, view_name, params)


async def initialize(
    settings: CouchSettings | Mapping[str, Any],
    registry: ModelRegistry | None = None,
    **client_kwargs: Any,
) -> CouchConnector:
    """Build a connector and, unless ``lazy_connect`` is set, connect it."""
    connector = CouchConnector(settings, registry, **client_kwargs)
    if not connector.settings.lazy_connect:
        await connector.connect()
    return connector
