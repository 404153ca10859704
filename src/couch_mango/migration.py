"""automigrate / autoupdate: bring each model's Mango indexes in line with its definition."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from .database import DESIGN_PREFIX
from .exceptions import DocumentNotFoundError
from .indexes import CouchIndexPlanner, ExistingIndex, IndexDescriptor, IndexPlan

if TYPE_CHECKING:
    from .database import CouchDatabase
    from .model_handle import ModelHandle

logger = logging.getLogger("couch_mango.migration")


async def drop_design_doc(database: CouchDatabase, ddoc: str) -> bool:
    """Delete a design document at its current revision. False if it is gone already."""
    doc_id = ddoc if ddoc.startswith(DESIGN_PREFIX) else DESIGN_PREFIX + ddoc
    try:
        current = await database.get(doc_id)
        await database.destroy(doc_id, current["_rev"])
    except DocumentNotFoundError:
        logger.debug("design doc %s already removed", doc_id)
        return False
    return True


class CouchMigrator:
    """Applies index plans for models resolved by the connector."""

    def __init__(self, planner: CouchIndexPlanner | None = None) -> None:
        self.planner = planner or CouchIndexPlanner()

    async def existing_indexes(self, handle: ModelHandle) -> dict[str, ExistingIndex]:
        listing = await handle.database.list_indexes()
        return self.planner.existing_for(listing.get("indexes", []), handle.name)

    async def plan(self, handle: ModelHandle, *, full_rebuild: bool) -> IndexPlan:
        existing = await self.existing_indexes(handle)
        return self.planner.plan(
            handle.definition, handle.discriminator, existing, full_rebuild
        )

    async def apply(self, handle: ModelHandle, plan: IndexPlan) -> list[dict[str, Any]]:
        """Drop first: a changed index is re-created under the same ddoc."""
        dropped = set()
        for name, old in plan.to_drop.items():
            if old.ddoc in dropped:
                continue
            await drop_design_doc(handle.database, old.ddoc)
            dropped.add(old.ddoc)
            logger.info("dropped index %s of %s", name, handle.name)
        results = []
        for name, descriptor in plan.to_add.items():
            results.append(await self.create(handle, descriptor))
            logger.info("created index %s of %s", name, handle.name)
        return results

    async def create(self, handle: ModelHandle, descriptor: IndexDescriptor) -> dict[str, Any]:
        return await handle.database.create_index(descriptor.to_request())

    async def migrate(self, handle: ModelHandle, *, full_rebuild: bool) -> IndexPlan:
        plan = await self.plan(handle, full_rebuild=full_rebuild)
        if plan.is_empty():
            logger.info("indexes of %s are up to date", handle.name)
            return plan
        await self.apply(handle, plan)
        return plan
