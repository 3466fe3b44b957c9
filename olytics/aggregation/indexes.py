"""
Index provisioning for the archive collections.

Index specs are declared as plain dicts::

    {"keys": {"month": 1, "contentId": 1}, "options": {"unique": True}}

and created before every write.  ``createIndexes`` is a no-op on the
server when an identical index exists, so this is safe from any number
of concurrent workers.
"""

from __future__ import annotations

import logging
from typing import Any

from pymongo import IndexModel
from pymongo.errors import OperationFailure

from olytics.aggregation.errors import IndexConflictError, datastore_errors

logger = logging.getLogger(__name__)

# Server error codes
INDEX_ALREADY_EXISTS = 68
INDEX_OPTIONS_CONFLICT = 85
INDEX_KEY_SPECS_CONFLICT = 86
_CONFLICT_CODES = (INDEX_OPTIONS_CONFLICT, INDEX_KEY_SPECS_CONFLICT)


class IndexManager:
    """Creates declared indexes on (database, collection) pairs.

    With ``cache=True`` each collection is only provisioned once per
    process.  Off by default: an index dropped behind our back would
    otherwise not come back until restart.
    """

    def __init__(self, client: Any, cache: bool = False):
        self._client = client
        self._cache = cache
        self._ensured: set[tuple[str, str]] = set()

    def index_factory(self, spec: dict) -> IndexModel:
        keys = list(spec["keys"].items())
        return IndexModel(keys, **spec.get("options", {}))

    def index_factory_multi(self, specs: list[dict]) -> list[IndexModel]:
        return [self.index_factory(spec) for spec in specs]

    async def create_indexes(self, indexes: list[IndexModel], db_name: str, coll_name: str) -> None:
        """Ensure *indexes* exist on ``db_name.coll_name``.

        Raises ``IndexConflictError`` when an existing index has the same
        name or keys but different options.
        """
        if not indexes:
            return
        if self._cache and (db_name, coll_name) in self._ensured:
            return

        collection = self._client[db_name][coll_name]
        with datastore_errors(f"Index creation on {db_name}.{coll_name}"):
            try:
                await collection.create_indexes(indexes)
            except OperationFailure as exc:
                if exc.code == INDEX_ALREADY_EXISTS:
                    logger.debug("Indexes on %s.%s already present", db_name, coll_name)
                elif exc.code in _CONFLICT_CODES:
                    logger.error("❌ Index conflict on %s.%s: %s", db_name, coll_name, exc)
                    raise IndexConflictError(db_name, coll_name, str(exc)) from exc
                else:
                    raise

        if self._cache:
            self._ensured.add((db_name, coll_name))

    async def ensure_indexes(self, db_name: str, coll_name: str, specs: list[dict]) -> None:
        await self.create_indexes(self.index_factory_multi(specs), db_name, coll_name)
