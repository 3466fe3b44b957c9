"""
Shared test fixtures — in-memory Mongo double, async DB, API client.
"""

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

import pytest
import pytest_asyncio
from bson import ObjectId
from httpx import ASGITransport, AsyncClient
from pymongo.errors import DuplicateKeyError, OperationFailure
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from olytics.aggregation import ContentArchiveAggregation
from olytics.aggregation.indexes import IndexManager
from olytics.database import Base
from olytics.services.enablement import EnablementService

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"

_MISSING = object()


# ── In-memory MongoDB ───────────────────────────────────
#
# Just enough of the async driver surface for the aggregations:
# create_indexes, update_one (upsert, $setOnInsert/$set/$inc, $exists)
# and count_documents.  Every operation yields to the event loop once so
# concurrent tasks interleave like they would against a real server.

def _get_path(doc: dict, path: str) -> Any:
    current: Any = doc
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return _MISSING
        current = current[part]
    return current


def _set_path(doc: dict, path: str, value: Any) -> None:
    parts = path.split(".")
    current = doc
    for part in parts[:-1]:
        current = current.setdefault(part, {})
    current[parts[-1]] = value


def _is_operator(value: Any) -> bool:
    return isinstance(value, dict) and any(k.startswith("$") for k in value)


def _matches(doc: dict, criteria: dict) -> bool:
    for path, cond in criteria.items():
        value = _get_path(doc, path)
        if _is_operator(cond):
            if "$exists" in cond and cond["$exists"] != (value is not _MISSING):
                return False
        elif value is _MISSING or value != cond:
            return False
    return True


@dataclass
class FakeUpdateResult:
    matched_count: int
    modified_count: int
    upserted_id: Optional[ObjectId] = None


class FakeCollection:
    def __init__(self, full_name: str):
        self.full_name = full_name
        self.docs: list[dict] = []
        self.indexes: dict[str, dict] = {}
        self.create_indexes_calls = 0
        # Exceptions to raise, consumed one per call
        self.update_errors: list[Exception] = []
        self.count_errors: list[Exception] = []
        self.index_errors: list[Exception] = []

    async def create_indexes(self, models):
        await asyncio.sleep(0)
        self.create_indexes_calls += 1
        if self.index_errors:
            raise self.index_errors.pop(0)
        names = []
        for model in models:
            spec = dict(model.document)
            name = spec.pop("name")
            existing = self.indexes.get(name)
            if existing is not None and existing != spec:
                raise OperationFailure(
                    f"An existing index has the same name as the requested index: {name}",
                    code=85,
                )
            self.indexes[name] = spec
            names.append(name)
        return names

    async def update_one(self, criteria: dict, update: dict, upsert: bool = False):
        await asyncio.sleep(0)
        if self.update_errors:
            raise self.update_errors.pop(0)

        for doc in self.docs:
            if _matches(doc, criteria):
                self._apply(doc, update, inserting=False)
                return FakeUpdateResult(1, 1)

        if not upsert:
            return FakeUpdateResult(0, 0)

        doc: dict = {"_id": ObjectId()}
        for path, cond in criteria.items():
            if not _is_operator(cond):
                _set_path(doc, path, cond)
        self._apply(doc, update, inserting=True)
        self._check_unique(doc)
        self.docs.append(doc)
        return FakeUpdateResult(0, 0, doc["_id"])

    async def count_documents(self, criteria: dict) -> int:
        await asyncio.sleep(0)
        if self.count_errors:
            raise self.count_errors.pop(0)
        return sum(1 for doc in self.docs if _matches(doc, criteria))

    def find_all(self, criteria: Optional[dict] = None) -> list[dict]:
        return [doc for doc in self.docs if _matches(doc, criteria or {})]

    def _apply(self, doc: dict, update: dict, inserting: bool) -> None:
        if inserting:
            for path, value in update.get("$setOnInsert", {}).items():
                _set_path(doc, path, value)
        for path, value in update.get("$set", {}).items():
            _set_path(doc, path, value)
        for path, amount in update.get("$inc", {}).items():
            current = _get_path(doc, path)
            _set_path(doc, path, (0 if current is _MISSING else current) + amount)

    def _check_unique(self, new_doc: dict) -> None:
        # Missing fields index as null, like the server.
        for name, spec in self.indexes.items():
            if not spec.get("unique"):
                continue
            paths = list(spec["key"].keys())

            def key_of(doc):
                values = (_get_path(doc, p) for p in paths)
                return tuple(None if v is _MISSING else v for v in values)

            if any(key_of(doc) == key_of(new_doc) for doc in self.docs):
                raise DuplicateKeyError(f"E11000 duplicate key error collection: {self.full_name} index: {name}")


class FakeDatabase:
    def __init__(self, name: str):
        self.name = name
        self._collections: dict[str, FakeCollection] = {}

    def __getitem__(self, coll_name: str) -> FakeCollection:
        if coll_name not in self._collections:
            self._collections[coll_name] = FakeCollection(f"{self.name}.{coll_name}")
        return self._collections[coll_name]


class FakeMongoClient:
    def __init__(self):
        self._databases: dict[str, FakeDatabase] = {}

    def __getitem__(self, db_name: str) -> FakeDatabase:
        if db_name not in self._databases:
            self._databases[db_name] = FakeDatabase(db_name)
        return self._databases[db_name]


@pytest.fixture
def mongo():
    return FakeMongoClient()


@pytest.fixture
def session_archive(mongo):
    return mongo["content_session_archive"]["acme_news"]


@pytest.fixture
def traffic_archive(mongo):
    return mongo["content_traffic_archive"]["acme_news"]


# ── Events ──────────────────────────────────────────────

@dataclass
class FakeEntity:
    client_id: Any
    type: str = "content"


@dataclass
class FakeSession:
    id: Any
    customer_id: Optional[Any] = None


@dataclass
class FakeEvent:
    created_at: datetime
    entity: FakeEntity
    session: FakeSession = field(default_factory=lambda: FakeSession(uuid.uuid4()))


S1 = uuid.UUID("5f0c6a64-8a8e-4a8b-9d53-0d6f2c9f1a01")
S2 = uuid.UUID("5f0c6a64-8a8e-4a8b-9d53-0d6f2c9f1a02")


@pytest.fixture
def make_event():
    def _make(
        created_at: datetime = datetime(2023, 3, 15, 10, 0, tzinfo=timezone.utc),
        content_id: Any = "C1",
        session_id: Any = S1,
        customer_id: Optional[Any] = None,
        entity_type: str = "content",
    ) -> FakeEvent:
        return FakeEvent(
            created_at=created_at,
            entity=FakeEntity(client_id=content_id, type=entity_type),
            session=FakeSession(id=session_id, customer_id=customer_id),
        )
    return _make


# ── Aggregation ─────────────────────────────────────────

class StaticEnablement:
    """Enablement checker answering the same for every account/group."""

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self.calls: list[tuple[str, str, str]] = []

    async def is_enabled(self, aggregation: str, account_key: str, group_key: str) -> bool:
        self.calls.append((aggregation, account_key, group_key))
        return self.enabled


@pytest.fixture
def enablement():
    return StaticEnablement(enabled=True)


@pytest.fixture
def aggregation(mongo, enablement):
    return ContentArchiveAggregation(mongo, enablement, IndexManager(mongo))


# ── Test Database (SQLite in-memory) ────────────────────

@pytest_asyncio.fixture()
async def db_engine():
    engine = create_async_engine(TEST_DB_URL, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture()
async def db_session_factory(db_engine):
    return async_sessionmaker(db_engine, expire_on_commit=False)


@pytest_asyncio.fixture()
async def enablement_service(db_session_factory):
    return EnablementService(db_session_factory, default_enabled=False)


# ── API client ──────────────────────────────────────────

@pytest_asyncio.fixture()
async def client(mongo, enablement_service):
    """FastAPI test client wired to the fake Mongo and test DB."""
    from olytics.main import app, build_manager

    app.state.enablement = enablement_service
    app.state.aggregation_manager = build_manager(mongo, enablement_service)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
