"""
Content Archive aggregation — monthly session and traffic archives.

Each content page view produces two upserts:

1. **Session archive** (``content_session_archive.{account}_{group}``):
   one document per (month, content, user, session).  Repeat views in the
   same session only refresh ``lastAccessed``.  Documents expire 45 days
   after their last access.
2. **Traffic archive** (``content_traffic_archive.{account}_{group}``):
   one document per (month, content, user) with a ``pageviews`` counter and
   ``visits``, the number of session documents for the same bucket.

The session upsert MUST land before the traffic step counts sessions,
otherwise a visitor's first view would not be included in ``visits``.

Anonymous traffic has no ``userId`` field at all.  Stored nulls would
make every anonymous session collide on the unique indexes, so queries
use ``{"$exists": False}`` instead.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Optional

from bson.binary import OLD_UUID_SUBTYPE, Binary
from pymongo.errors import DuplicateKeyError, PyMongoError

from olytics.aggregation.base import AbstractAggregation, EnablementChecker
from olytics.aggregation.errors import InvalidEventError, datastore_errors
from olytics.aggregation.events import EventInterface
from olytics.aggregation.indexes import IndexManager
from olytics.aggregation.months import month_of

logger = logging.getLogger(__name__)

SESSION_ARCHIVE_DB = "content_session_archive"
TRAFFIC_ARCHIVE_DB = "content_traffic_archive"
SESSION_TTL_SECONDS = 60 * 60 * 24 * 45
CONTENT_ENTITY_TYPE = "content"


class ContentArchiveAggregation(AbstractAggregation):
    name = "content_archive"

    def __init__(
        self,
        client: Any,
        enablement: EnablementChecker,
        index_manager: Optional[IndexManager] = None,
        *,
        session_db: str = SESSION_ARCHIVE_DB,
        traffic_db: str = TRAFFIC_ARCHIVE_DB,
        session_ttl_seconds: int = SESSION_TTL_SECONDS,
    ):
        super().__init__(client, enablement, index_manager)
        self.session_db = session_db
        self.traffic_db = traffic_db
        self.session_ttl_seconds = session_ttl_seconds

    # ── Index mappings ──────────────────────────────────

    def get_traffic_archive_indexes(self) -> list[dict]:
        return [
            {"keys": {"metadata.month": 1, "metadata.contentId": 1, "metadata.userId": 1}, "options": {"unique": True}},
            {"keys": {"lastAccessed": 1}, "options": {}},
        ]

    def get_session_archive_indexes(self) -> list[dict]:
        return [
            {"keys": {"month": 1, "contentId": 1, "userId": 1, "sessionId": 1}, "options": {"unique": True}},
            # supports the visit count query
            {"keys": {"month": 1, "contentId": 1, "userId": 1}, "options": {}},
            {"keys": {"lastAccessed": 1}, "options": {"expireAfterSeconds": self.session_ttl_seconds}},
        ]

    def get_indexes(self) -> list[dict]:
        # Writes only to the two archives, provisioned above.
        return []

    # ── Eligibility ─────────────────────────────────────

    async def supports(self, event: EventInterface, account_key: str, group_key: str, app_key: str) -> bool:
        if not await self.is_enabled(account_key, group_key):
            return False
        return event.entity.type == CONTENT_ENTITY_TYPE

    # ── Execution ───────────────────────────────────────

    async def do_execute(self, event: EventInterface, account_key: str, group_key: str, app_key: str) -> None:
        # Order matters: the traffic step counts the session just written.
        await self.handle_session_archive(event, account_key, group_key)
        await self.handle_traffic_archive(event, account_key, group_key)

    async def handle_session_archive(self, event: EventInterface, account_key: str, group_key: str) -> None:
        db_name, coll_name = self.get_session_db_info(account_key, group_key)
        insert = self.get_bucket(event)
        insert["sessionId"] = self.get_session_id(event)

        await self.index_manager.ensure_indexes(db_name, coll_name, self.get_session_archive_indexes())

        criteria = _with_user_criteria(
            {k: v for k, v in insert.items() if k != "userId"},
            "userId",
            insert.get("userId"),
        )
        update = {
            "$setOnInsert": insert,
            "$set": {"lastAccessed": event.created_at},
        }
        await self._upsert(db_name, coll_name, criteria, update)

    async def handle_traffic_archive(self, event: EventInterface, account_key: str, group_key: str) -> None:
        db_name, coll_name = self.get_archive_db_info(account_key, group_key)
        metadata = self.get_bucket(event)

        await self.index_manager.ensure_indexes(db_name, coll_name, self.get_traffic_archive_indexes())

        criteria = _with_user_criteria(
            {
                "metadata.month": metadata["month"],
                "metadata.contentId": metadata["contentId"],
            },
            "metadata.userId",
            metadata.get("userId"),
        )
        update: dict[str, dict] = {
            "$setOnInsert": {"metadata": metadata},
            "$set": {"lastAccessed": event.created_at},
            "$inc": {"pageviews": 1},
        }

        visits = await self.get_content_visits(account_key, group_key, metadata)
        if visits > 0:
            update["$set"]["visits"] = visits

        await self._upsert(db_name, coll_name, criteria, update)

    async def get_content_visits(self, account_key: str, group_key: str, criteria: dict) -> int:
        """Count session documents for the (month, content, user) bucket.

        Returns 0 when the count cannot be read; callers treat 0 as
        "unknown" and leave ``visits`` alone.
        """
        db_name, coll_name = self.get_session_db_info(account_key, group_key)
        query = _with_user_criteria(
            {"month": criteria["month"], "contentId": criteria["contentId"]},
            "userId",
            criteria.get("userId"),
        )
        try:
            return await self.get_collection(db_name, coll_name).count_documents(query)
        except PyMongoError as exc:
            logger.warning(
                "⚠️  Visit count for %s in %s.%s unavailable: %s",
                criteria["contentId"], db_name, coll_name, exc,
            )
            return 0

    async def _upsert(self, db_name: str, coll_name: str, criteria: dict, update: dict) -> None:
        collection = self.get_collection(db_name, coll_name)
        with datastore_errors(f"Upsert into {db_name}.{coll_name}"):
            try:
                await collection.update_one(criteria, update, upsert=True)
            except DuplicateKeyError:
                # Lost an insert race on the unique index; the document now
                # exists so the same update applies as a plain match.
                logger.debug("Upsert race on %s.%s, reapplying as update", db_name, coll_name)
                await collection.update_one(criteria, update, upsert=True)

    # ── Key derivation ──────────────────────────────────

    def get_bucket(self, event: EventInterface) -> dict:
        """Month, content id and (when known) user id for *event*."""
        bucket = {
            "month": month_of(event.created_at),
            "contentId": event.entity.client_id,
        }
        user_id = self.get_user_id(event)
        if user_id is not None:
            bucket["userId"] = user_id
        return bucket

    def get_user_id(self, event: EventInterface) -> Optional[Any]:
        """The session's customer id, or None for anonymous traffic."""
        user_id = event.session.customer_id
        if not user_id:
            return None
        return user_id

    def get_session_id(self, event: EventInterface) -> Binary:
        """The visitor session id as 16-byte binary, legacy UUID subtype (3).

        Subtype 3 with the UUID bytes in RFC order is what existing archive
        documents hold; a subtype 4 value would never match them.
        """
        raw = event.session.id
        try:
            if isinstance(raw, uuid.UUID):
                value = raw
            elif isinstance(raw, (bytes, bytearray)):
                value = uuid.UUID(bytes=bytes(raw))
            else:
                value = uuid.UUID(str(raw))
        except (TypeError, ValueError) as exc:
            raise InvalidEventError(f"Session id {raw!r} is not a UUID") from exc
        return Binary(value.bytes, OLD_UUID_SUBTYPE)

    # ── Collection names ────────────────────────────────

    def get_session_db_info(self, account_key: str, group_key: str) -> tuple[str, str]:
        return self.session_db, f"{account_key}_{group_key}"

    def get_archive_db_info(self, account_key: str, group_key: str) -> tuple[str, str]:
        return self.traffic_db, f"{account_key}_{group_key}"


def _with_user_criteria(criteria: dict, field: str, user_id: Optional[Any]) -> dict:
    """Add the user match: equality when known, field-absent otherwise."""
    criteria[field] = user_id if user_id is not None else {"$exists": False}
    return criteria
