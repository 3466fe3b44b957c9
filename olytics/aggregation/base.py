"""
Base aggregation — the contract every aggregation fulfils.

An aggregation decides whether it ``supports`` an event for an
account/group/app and, if so, executes against its own collections.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Optional, Protocol

from olytics.aggregation.events import EventInterface
from olytics.aggregation.indexes import IndexManager

logger = logging.getLogger(__name__)


class AggregationOutcome(str, Enum):
    PROCESSED = "processed"
    SKIPPED = "skipped"


class EnablementChecker(Protocol):
    async def is_enabled(self, aggregation: str, account_key: str, group_key: str) -> bool: ...


class AbstractAggregation(ABC):
    """Shared plumbing: Mongo client, enablement lookups, index manager."""

    name: str = ""

    def __init__(
        self,
        client: Any,
        enablement: EnablementChecker,
        index_manager: Optional[IndexManager] = None,
    ):
        self.client = client
        self._enablement = enablement
        self.index_manager = index_manager or IndexManager(client)

    # ── Contract ────────────────────────────────────────

    @abstractmethod
    async def supports(self, event: EventInterface, account_key: str, group_key: str, app_key: str) -> bool:
        """Whether this aggregation should run for the event."""

    @abstractmethod
    def get_indexes(self) -> list[dict]:
        """Index specs for the aggregation's primary collection."""

    @abstractmethod
    async def do_execute(self, event: EventInterface, account_key: str, group_key: str, app_key: str) -> None:
        ...

    # ── Public API ──────────────────────────────────────

    async def process(
        self,
        event: EventInterface,
        account_key: str,
        group_key: str,
        app_key: str,
    ) -> AggregationOutcome:
        """Run the aggregation for one event; ineligible events are a no-op."""
        if not await self.supports(event, account_key, group_key, app_key):
            logger.debug("⏭️  %s skipped event for %s/%s", self.name, account_key, group_key)
            return AggregationOutcome.SKIPPED

        await self.do_execute(event, account_key, group_key, app_key)
        return AggregationOutcome.PROCESSED

    async def is_enabled(self, account_key: str, group_key: str) -> bool:
        return await self._enablement.is_enabled(self.name, account_key, group_key)

    def get_collection(self, db_name: str, coll_name: str) -> Any:
        return self.client[db_name][coll_name]
