"""
Aggregation manager — routes each incoming event to every registered
aggregation.
"""

import logging
from typing import Iterable, Optional

from olytics.aggregation.base import AbstractAggregation, AggregationOutcome
from olytics.aggregation.events import EventInterface

logger = logging.getLogger(__name__)


class AggregationManager:
    """Holds the aggregations and dispatches events to them in order."""

    def __init__(self, aggregations: Optional[Iterable[AbstractAggregation]] = None):
        self._aggregations: dict[str, AbstractAggregation] = {}
        for aggregation in aggregations or ():
            self.register(aggregation)

    def register(self, aggregation: AbstractAggregation) -> None:
        if aggregation.name in self._aggregations:
            raise ValueError(f"Aggregation {aggregation.name!r} already registered")
        self._aggregations[aggregation.name] = aggregation

    def get(self, name: str) -> Optional[AbstractAggregation]:
        return self._aggregations.get(name)

    @property
    def names(self) -> list[str]:
        return list(self._aggregations)

    async def dispatch(
        self,
        event: EventInterface,
        account_key: str,
        group_key: str,
        app_key: str,
    ) -> dict[str, AggregationOutcome]:
        """Run every aggregation for *event*.

        The first failure is logged and re-raised; retry policy belongs to
        whoever delivered the event.
        """
        results: dict[str, AggregationOutcome] = {}
        for name, aggregation in self._aggregations.items():
            try:
                results[name] = await aggregation.process(event, account_key, group_key, app_key)
            except Exception as exc:
                logger.error("❌ Aggregation %s failed for %s/%s: %s", name, account_key, group_key, exc)
                raise
        return results
