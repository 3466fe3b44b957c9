"""
Aggregations — turn single tracking events into archived roll-ups.
"""

from olytics.aggregation.base import AbstractAggregation, AggregationOutcome  # noqa: F401
from olytics.aggregation.content_archive import ContentArchiveAggregation  # noqa: F401
from olytics.aggregation.manager import AggregationManager  # noqa: F401
