"""
Aggregation errors.

Ineligible events are not errors (see ``AggregationOutcome.SKIPPED``).
"""

from contextlib import contextmanager
from typing import Iterator

from pymongo.errors import ConnectionFailure, ExecutionTimeout, WTimeoutError


class AggregationError(Exception):
    """Base class for failures raised while aggregating an event."""

    retryable = False


class InvalidEventError(AggregationError):
    """The event cannot produce a dedup key (e.g. malformed session id)."""


class IndexConflictError(AggregationError):
    """An existing index clashes with the one an archive requires.

    This is a configuration problem; retrying will not fix it.
    """

    def __init__(self, db_name: str, coll_name: str, detail: str):
        self.db_name = db_name
        self.coll_name = coll_name
        self.detail = detail
        super().__init__(f"Index conflict on {db_name}.{coll_name}: {detail}")


class DatastoreUnavailableError(AggregationError):
    """MongoDB could not be reached or timed out.

    Raised to the caller, which owns the retry policy.  Retrying the whole
    event may count its page view twice.
    """

    retryable = True


@contextmanager
def datastore_errors(action: str) -> Iterator[None]:
    """Translate connectivity and timeout failures into ``DatastoreUnavailableError``."""
    try:
        yield
    except (ConnectionFailure, ExecutionTimeout, WTimeoutError) as exc:
        raise DatastoreUnavailableError(f"{action} failed: {exc}") from exc
