"""
Event capability interfaces consumed by the aggregations.

Aggregations never depend on a concrete event class; anything exposing
these attributes (the request schemas, a queue consumer's own model, a
test double) can be aggregated.
"""

from datetime import datetime
from typing import Any, Optional, Protocol


class EntityInterface(Protocol):
    """The entity an event refers to."""

    @property
    def client_id(self) -> Any: ...

    @property
    def type(self) -> str: ...


class SessionInterface(Protocol):
    """The visitor session an event was recorded in."""

    @property
    def id(self) -> Any: ...

    @property
    def customer_id(self) -> Optional[Any]: ...


class EventInterface(Protocol):
    @property
    def created_at(self) -> datetime: ...

    @property
    def entity(self) -> EntityInterface: ...

    @property
    def session(self) -> SessionInterface: ...
