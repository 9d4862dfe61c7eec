"""Audit query builder and engine.

Usage:
    query = (
        AuditQuery()
        .event_types(AuditEventType.POLICY_EVALUATION)
        .actor("user_123")
        .results(AuditResult.BLOCKED)
        .limit(10)
    )
    result = AuditQueryEngine(store).run(query)
"""

import logging
from datetime import datetime, timezone
from typing import FrozenSet, Iterable, List, Optional, Union

from pydantic import BaseModel, Field, model_validator

from codewarden.common.constants import DataConstants
from codewarden.common.exceptions import AuditError
from codewarden.governance.schemas import (
    AuditEvent,
    AuditEventType,
    AuditResult,
    QueryResult,
)


logger = logging.getLogger(__name__)


class AuditFilter(BaseModel):
    """Immutable filter over audit events. Unset fields match everything."""
    model_config = {"frozen": True}

    event_types: Optional[FrozenSet[AuditEventType]] = None
    actor_id: Optional[str] = None
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    results: Optional[FrozenSet[AuditResult]] = None
    has_violations: Optional[bool] = None
    limit: Optional[int] = Field(default=None, ge=0, le=DataConstants.MAX_QUERY_LIMIT)
    newest_first: bool = True

    @model_validator(mode="after")
    def _check_window(self) -> "AuditFilter":
        if self.start and self.end and _aware(self.start) > _aware(self.end):
            raise ValueError("time window start must not be after end")
        return self

    def matches(self, event: AuditEvent) -> bool:
        if self.event_types is not None and event.event_type not in self.event_types:
            return False
        if self.actor_id is not None and event.actor.id != self.actor_id:
            return False
        if self.resource_type is not None or self.resource_id is not None:
            if event.resource is None:
                return False
            if self.resource_type is not None and event.resource.type != self.resource_type:
                return False
            if self.resource_id is not None and event.resource.id != self.resource_id:
                return False
        if self.start is not None and _aware(event.timestamp) < _aware(self.start):
            return False
        if self.end is not None and _aware(event.timestamp) > _aware(self.end):
            return False
        if self.results is not None and event.result not in self.results:
            return False
        if self.has_violations is not None and event.has_violations != self.has_violations:
            return False
        return True

    def apply(self, events: Iterable[AuditEvent]) -> List[AuditEvent]:
        """Filter events given in insertion order, then order and truncate."""
        selected = [event for event in events if self.matches(event)]
        if self.newest_first:
            selected.reverse()
        if self.limit is not None:
            selected = selected[: self.limit]
        return selected


def _aware(value: datetime) -> datetime:
    # Naive datetimes are taken as UTC
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class AuditQuery:
    """Fluent builder for AuditFilter."""

    def __init__(self):
        self._fields: dict = {}

    def event_types(self, *types: Union[AuditEventType, str]) -> "AuditQuery":
        self._fields["event_types"] = frozenset(AuditEventType(t) for t in types)
        return self

    def actor(self, actor_id: str) -> "AuditQuery":
        self._fields["actor_id"] = actor_id
        return self

    def resource(self, resource_type: str, resource_id: Optional[str] = None) -> "AuditQuery":
        self._fields["resource_type"] = resource_type
        if resource_id is not None:
            self._fields["resource_id"] = resource_id
        return self

    def between(self, start: datetime, end: datetime) -> "AuditQuery":
        self._fields["start"] = start
        self._fields["end"] = end
        return self

    def since(self, start: datetime) -> "AuditQuery":
        self._fields["start"] = start
        return self

    def until(self, end: datetime) -> "AuditQuery":
        self._fields["end"] = end
        return self

    def results(self, *results: Union[AuditResult, str]) -> "AuditQuery":
        self._fields["results"] = frozenset(AuditResult(r) for r in results)
        return self

    def has_violations(self, flag: bool = True) -> "AuditQuery":
        self._fields["has_violations"] = flag
        return self

    def limit(self, n: int) -> "AuditQuery":
        self._fields["limit"] = n
        return self

    def oldest_first(self) -> "AuditQuery":
        self._fields["newest_first"] = False
        return self

    def build(self) -> AuditFilter:
        """Raises ValueError (pydantic ValidationError) on an invalid filter."""
        return AuditFilter(**self._fields)


class AuditQueryEngine:
    """Runs queries against a store without letting errors escape.

    Storage and filter errors come back as QueryResult(ok=False) so a
    compliance lookup can never break an unrelated code path.
    """

    def __init__(self, store):
        self.store = store

    def run(self, query: Union[AuditQuery, AuditFilter, None] = None) -> QueryResult:
        try:
            audit_filter = _as_filter(query)
            events = self.store.query(audit_filter)
        except (AuditError, OSError, ValueError) as e:
            logger.error(f"Audit query failed: {e}")
            return QueryResult(events=[], ok=False, error=str(e))
        return QueryResult(events=events, ok=True)


def _as_filter(query: Union[AuditQuery, AuditFilter, None]) -> AuditFilter:
    if query is None:
        return AuditFilter()
    if isinstance(query, AuditQuery):
        return query.build()
    return query
