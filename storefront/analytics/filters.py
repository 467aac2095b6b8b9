"""Typed query filter over the analytics event store.

Every event query in the analytics package is built from an ``EventFilter``
so the set of supported predicates is explicit and checked at the call site.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import Select
from sqlalchemy.sql.elements import ColumnElement

from storefront.analytics.tables import AnalyticsEventRow
from storefront.models.analytics import EntityType, EventType


def _str(value: EventType | EntityType | str) -> str:
    return value.value if isinstance(value, (EventType, EntityType)) else value


@dataclass(frozen=True)
class EventFilter:
    event_type: Optional[EventType | str] = None
    event_type_contains: Optional[str] = None
    entity_type: Optional[EntityType | str] = None
    entity_id: Optional[str] = None
    # Match ``entity_id IS NULL`` explicitly; ``entity_id=None`` means "any"
    entity_id_is_null: bool = False
    actor_key: Optional[str] = None
    since: Optional[datetime] = None

    def clauses(self) -> list[ColumnElement[bool]]:
        ev = AnalyticsEventRow
        out: list[ColumnElement[bool]] = []
        if self.event_type is not None:
            out.append(ev.event_type == _str(self.event_type))
        if self.event_type_contains:
            out.append(ev.event_type.contains(self.event_type_contains))
        if self.entity_type is not None:
            out.append(ev.entity_type == _str(self.entity_type))
        if self.entity_id_is_null:
            out.append(ev.entity_id.is_(None))
        elif self.entity_id is not None:
            out.append(ev.entity_id == self.entity_id)
        if self.actor_key is not None:
            out.append(ev.actor_key == self.actor_key)
        if self.since is not None:
            out.append(ev.created_at >= self.since)
        return out

    def apply(self, stmt: Select) -> Select:
        clauses = self.clauses()
        return stmt.where(*clauses) if clauses else stmt
