"""In-process change feed and a cache reconciled from it."""

import logging
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

EVENT_INSERT = 'INSERT'
EVENT_UPDATE = 'UPDATE'
EVENT_DELETE = 'DELETE'


class ChangeEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    table: str
    event_type: str
    row: dict[str, Any]
    committed_at: datetime = Field(default_factory=datetime.now)


ChangeListener = Callable[[ChangeEvent], None]


class ChangeFeed:
    """Fans out row changes to listeners subscribed by table and column filter."""

    def __init__(self) -> None:
        self._subscriptions: list[tuple[str, dict[str, Any], ChangeListener]] = []

    def subscribe(
        self,
        table: str,
        filters: Mapping[str, Any] | None,
        on_event: ChangeListener,
    ) -> Callable[[], None]:
        subscription = (table, dict(filters or {}), on_event)
        self._subscriptions.append(subscription)

        def unsubscribe() -> None:
            self._subscriptions = [existing for existing in self._subscriptions if existing is not subscription]

        return unsubscribe

    def publish(self, table: str, event_type: str, row: Mapping[str, Any]) -> ChangeEvent:
        event = ChangeEvent(table=table, event_type=event_type, row=dict(row))
        for subscribed_table, filters, listener in list(self._subscriptions):
            if subscribed_table != table:
                continue
            if any(event.row.get(column) != value for column, value in filters.items()):
                continue
            try:
                listener(event)
            except Exception:
                logger.exception('Change listener failed for %s %s', table, event_type)
        return event


class ReconciledCache:
    """Rows keyed by id, updated last-write-wins on a server timestamp column.

    Local optimistic edits go through ``apply`` like any server event, so a
    later server row replaces them and an older one is dropped.
    """

    def __init__(self, timestamp_field: str = 'updated_at') -> None:
        self.timestamp_field = timestamp_field
        self._rows: dict[Any, dict[str, Any]] = {}

    def get(self, entity_id: Any) -> dict[str, Any] | None:
        return self._rows.get(entity_id)

    def values(self) -> list[dict[str, Any]]:
        return list(self._rows.values())

    def apply(self, event: ChangeEvent) -> bool:
        """Apply an event; returns False when it was stale and ignored."""
        entity_id = event.row.get('id')
        if entity_id is None:
            return False

        if event.event_type == EVENT_DELETE:
            return self._rows.pop(entity_id, None) is not None

        current = self._rows.get(entity_id)
        if current is not None:
            incoming_stamp = event.row.get(self.timestamp_field)
            current_stamp = current.get(self.timestamp_field)
            if incoming_stamp is not None and current_stamp is not None and incoming_stamp < current_stamp:
                return False

        self._rows[entity_id] = dict(event.row)
        return True


change_feed = ChangeFeed()
