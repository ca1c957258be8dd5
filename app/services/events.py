"""
Manual journal lifecycle events.

The service hands one ManualJournalEvent per operation to an injected sink
(anything with `async emit(event)`) while its journal transaction is open.
EventDispatcher is the default sink: it owns the handler registry and awaits
handlers in registration order. A handler error propagates and aborts the
transaction.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import BaseModel, Field, ConfigDict

from app.models.base import PyObjectId
from app.models.manual_journal import ManualJournal

logger = logging.getLogger(__name__)


class ManualJournalEvents:
    ON_CREATED = "manual_journal.on_created"
    ON_EDITED = "manual_journal.on_edited"
    ON_DELETED = "manual_journal.on_deleted"
    ON_DELETED_BULK = "manual_journal.on_deleted_bulk"
    ON_PUBLISHED = "manual_journal.on_published"
    ON_PUBLISHED_BULK = "manual_journal.on_published_bulk"


class ManualJournalEvent(BaseModel):
    """Snapshot(s) of the journal(s) an operation touched."""
    name: str
    tenant_id: str
    manual_journal_id: Optional[PyObjectId] = None
    manual_journal: Optional[ManualJournal] = None
    old_manual_journal: Optional[ManualJournal] = None
    manual_journals_ids: List[PyObjectId] = []
    manual_journals: List[ManualJournal] = []
    old_manual_journals: List[ManualJournal] = []
    # Set on create when the number came from the auto-increment sequence
    auto_journal_number: bool = False
    # Database session of the emitting operation; handlers write through it
    session: Optional[Any] = Field(default=None, exclude=True)

    model_config = ConfigDict(arbitrary_types_allowed=True)


EventHandler = Callable[[ManualJournalEvent], Awaitable[None]]


class EventDispatcher:
    """Routes events to the handlers subscribed to their name."""

    def __init__(self):
        self._handlers: Dict[str, List[EventHandler]] = {}

    def subscribe(self, name: str, handler: EventHandler) -> None:
        self._handlers.setdefault(name, []).append(handler)

    async def emit(self, event: ManualJournalEvent) -> None:
        handlers = self._handlers.get(event.name, [])
        logger.debug(
            "Dispatching event",
            extra={"event": event.name, "tenant_id": event.tenant_id, "handlers": len(handlers)}
        )
        for handler in handlers:
            await handler(event)

