"""Ledger and numbering side effects of manual journal events."""

from app.repositories.sequence_repo import MANUAL_JOURNALS_GROUP, SequenceRepository
from app.services.events import EventDispatcher, ManualJournalEvent, ManualJournalEvents
from app.services.manual_journal_service import ManualJournalService


class ManualJournalSubscriber:
    """
    Keeps the ledger and the journal-number sequence in step with journals.

    Only published journals are posted; drafts have no ledger lines. Every
    write goes through the event session, inside the journal transaction.
    """

    def __init__(self, service: ManualJournalService, sequence_repo: SequenceRepository):
        self.service = service
        self.sequence_repo = sequence_repo

    def attach(self, dispatcher: EventDispatcher) -> None:
        dispatcher.subscribe(ManualJournalEvents.ON_CREATED, self.increment_journal_number)
        dispatcher.subscribe(ManualJournalEvents.ON_CREATED, self.write_on_created)
        dispatcher.subscribe(ManualJournalEvents.ON_EDITED, self.rewrite_on_edited)
        dispatcher.subscribe(ManualJournalEvents.ON_PUBLISHED, self.write_on_published)
        dispatcher.subscribe(ManualJournalEvents.ON_PUBLISHED_BULK, self.write_on_published_bulk)
        dispatcher.subscribe(ManualJournalEvents.ON_DELETED, self.revert_on_deleted)
        dispatcher.subscribe(ManualJournalEvents.ON_DELETED_BULK, self.revert_on_deleted_bulk)

    async def increment_journal_number(self, event: ManualJournalEvent) -> None:
        if event.auto_journal_number:
            await self.sequence_repo.increment_next_number(
                event.tenant_id, MANUAL_JOURNALS_GROUP, session=event.session
            )

    async def write_on_created(self, event: ManualJournalEvent) -> None:
        if event.manual_journal.is_published:
            await self.service.write_journal_entries(
                event.tenant_id, event.manual_journal, session=event.session
            )

    async def rewrite_on_edited(self, event: ManualJournalEvent) -> None:
        if event.manual_journal.is_published:
            await self.service.write_journal_entries(
                event.tenant_id, event.manual_journal, override=True, session=event.session
            )

    async def write_on_published(self, event: ManualJournalEvent) -> None:
        await self.service.write_journal_entries(
            event.tenant_id, event.manual_journal, session=event.session
        )

    async def write_on_published_bulk(self, event: ManualJournalEvent) -> None:
        if event.manual_journals:
            await self.service.write_journal_entries(
                event.tenant_id, event.manual_journals, session=event.session
            )

    async def revert_on_deleted(self, event: ManualJournalEvent) -> None:
        await self.service.revert_journal_entries(
            event.tenant_id, event.manual_journal_id, session=event.session
        )

    async def revert_on_deleted_bulk(self, event: ManualJournalEvent) -> None:
        await self.service.revert_journal_entries(
            event.tenant_id, list(event.manual_journals_ids), session=event.session
        )
