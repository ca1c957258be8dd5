"""
ManualJournalService - validation, persistence and posting of manual journals.

Every mutating operation follows the same order:
1. Resolve the target journal(s) (NOT_FOUND first)
2. Run the validation pipeline (no writes)
3. Open one journal transaction
4. Exactly one persistence call, then one lifecycle event, in that transaction

Subscribers receive the session with the event, so ledger posting and number
increments commit or roll back together with the journal write.
"""

import asyncio
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, List, Optional, Tuple, Union

from app.core.config import settings
from app.models.account import ACCOUNTS_PAYABLE_SLUG, ACCOUNTS_RECEIVABLE_SLUG
from app.models.ledger import JOURNAL_REFERENCE_TYPE
from app.models.manual_journal import ContactType, ManualJournal, ManualJournalEntry
from app.repositories.account_repo import AccountRepository
from app.repositories.contact_repo import ContactRepository
from app.repositories.ledger_repo import LedgerRepository
from app.repositories.manual_journal_repo import ManualJournalRepository
from app.repositories.sequence_repo import MANUAL_JOURNALS_GROUP, SequenceRepository
from app.schemas.manual_journal import (
    FilterMeta,
    ManualJournalDetails,
    ManualJournalDTO,
    ManualJournalsFilter,
    ManualJournalsList,
    PaginationMeta,
    PublishBulkMeta,
)
from app.services.events import ManualJournalEvent, ManualJournalEvents
from app.services.journal_poster import JournalCommands, JournalPoster
from app.utils.journal_validation import (
    ErrorType,
    ServiceError,
    distinct,
    find_entries_without_contact_type,
    find_invalid_contacts,
    find_missing_accounts,
    split_by_published,
    validate_credit_debit_equal,
    validate_journal_number_required,
    validate_not_published,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ManualJournalService:
    def __init__(
        self,
        account_repo: AccountRepository,
        contact_repo: ContactRepository,
        journal_repo: ManualJournalRepository,
        sequence_repo: SequenceRepository,
        ledger_repo: LedgerRepository,
        event_sink,
        logger: Optional[logging.Logger] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.account_repo = account_repo
        self.contact_repo = contact_repo
        self.journal_repo = journal_repo
        self.sequence_repo = sequence_repo
        self.ledger_repo = ledger_repo
        self.event_sink = event_sink
        self.logger = logger or logging.getLogger(__name__)
        self.clock = clock

    # ===== LOOKUPS =====

    async def get_manual_journal_or_throw(self, tenant_id: str, manual_journal_id) -> ManualJournal:
        manual_journal = await self.journal_repo.get(tenant_id, manual_journal_id)
        if manual_journal is None:
            self.logger.warning(
                "[manual_journal] not exists on the storage.",
                extra={"tenant_id": tenant_id, "manual_journal_id": str(manual_journal_id)}
            )
            raise ServiceError(ErrorType.NOT_FOUND)
        return manual_journal

    async def get_manual_journals_or_throw(
        self, tenant_id: str, manual_journals_ids: list
    ) -> List[ManualJournal]:
        """All journals of the ids, or NOT_FOUND if any one is missing."""
        manual_journals = await self.journal_repo.get_many(tenant_id, manual_journals_ids)
        found_ids = {str(manual_journal.id) for manual_journal in manual_journals}
        not_found = [str(i) for i in manual_journals_ids if str(i) not in found_ids]

        if not_found:
            raise ServiceError(ErrorType.NOT_FOUND, payload={"ids": not_found})
        return manual_journals

    # ===== VALIDATION =====

    async def validate_contacts_existance(self, tenant_id: str, entries: list) -> None:
        contact_entries = [entry for entry in entries if entry.contact_id]
        if not contact_entries:
            return

        stored_contacts = await self.contact_repo.find_by_ids(
            tenant_id, distinct(entry.contact_id for entry in contact_entries)
        )
        invalid_ids = find_invalid_contacts(contact_entries, stored_contacts)
        if invalid_ids:
            raise ServiceError(ErrorType.CONTACTS_NOT_FOUND, payload={"contacts_ids": invalid_ids})

    async def validate_accounts_existance(self, tenant_id: str, entries: list) -> None:
        account_ids = distinct(entry.account_id for entry in entries)
        stored_accounts = await self.account_repo.find_by_ids(tenant_id, account_ids)

        missing_ids = find_missing_accounts(account_ids, stored_accounts)
        if missing_ids:
            self.logger.info(
                "[manual_journal] some entries accounts not exist.",
                extra={"tenant_id": tenant_id, "accounts_ids": missing_ids}
            )
            raise ServiceError(ErrorType.ACCCOUNTS_IDS_NOT_FOUND, payload={"accounts_ids": missing_ids})

    async def validate_journal_number_unique(
        self, tenant_id: str, journal_number: str, exclude_id=None
    ) -> None:
        if await self.journal_repo.exists_journal_number(tenant_id, journal_number, exclude_id):
            raise ServiceError(ErrorType.JOURNAL_NUMBER_EXISTS)

    async def validate_account_with_contact_type(
        self, tenant_id: str, entries: list, account_slug: str, contact_type: ContactType
    ) -> None:
        account = await self.account_repo.find_by_slug(tenant_id, account_slug)

        indexes = find_entries_without_contact_type(entries, account, contact_type)
        if indexes:
            raise ServiceError(
                ErrorType.ENTRIES_SHOULD_ASSIGN_WITH_CONTACT,
                payload={
                    "account_slug": account_slug,
                    "contact_type": contact_type.value,
                    "indexes": indexes,
                }
            )

    async def validate_accounts_with_contact_type(self, tenant_id: str, entries: list) -> None:
        await asyncio.gather(
            self.validate_account_with_contact_type(
                tenant_id, entries, ACCOUNTS_RECEIVABLE_SLUG, ContactType.CUSTOMER
            ),
            self.validate_account_with_contact_type(
                tenant_id, entries, ACCOUNTS_PAYABLE_SLUG, ContactType.VENDOR
            ),
        )

    async def validate_manual_journal(
        self,
        tenant_id: str,
        manual_journal_dto: ManualJournalDTO,
        journal_number: Optional[str],
        exclude_id=None,
    ) -> None:
        """Ordered, fail-fast validation shared by create and edit."""
        entries = manual_journal_dto.entries

        validate_credit_debit_equal(entries)
        await self.validate_contacts_existance(tenant_id, entries)
        await self.validate_accounts_existance(tenant_id, entries)
        if journal_number:
            await self.validate_journal_number_unique(tenant_id, journal_number, exclude_id)
        await self.validate_accounts_with_contact_type(tenant_id, entries)

    # ===== DTO TRANSFORMS =====

    def _entries_from_dto(self, manual_journal_dto: ManualJournalDTO) -> List[ManualJournalEntry]:
        return sorted(
            (ManualJournalEntry(**entry.model_dump()) for entry in manual_journal_dto.entries),
            key=lambda entry: entry.index
        )

    @staticmethod
    def _amount(manual_journal_dto: ManualJournalDTO) -> Decimal:
        return sum((entry.credit for entry in manual_journal_dto.entries), Decimal("0"))

    async def transform_new_dto_to_model(
        self, tenant_id: str, manual_journal_dto: ManualJournalDTO, authorized_user
    ) -> Tuple[ManualJournal, bool]:
        """Build the journal to insert; also reports whether the number was auto-generated."""
        journal_number = manual_journal_dto.journal_number
        auto_number = False
        if not journal_number:
            journal_number = await self.sequence_repo.get_next_number(tenant_id, MANUAL_JOURNALS_GROUP)
            auto_number = bool(journal_number)

        validate_journal_number_required(journal_number)

        now = self.clock()
        manual_journal = ManualJournal(
            tenant_id=tenant_id,
            journal_number=journal_number,
            reference=manual_journal_dto.reference,
            journal_type=manual_journal_dto.journal_type,
            description=manual_journal_dto.description,
            date=manual_journal_dto.date,
            amount=self._amount(manual_journal_dto),
            currency_code=manual_journal_dto.currency_code or settings.DEFAULT_CURRENCY_CODE,
            published_at=now if manual_journal_dto.publish else None,
            user_id=str(authorized_user.id),
            media_ids=manual_journal_dto.media_ids,
            entries=self._entries_from_dto(manual_journal_dto),
            created_at=now,
            updated_at=now,
        )
        return manual_journal, auto_number

    def transform_edit_dto_to_model(
        self, manual_journal_dto: ManualJournalDTO, old_manual_journal: ManualJournal
    ) -> ManualJournal:
        published_at = old_manual_journal.published_at
        if manual_journal_dto.publish and not published_at:
            published_at = self.clock()

        return old_manual_journal.model_copy(update={
            "journal_number": manual_journal_dto.journal_number or old_manual_journal.journal_number,
            "reference": manual_journal_dto.reference,
            "journal_type": manual_journal_dto.journal_type,
            "description": manual_journal_dto.description,
            "date": manual_journal_dto.date,
            "amount": self._amount(manual_journal_dto),
            "currency_code": manual_journal_dto.currency_code or old_manual_journal.currency_code,
            "published_at": published_at,
            "media_ids": manual_journal_dto.media_ids,
            "entries": self._entries_from_dto(manual_journal_dto),
            "version": old_manual_journal.version + 1,
            "updated_at": self.clock(),
        })

    # ===== OPERATIONS =====

    async def make_journal_entries(
        self, tenant_id: str, manual_journal_dto: ManualJournalDTO, authorized_user
    ) -> ManualJournal:
        """Create a manual journal."""
        manual_journal, auto_number = await self.transform_new_dto_to_model(
            tenant_id, manual_journal_dto, authorized_user
        )
        await self.validate_manual_journal(
            tenant_id, manual_journal_dto, manual_journal.journal_number
        )
        self.logger.info(
            "[manual_journal] trying to save manual journal to the storage.",
            extra={"tenant_id": tenant_id, "journal_number": manual_journal.journal_number}
        )
        async with self.journal_repo.transaction() as session:
            manual_journal = await self.journal_repo.upsert_graph(manual_journal, session=session)

            await self.event_sink.emit(ManualJournalEvent(
                name=ManualJournalEvents.ON_CREATED,
                tenant_id=tenant_id,
                manual_journal_id=manual_journal.id,
                manual_journal=manual_journal,
                auto_journal_number=auto_number,
                session=session,
            ))
        self.logger.info(
            "[manual_journal] the manual journal inserted successfully.",
            extra={"tenant_id": tenant_id, "manual_journal_id": str(manual_journal.id)}
        )
        return manual_journal

    async def edit_journal_entries(
        self, tenant_id: str, manual_journal_id, manual_journal_dto: ManualJournalDTO, authorized_user
    ) -> Tuple[ManualJournal, ManualJournal]:
        """Edit a manual journal. Returns (manual_journal, old_manual_journal)."""
        old_manual_journal = await self.get_manual_journal_or_throw(tenant_id, manual_journal_id)

        manual_journal = self.transform_edit_dto_to_model(manual_journal_dto, old_manual_journal)

        await self.validate_manual_journal(
            tenant_id,
            manual_journal_dto,
            manual_journal_dto.journal_number,
            exclude_id=old_manual_journal.id,
        )
        async with self.journal_repo.transaction() as session:
            await self.journal_repo.upsert_graph(
                manual_journal, expected_version=old_manual_journal.version, session=session
            )
            manual_journal = await self.journal_repo.get(
                tenant_id, old_manual_journal.id, session=session
            )

            await self.event_sink.emit(ManualJournalEvent(
                name=ManualJournalEvents.ON_EDITED,
                tenant_id=tenant_id,
                manual_journal_id=old_manual_journal.id,
                manual_journal=manual_journal,
                old_manual_journal=old_manual_journal,
                session=session,
            ))
        self.logger.info(
            "[manual_journal] the manual journal edited successfully.",
            extra={"tenant_id": tenant_id, "manual_journal_id": str(old_manual_journal.id)}
        )
        return manual_journal, old_manual_journal

    async def delete_manual_journal(self, tenant_id: str, manual_journal_id) -> ManualJournal:
        """Delete a journal with its entries. Returns the deleted snapshot."""
        old_manual_journal = await self.get_manual_journal_or_throw(tenant_id, manual_journal_id)

        self.logger.info(
            "[manual_journal] trying to delete the manual journal.",
            extra={"tenant_id": tenant_id, "manual_journal_id": str(old_manual_journal.id)}
        )
        async with self.journal_repo.transaction() as session:
            await self.journal_repo.delete_many(tenant_id, [old_manual_journal.id], session=session)

            await self.event_sink.emit(ManualJournalEvent(
                name=ManualJournalEvents.ON_DELETED,
                tenant_id=tenant_id,
                manual_journal_id=old_manual_journal.id,
                old_manual_journal=old_manual_journal,
                session=session,
            ))
        return old_manual_journal

    async def delete_manual_journals(
        self, tenant_id: str, manual_journals_ids: list
    ) -> List[ManualJournal]:
        """Delete all of the journals or none of them."""
        old_manual_journals = await self.get_manual_journals_or_throw(tenant_id, manual_journals_ids)
        ids = [manual_journal.id for manual_journal in old_manual_journals]

        self.logger.info(
            "[manual_journal] trying to delete the manual journals.",
            extra={"tenant_id": tenant_id, "manual_journals_ids": [str(i) for i in ids]}
        )
        async with self.journal_repo.transaction() as session:
            await self.journal_repo.delete_many(tenant_id, ids, session=session)

            await self.event_sink.emit(ManualJournalEvent(
                name=ManualJournalEvents.ON_DELETED_BULK,
                tenant_id=tenant_id,
                manual_journals_ids=ids,
                old_manual_journals=old_manual_journals,
                session=session,
            ))
        return old_manual_journals

    async def publish_manual_journal(self, tenant_id: str, manual_journal_id) -> None:
        old_manual_journal = await self.get_manual_journal_or_throw(tenant_id, manual_journal_id)
        validate_not_published(old_manual_journal)

        self.logger.info(
            "[manual_journal] trying to publish the manual journal.",
            extra={"tenant_id": tenant_id, "manual_journal_id": str(old_manual_journal.id)}
        )
        async with self.journal_repo.transaction() as session:
            await self.journal_repo.mark_published(
                tenant_id,
                [old_manual_journal.id],
                self.clock(),
                expected_version=old_manual_journal.version,
                session=session,
            )
            manual_journal = await self.journal_repo.get(
                tenant_id, old_manual_journal.id, session=session
            )

            await self.event_sink.emit(ManualJournalEvent(
                name=ManualJournalEvents.ON_PUBLISHED,
                tenant_id=tenant_id,
                manual_journal_id=old_manual_journal.id,
                manual_journal=manual_journal,
                old_manual_journal=old_manual_journal,
                session=session,
            ))

    async def publish_manual_journals(
        self, tenant_id: str, manual_journals_ids: list
    ) -> PublishBulkMeta:
        """Publish the drafts among the journals; already published ones are skipped."""
        old_manual_journals = await self.get_manual_journals_or_throw(tenant_id, manual_journals_ids)
        published, not_published = split_by_published(old_manual_journals)
        not_published_ids = [manual_journal.id for manual_journal in not_published]

        self.logger.info(
            "[manual_journal] trying to publish the manual journals.",
            extra={"tenant_id": tenant_id, "manual_journals_ids": [str(i) for i in not_published_ids]}
        )
        async with self.journal_repo.transaction() as session:
            manual_journals = []
            if not_published_ids:
                await self.journal_repo.mark_published(
                    tenant_id, not_published_ids, self.clock(), session=session
                )
                manual_journals = await self.journal_repo.get_many(
                    tenant_id, not_published_ids, session=session
                )

            await self.event_sink.emit(ManualJournalEvent(
                name=ManualJournalEvents.ON_PUBLISHED_BULK,
                tenant_id=tenant_id,
                manual_journals_ids=not_published_ids,
                manual_journals=manual_journals,
                old_manual_journals=old_manual_journals,
                session=session,
            ))
        return PublishBulkMeta(
            already_published=len(published),
            published=len(not_published),
            total=len(old_manual_journals),
        )

    async def get_manual_journals(
        self, tenant_id: str, journals_filter: ManualJournalsFilter
    ) -> ManualJournalsList:
        self.logger.info(
            "[manual_journals] trying to get manual journals list.",
            extra={"tenant_id": tenant_id, "filter": journals_filter.model_dump()}
        )
        manual_journals, total = await self.journal_repo.paginate(tenant_id, journals_filter)

        return ManualJournalsList(
            manual_journals=manual_journals,
            pagination=PaginationMeta(
                page=journals_filter.page,
                page_size=journals_filter.page_size,
                total=total,
            ),
            filter_meta=FilterMeta(
                column_sort_by=journals_filter.column_sort_by,
                sort_order=journals_filter.sort_order,
                search_keyword=journals_filter.search_keyword,
                status=journals_filter.status,
            ),
        )

    async def get_manual_journal(self, tenant_id: str, manual_journal_id) -> ManualJournalDetails:
        """Journal with entries, posted transactions and media."""
        manual_journal = await self.get_manual_journal_or_throw(tenant_id, manual_journal_id)

        transactions, media = await asyncio.gather(
            self.ledger_repo.find_transactions(
                tenant_id, JOURNAL_REFERENCE_TYPE, [manual_journal.id]
            ),
            self.journal_repo.get_media(tenant_id, manual_journal.media_ids),
        )
        return ManualJournalDetails(
            **manual_journal.model_dump(by_alias=True),
            transactions=transactions,
            media=media,
        )

    # ===== LEDGER =====

    async def revert_journal_entries(
        self, tenant_id: str, manual_journal_id: Union[object, list], session=None
    ) -> None:
        """Remove the ledger lines posted for the journal(s)."""
        manual_journals_ids = (
            manual_journal_id if isinstance(manual_journal_id, list) else [manual_journal_id]
        )
        self.logger.info(
            "[manual_journal] trying to revert journal entries.",
            extra={"tenant_id": tenant_id, "manual_journals_ids": [str(i) for i in manual_journals_ids]}
        )
        journal = JournalPoster(tenant_id, self.ledger_repo, session=session)
        journal_commands = JournalCommands(journal)

        await journal_commands.revert_journal_entries(manual_journals_ids, JOURNAL_REFERENCE_TYPE)
        await journal.save()

    async def write_journal_entries(
        self,
        tenant_id: str,
        manual_journal: Union[ManualJournal, List[ManualJournal]],
        override: bool = False,
        session=None,
    ) -> None:
        """Post the journal(s) to the ledger, replacing earlier postings when override."""
        journal = JournalPoster(tenant_id, self.ledger_repo, session=session)
        journal_commands = JournalCommands(journal)

        manual_journals = manual_journal if isinstance(manual_journal, list) else [manual_journal]
        manual_journals_ids = [item.id for item in manual_journals]

        if override:
            self.logger.info(
                "[manual_journal] trying to revert journal entries.",
                extra={"tenant_id": tenant_id, "manual_journals_ids": [str(i) for i in manual_journals_ids]}
            )
            await journal_commands.revert_journal_entries(manual_journals_ids, JOURNAL_REFERENCE_TYPE)

        for item in manual_journals:
            journal_commands.manual_journal(item)

        self.logger.info(
            "[manual_journal] trying to save journal entries.",
            extra={"tenant_id": tenant_id, "manual_journals_ids": [str(i) for i in manual_journals_ids]}
        )
        await journal.save()
        self.logger.info(
            "[manual_journal] the journal entries saved successfully.",
            extra={"tenant_id": tenant_id}
        )
