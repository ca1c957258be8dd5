"""
Ledger posting unit of work.

JournalPoster accumulates pending ledger changes in memory:
- transactions to insert
- transaction ids to delete
- account balance deltas (debit - credit)
- contact balance deltas

Nothing is written until save() is awaited. save() hands every pending change
to LedgerRepository.save_posting, which stores them in a single transaction
(the caller's session when the poster was given one).
"""

from decimal import Decimal
from typing import Dict, List

from app.models.ledger import AccountTransaction, JOURNAL_REFERENCE_TYPE
from app.models.manual_journal import ManualJournal
from app.repositories.ledger_repo import LedgerRepository


class JournalPoster:
    def __init__(self, tenant_id: str, ledger_repo: LedgerRepository, session=None):
        self.tenant_id = tenant_id
        self.ledger_repo = ledger_repo
        self.session = session

        self.entries: List[AccountTransaction] = []
        self.deleted_entries_ids: list = []
        self.balances_change: Dict = {}
        self.contacts_balance_change: Dict = {}

    def _apply(self, transaction: AccountTransaction, sign: int) -> None:
        account_delta = transaction.account_effect() * sign
        self.balances_change[transaction.account_id] = (
            self.balances_change.get(transaction.account_id, Decimal("0")) + account_delta
        )
        if transaction.contact_id:
            contact_delta = transaction.contact_effect() * sign
            self.contacts_balance_change[transaction.contact_id] = (
                self.contacts_balance_change.get(transaction.contact_id, Decimal("0"))
                + contact_delta
            )

    def commit(self, transaction: AccountTransaction) -> None:
        """Queue a new ledger line."""
        self.entries.append(transaction)
        self._apply(transaction, 1)

    def remove_entries(self, transactions: List[AccountTransaction]) -> None:
        """Queue deletion of posted lines, reversing their balance effects."""
        for transaction in transactions:
            self.deleted_entries_ids.append(transaction.id)
            self._apply(transaction, -1)

    async def save(self) -> None:
        await self.ledger_repo.save_posting(
            self.tenant_id,
            self.entries,
            self.deleted_entries_ids,
            self.balances_change,
            self.contacts_balance_change,
            session=self.session
        )


class JournalCommands:
    """Translates journals into poster operations."""

    def __init__(self, journal: JournalPoster):
        self.journal = journal

    async def revert_journal_entries(
        self, reference_ids: list, reference_type: str = JOURNAL_REFERENCE_TYPE
    ) -> None:
        """Queue removal of every line previously posted for the references."""
        transactions = await self.journal.ledger_repo.find_transactions(
            self.journal.tenant_id, reference_type, reference_ids, session=self.journal.session
        )
        self.journal.remove_entries(transactions)

    def manual_journal(self, manual_journal: ManualJournal) -> None:
        """Queue one ledger line per journal entry."""
        for entry in manual_journal.entries:
            self.journal.commit(
                AccountTransaction(
                    tenant_id=manual_journal.tenant_id,
                    reference_type=JOURNAL_REFERENCE_TYPE,
                    reference_id=manual_journal.id,
                    account_id=entry.account_id,
                    contact_id=entry.contact_id,
                    contact_type=entry.contact_type,
                    credit=entry.credit,
                    debit=entry.debit,
                    date=manual_journal.date,
                    index=entry.index,
                    note=entry.note,
                    published=manual_journal.is_published
                )
            )
