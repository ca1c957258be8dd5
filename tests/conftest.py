import copy
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from app.core.auth import create_access_token
from app.main import app
from app.models.account import Account, ACCOUNTS_PAYABLE_SLUG, ACCOUNTS_RECEIVABLE_SLUG
from app.models.contact import Contact
from app.models.ledger import AccountTransaction
from app.models.manual_journal import ContactType
from app.repositories.sequence_repo import increment_number
from app.schemas.manual_journal import ManualJournalDTO
from app.schemas.auth import AuthorizedUser
from app.services.events import EventDispatcher
from app.services.manual_journal_service import ManualJournalService
from app.services.subscribers import ManualJournalSubscriber
from app.utils.journal_validation import ErrorType, ServiceError

TENANT_ID = "tenant-1"
FIXED_NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


# ===== IN-MEMORY COLLABORATORS =====

class FakeAccountRepository:
    def __init__(self, accounts):
        self.accounts = list(accounts)

    async def find_by_ids(self, tenant_id, account_ids):
        account_ids = set(account_ids)
        return [a for a in self.accounts if a.tenant_id == tenant_id and a.id in account_ids]

    async def find_by_slug(self, tenant_id, slug):
        for account in self.accounts:
            if account.tenant_id == tenant_id and account.slug == slug:
                return account
        return None


class FakeContactRepository:
    def __init__(self, contacts):
        self.contacts = list(contacts)

    async def find_by_ids(self, tenant_id, contact_ids):
        contact_ids = set(contact_ids)
        return [c for c in self.contacts if c.tenant_id == tenant_id and c.id in contact_ids]


class FakeManualJournalRepository:
    """
    Dict-backed journal store recording the write calls it receives.

    transaction() snapshots this store and its participants (the ledger and
    sequence fakes) and restores all of them when the block raises.
    """

    def __init__(self, participants=()):
        self.journals = {}
        self.media = {}
        self.calls = []
        self.participants = list(participants)

    @staticmethod
    def _key(manual_journal_id):
        return str(manual_journal_id)

    def snapshot(self):
        return copy.deepcopy(self.journals)

    def restore(self, state):
        self.journals = state

    @asynccontextmanager
    async def transaction(self):
        stores = [self, *self.participants]
        states = [store.snapshot() for store in stores]
        try:
            yield object()
        except BaseException:
            for store, state in zip(stores, states):
                store.restore(state)
            raise

    async def get(self, tenant_id, manual_journal_id, session=None):
        journal = self.journals.get(self._key(manual_journal_id))
        if journal is None or journal.tenant_id != tenant_id:
            return None
        return journal.model_copy(deep=True)

    async def get_many(self, tenant_id, manual_journal_ids, session=None):
        keys = {self._key(i) for i in manual_journal_ids}
        return [
            journal.model_copy(deep=True)
            for key, journal in self.journals.items()
            if key in keys and journal.tenant_id == tenant_id
        ]

    async def exists_journal_number(self, tenant_id, journal_number, exclude_id=None):
        return any(
            journal.tenant_id == tenant_id
            and journal.journal_number == journal_number
            and journal.id != exclude_id
            for journal in self.journals.values()
        )

    async def upsert_graph(self, manual_journal, expected_version=None, session=None):
        self.calls.append("upsert_graph")
        key = self._key(manual_journal.id)
        if expected_version is not None:
            stored = self.journals.get(key)
            if stored is None or stored.version != expected_version:
                raise ServiceError(ErrorType.MANUAL_JOURNAL_VERSION_CONFLICT)
        self.journals[key] = manual_journal.model_copy(deep=True)
        return manual_journal

    async def delete_many(self, tenant_id, manual_journal_ids, session=None):
        self.calls.append("delete_many")
        deleted = 0
        for manual_journal_id in manual_journal_ids:
            if self.journals.pop(self._key(manual_journal_id), None) is not None:
                deleted += 1
        return deleted

    async def mark_published(
        self, tenant_id, manual_journal_ids, published_at, expected_version=None, session=None
    ):
        self.calls.append("mark_published")
        modified = 0
        for manual_journal_id in manual_journal_ids:
            journal = self.journals[self._key(manual_journal_id)]
            if journal.published_at is not None:
                continue
            if expected_version is not None and journal.version != expected_version:
                continue
            journal.published_at = published_at
            journal.version += 1
            modified += 1
        if expected_version is not None and modified == 0:
            raise ServiceError(ErrorType.MANUAL_JOURNAL_VERSION_CONFLICT)
        return modified

    async def paginate(self, tenant_id, journals_filter):
        journals = [j for j in self.journals.values() if j.tenant_id == tenant_id]
        if journals_filter.status == "draft":
            journals = [j for j in journals if j.published_at is None]
        elif journals_filter.status == "published":
            journals = [j for j in journals if j.published_at is not None]
        if journals_filter.search_keyword:
            keyword = journals_filter.search_keyword.lower()
            journals = [
                j for j in journals
                if any(keyword in (value or "").lower() for value in (j.journal_number, j.reference, j.description))
            ]
        journals.sort(
            key=lambda j: getattr(j, journals_filter.column_sort_by),
            reverse=journals_filter.sort_order == "desc"
        )
        start = (journals_filter.page - 1) * journals_filter.page_size
        page = journals[start:start + journals_filter.page_size]
        return [j.model_copy(deep=True) for j in page], len(journals)

    async def get_media(self, tenant_id, media_ids):
        return [self.media[str(i)] for i in media_ids if str(i) in self.media]


class FakeSequenceRepository:
    def __init__(self, next_number="00001", prefix="", auto_increment=True):
        self.next_number = next_number
        self.prefix = prefix
        self.auto_increment = auto_increment

    def snapshot(self):
        return self.next_number

    def restore(self, state):
        self.next_number = state

    async def get_next_number(self, tenant_id, group="manual_journals"):
        if not self.auto_increment:
            return None
        return f"{self.prefix}{self.next_number}"

    async def increment_next_number(self, tenant_id, group="manual_journals", session=None):
        self.next_number = increment_number(self.next_number)
        return self.next_number


class FakeLedgerRepository:
    def __init__(self):
        self.transactions = {}
        self.account_balances = {}
        self.contact_balances = {}

    def snapshot(self):
        return copy.deepcopy((self.transactions, self.account_balances, self.contact_balances))

    def restore(self, state):
        self.transactions, self.account_balances, self.contact_balances = state

    async def find_transactions(self, tenant_id, reference_type, reference_ids, session=None):
        reference_ids = {str(i) for i in reference_ids}
        return [
            t for t in self.transactions.values()
            if t.tenant_id == tenant_id
            and t.reference_type == reference_type
            and str(t.reference_id) in reference_ids
        ]

    async def insert_transactions(self, transactions, session=None):
        for transaction in transactions:
            self.transactions[transaction.id] = transaction
        return len(transactions)

    async def delete_transactions(self, tenant_id, transaction_ids, session=None):
        deleted = 0
        for transaction_id in transaction_ids:
            if self.transactions.pop(transaction_id, None) is not None:
                deleted += 1
        return deleted

    async def apply_account_balances(self, tenant_id, changes, session=None):
        for account_id, amount in changes.items():
            self.account_balances[account_id] = self.account_balances.get(account_id, Decimal("0")) + amount

    async def apply_contact_balances(self, tenant_id, changes, session=None):
        for contact_id, amount in changes.items():
            self.contact_balances[contact_id] = self.contact_balances.get(contact_id, Decimal("0")) + amount

    async def save_posting(
        self, tenant_id, entries, deleted_entries_ids, balances_change, contacts_balance_change,
        session=None
    ):
        state = self.snapshot()
        try:
            await self.apply_account_balances(tenant_id, balances_change, session=session)
            await self.delete_transactions(tenant_id, deleted_entries_ids, session=session)
            await self.insert_transactions(entries, session=session)
            await self.apply_contact_balances(tenant_id, contacts_balance_change, session=session)
        except BaseException:
            self.restore(state)
            raise


class RecordingEventSink:
    def __init__(self):
        self.events = []

    async def emit(self, event):
        self.events.append(event)

    def names(self):
        return [event.name for event in self.events]


# ===== FIXTURES =====

@pytest.fixture
def tenant_id():
    return TENANT_ID


@pytest.fixture
def authorized_user():
    return AuthorizedUser(id="user-1", tenant_id=TENANT_ID)


@pytest.fixture
def accounts():
    """Chart of accounts: cash, revenue, receivable, payable."""
    return {
        "cash": Account(tenant_id=TENANT_ID, name="Cash", slug="cash", account_type="cash"),
        "revenue": Account(tenant_id=TENANT_ID, name="Sales", slug="sales-of-product-income", account_type="income"),
        "receivable": Account(
            tenant_id=TENANT_ID, name="Accounts Receivable", slug=ACCOUNTS_RECEIVABLE_SLUG,
            account_type="accounts-receivable"
        ),
        "payable": Account(
            tenant_id=TENANT_ID, name="Accounts Payable", slug=ACCOUNTS_PAYABLE_SLUG,
            account_type="accounts-payable"
        ),
    }


@pytest.fixture
def contacts():
    return {
        "customer": Contact(tenant_id=TENANT_ID, display_name="Acme Corp", contact_service=ContactType.CUSTOMER),
        "vendor": Contact(tenant_id=TENANT_ID, display_name="Paper Supply", contact_service=ContactType.VENDOR),
    }


@pytest.fixture
def journal_repo(sequence_repo, ledger_repo):
    return FakeManualJournalRepository(participants=[sequence_repo, ledger_repo])


@pytest.fixture
def sequence_repo():
    return FakeSequenceRepository()


@pytest.fixture
def ledger_repo():
    return FakeLedgerRepository()


@pytest.fixture
def event_sink():
    return RecordingEventSink()


@pytest.fixture
def service(accounts, contacts, journal_repo, sequence_repo, ledger_repo, event_sink):
    """Service with in-memory collaborators and a recording sink."""
    return ManualJournalService(
        account_repo=FakeAccountRepository(accounts.values()),
        contact_repo=FakeContactRepository(contacts.values()),
        journal_repo=journal_repo,
        sequence_repo=sequence_repo,
        ledger_repo=ledger_repo,
        event_sink=event_sink,
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture
def wired_service(accounts, contacts, journal_repo, sequence_repo, ledger_repo):
    """Service dispatching to the ledger/sequence subscriber."""
    dispatcher = EventDispatcher()
    service = ManualJournalService(
        account_repo=FakeAccountRepository(accounts.values()),
        contact_repo=FakeContactRepository(contacts.values()),
        journal_repo=journal_repo,
        sequence_repo=sequence_repo,
        ledger_repo=ledger_repo,
        event_sink=dispatcher,
        clock=lambda: FIXED_NOW,
    )
    ManualJournalSubscriber(service, sequence_repo).attach(dispatcher)
    return service


@pytest.fixture
def make_dto(accounts):
    """Build a balanced cash/revenue journal DTO, overridable per test."""
    def _make_dto(amount="100", entries=None, **kwargs):
        if entries is None:
            entries = [
                {"index": 1, "account_id": accounts["cash"].id, "debit": amount},
                {"index": 2, "account_id": accounts["revenue"].id, "credit": amount},
            ]
        return ManualJournalDTO(date=kwargs.pop("date", date(2024, 2, 15)), entries=entries, **kwargs)
    return _make_dto


@pytest_asyncio.fixture
async def created_journal(service, make_dto, authorized_user):
    return await service.make_journal_entries(
        TENANT_ID, make_dto(journal_number="MJ-100"), authorized_user
    )


@pytest.fixture
def mock_db():
    """Motor database double: one MagicMock collection per name, plus a session-capable client."""
    collections = {}

    def get_collection(name):
        if name not in collections:
            collection = MagicMock()
            collection.find_one = AsyncMock(return_value=None)
            collection.insert_one = AsyncMock()
            collection.insert_many = AsyncMock()
            collection.replace_one = AsyncMock(return_value=MagicMock(matched_count=1))
            collection.update_one = AsyncMock()
            collection.update_many = AsyncMock(return_value=MagicMock(modified_count=1))
            collection.delete_many = AsyncMock(return_value=MagicMock(deleted_count=1))
            collection.count_documents = AsyncMock(return_value=0)
            collection.bulk_write = AsyncMock()
            collections[name] = collection
        return collections[name]

    db = MagicMock()
    db.__getitem__.side_effect = get_collection
    db.collections = collections

    session = MagicMock()
    transaction = MagicMock()
    transaction.__aenter__ = AsyncMock(return_value=None)
    transaction.__aexit__ = AsyncMock(return_value=False)
    session.start_transaction = MagicMock(return_value=transaction)

    session_context = MagicMock()
    session_context.__aenter__ = AsyncMock(return_value=session)
    session_context.__aexit__ = AsyncMock(return_value=False)
    db.client.start_session = AsyncMock(return_value=session_context)
    db.session = session

    return db


def cursor_returning(docs):
    """Motor cursor double whose chain ends in to_list(docs)."""
    cursor = MagicMock()
    cursor.sort.return_value = cursor
    cursor.skip.return_value = cursor
    cursor.limit.return_value = cursor
    cursor.to_list = AsyncMock(return_value=docs)
    return cursor


@pytest.fixture
def make_cursor():
    return cursor_returning


@pytest.fixture
def make_transaction():
    def _make_transaction(reference_id, account_id, debit="0", credit="0", **kwargs):
        return AccountTransaction(
            tenant_id=TENANT_ID,
            reference_type="Journal",
            reference_id=reference_id,
            account_id=account_id,
            debit=Decimal(debit),
            credit=Decimal(credit),
            date=date(2024, 2, 15),
            **kwargs
        )
    return _make_transaction


@pytest.fixture
def test_client():
    """FastAPI test client. The lifespan is not entered, so no Mongo connection is made."""
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def valid_token():
    return create_access_token("user-1", TENANT_ID)
