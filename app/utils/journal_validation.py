"""Manual journal validation utilities."""
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from app.models.account import Account
from app.models.contact import Contact
from app.models.manual_journal import ManualJournal


class ErrorType(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    CREDIT_DEBIT_NOT_EQUAL_ZERO = "CREDIT_DEBIT_NOT_EQUAL_ZERO"
    CREDIT_DEBIT_NOT_EQUAL = "CREDIT_DEBIT_NOT_EQUAL"
    ACCCOUNTS_IDS_NOT_FOUND = "ACCCOUNTS_IDS_NOT_FOUND"
    CONTACTS_NOT_FOUND = "CONTACTS_NOT_FOUND"
    JOURNAL_NUMBER_EXISTS = "JOURNAL_NUMBER_EXISTS"
    ENTRIES_SHOULD_ASSIGN_WITH_CONTACT = "ENTRIES_SHOULD_ASSIGN_WITH_CONTACT"
    MANUAL_JOURNAL_NO_REQUIRED = "MANUAL_JOURNAL_NO_REQUIRED"
    MANUAL_JOURNAL_ALREADY_PUBLISHED = "MANUAL_JOURNAL_ALREADY_PUBLISHED"
    MANUAL_JOURNAL_VERSION_CONFLICT = "MANUAL_JOURNAL_VERSION_CONFLICT"


class ServiceError(Exception):
    """Client-correctable failure of a manual journal operation."""

    def __init__(
        self,
        error_type: ErrorType,
        message: str = "",
        payload: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message or error_type.value)
        self.error_type = error_type
        self.message = message
        self.payload = payload or {}


def sum_credit_debit(entries: Iterable) -> Tuple[Decimal, Decimal]:
    """Sum the positive credits and positive debits of the given entries."""
    total_credit = Decimal("0")
    total_debit = Decimal("0")
    for entry in entries:
        if entry.credit > 0:
            total_credit += entry.credit
        if entry.debit > 0:
            total_debit += entry.debit
    return total_credit, total_debit


def validate_credit_debit_equal(entries: Iterable) -> None:
    """
    Validate journal balance.

    Rules:
    - both sides must be positive
    - both sides must be exactly equal (amounts are already in minor units)
    """
    total_credit, total_debit = sum_credit_debit(entries)

    if total_credit <= 0 or total_debit <= 0:
        raise ServiceError(ErrorType.CREDIT_DEBIT_NOT_EQUAL_ZERO)
    if total_credit != total_debit:
        raise ServiceError(
            ErrorType.CREDIT_DEBIT_NOT_EQUAL,
            f"Total credit ({total_credit}) does not equal total debit ({total_debit})",
        )


def validate_journal_number_required(journal_number: Optional[str]) -> None:
    if not journal_number:
        raise ServiceError(ErrorType.MANUAL_JOURNAL_NO_REQUIRED)


def validate_not_published(manual_journal: ManualJournal) -> None:
    if manual_journal.is_published:
        raise ServiceError(ErrorType.MANUAL_JOURNAL_ALREADY_PUBLISHED)


def find_invalid_contacts(entries: Iterable, stored_contacts: List[Contact]) -> List[str]:
    """
    Return the contact ids of entries whose contact is missing or whose
    stored contact service differs from the declared contact type.
    """
    contacts_map = {contact.id: contact for contact in stored_contacts}
    invalid = []

    for entry in entries:
        if not entry.contact_id:
            continue
        stored_contact = contacts_map.get(entry.contact_id)
        if stored_contact is None or stored_contact.contact_service != entry.contact_type:
            invalid.append(str(entry.contact_id))
    return invalid


def find_missing_accounts(account_ids: Iterable, stored_accounts: List[Account]) -> List[str]:
    stored_ids = {account.id for account in stored_accounts}
    return [str(account_id) for account_id in account_ids if account_id not in stored_ids]


def find_entries_without_contact_type(
    entries: Iterable, account: Optional[Account], contact_type: str
) -> List[int]:
    """Indexes of the account's entries that don't declare the given contact type."""
    if account is None:
        return []
    return [
        entry.index
        for entry in entries
        if entry.account_id == account.id
        and (not entry.contact_type or entry.contact_type != contact_type)
    ]


def distinct(values: Iterable) -> list:
    """Unique values, first-seen order."""
    return list(dict.fromkeys(values))


def split_by_published(
    manual_journals: List[ManualJournal],
) -> Tuple[List[ManualJournal], List[ManualJournal]]:
    """Partition journals into (published, not yet published)."""
    published = [journal for journal in manual_journals if journal.is_published]
    not_published = [journal for journal in manual_journals if not journal.is_published]
    return published, not_published
