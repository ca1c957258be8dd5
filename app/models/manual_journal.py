"""
Manual journal model - user-entered double-entry records.

Design principles:
- A journal owns its entries (stored in `manual_journal_entries`, cascade deleted)
- amount == sum(entries.credit) == sum(entries.debit) once committed
- published_at is monotonic: once stamped, edits never clear it
- version is bumped on every write (compare-and-swap on edit/publish)
"""

from decimal import Decimal
from typing import Optional, List
from datetime import datetime
from enum import Enum
from pydantic import BaseModel, Field

from app.models.base import MongoModel, MongoDate, MongoDecimal, PyObjectId


class ContactType(str, Enum):
    CUSTOMER = "customer"
    VENDOR = "vendor"


class ManualJournalEntry(BaseModel):
    """One line of a journal, debiting or crediting a single account."""
    index: int
    account_id: PyObjectId
    credit: MongoDecimal = Decimal("0")
    debit: MongoDecimal = Decimal("0")
    contact_id: Optional[PyObjectId] = None
    contact_type: Optional[ContactType] = None
    note: Optional[str] = None

    model_config = {"from_attributes": True, "arbitrary_types_allowed": True}


class ManualJournal(MongoModel):
    journal_number: str
    reference: Optional[str] = None
    journal_type: Optional[str] = None
    description: Optional[str] = None
    date: MongoDate
    amount: MongoDecimal = Decimal("0")
    currency_code: str
    published_at: Optional[datetime] = None

    user_id: Optional[str] = None
    media_ids: List[PyObjectId] = []

    version: int = 1

    # Entries live in their own collection; the repository attaches them
    entries: List[ManualJournalEntry] = []

    @property
    def is_published(self) -> bool:
        return self.published_at is not None
