"""
Ledger model - account transactions projected from committed journals.

Design principles:
- One account transaction per posted journal entry
- Tagged with (reference_type, reference_id) so a journal can be reverted
- Account balance accumulates debit - credit
- Contact balance: customers debit - credit, vendors credit - debit
"""

from decimal import Decimal
from typing import Optional

from app.models.base import MongoModel, MongoDate, MongoDecimal, PyObjectId
from app.models.manual_journal import ContactType

JOURNAL_REFERENCE_TYPE = "Journal"


class AccountTransaction(MongoModel):
    """A posted ledger line."""
    reference_type: str
    reference_id: PyObjectId

    account_id: PyObjectId
    contact_id: Optional[PyObjectId] = None
    contact_type: Optional[ContactType] = None

    credit: MongoDecimal = Decimal("0")
    debit: MongoDecimal = Decimal("0")

    date: MongoDate
    index: int = 0
    note: Optional[str] = None
    published: bool = True

    def account_effect(self) -> Decimal:
        """Change this line applies to its account balance."""
        return self.debit - self.credit

    def contact_effect(self) -> Decimal:
        """Change this line applies to its contact balance."""
        if self.contact_type == ContactType.VENDOR:
            return self.credit - self.debit
        return self.debit - self.credit
