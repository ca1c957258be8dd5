from decimal import Decimal

from app.models.base import MongoModel, MongoDecimal
from app.models.manual_journal import ContactType


class Contact(MongoModel):
    """Customer or vendor. Only `balance` is written, by ledger posting."""
    display_name: str
    contact_service: ContactType
    balance: MongoDecimal = Decimal("0")
