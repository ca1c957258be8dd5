from typing import Optional

from app.models.base import MongoModel

# Slugs of the system accounts whose entries must carry a contact
ACCOUNTS_RECEIVABLE_SLUG = "accounts-receivable"
ACCOUNTS_PAYABLE_SLUG = "accounts-payable"


class Account(MongoModel):
    """Chart of accounts entry. Read-only for the journals service."""
    name: str
    code: Optional[str] = None
    slug: Optional[str] = None
    account_type: str
    active: bool = True
