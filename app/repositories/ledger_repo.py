"""
LedgerRepository - account transactions and running balances.

Core operations:
1. Find posted transactions by (reference_type, reference_ids)
2. Insert / delete transactions
3. Apply balance deltas to accounts and contacts
4. save_posting: all of the above for one posting, in one transaction
"""

from decimal import Decimal
from typing import Dict, Iterable, List
from datetime import datetime, timezone
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import UpdateOne

from app.db.mongo import start_transaction
from app.models.base import to_bson
from app.models.ledger import AccountTransaction


class LedgerRepository:
    """Repository for posted ledger lines and balances."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["account_transactions"]
        self.balances_collection = db["account_balances"]
        self.contacts_collection = db["contacts"]

    async def find_transactions(
        self, tenant_id: str, reference_type: str, reference_ids: Iterable, session=None
    ) -> List[AccountTransaction]:
        docs = await self.collection.find({
            "tenant_id": tenant_id,
            "reference_type": reference_type,
            "reference_id": {"$in": list(reference_ids)}
        }, session=session).sort([("date", 1), ("index", 1)]).to_list(None)
        return [AccountTransaction(**doc) for doc in docs]

    async def insert_transactions(self, transactions: List[AccountTransaction], session=None) -> int:
        if not transactions:
            return 0
        result = await self.collection.insert_many(
            [transaction.to_document() for transaction in transactions],
            session=session
        )
        return len(result.inserted_ids)

    async def delete_transactions(self, tenant_id: str, transaction_ids: Iterable, session=None) -> int:
        transaction_ids = list(transaction_ids)
        if not transaction_ids:
            return 0
        result = await self.collection.delete_many({
            "tenant_id": tenant_id,
            "_id": {"$in": transaction_ids}
        }, session=session)
        return result.deleted_count

    async def apply_account_balances(self, tenant_id: str, changes: Dict, session=None) -> None:
        """Add each delta to the account's running balance (debit - credit)."""
        operations = [
            UpdateOne(
                {"tenant_id": tenant_id, "account_id": account_id},
                {
                    "$inc": {"balance": to_bson(amount)},
                    "$set": {"updated_at": datetime.now(timezone.utc)}
                },
                upsert=True
            )
            for account_id, amount in changes.items()
            if amount != Decimal("0")
        ]
        if operations:
            await self.balances_collection.bulk_write(operations, session=session)

    async def apply_contact_balances(self, tenant_id: str, changes: Dict, session=None) -> None:
        """Add each delta to the contact's balance."""
        operations = [
            UpdateOne(
                {"tenant_id": tenant_id, "_id": contact_id},
                {
                    "$inc": {"balance": to_bson(amount)},
                    "$set": {"updated_at": datetime.now(timezone.utc)}
                }
            )
            for contact_id, amount in changes.items()
            if amount != Decimal("0")
        ]
        if operations:
            await self.contacts_collection.bulk_write(operations, session=session)

    async def save_posting(
        self,
        tenant_id: str,
        entries: List[AccountTransaction],
        deleted_entries_ids: Iterable,
        balances_change: Dict,
        contacts_balance_change: Dict,
        session=None
    ) -> None:
        """
        Apply one posting: balances, superseded lines, new lines, contact balances.

        Either every effect is stored or none is. Without a caller session the
        posting opens its own transaction. Operations sharing a session are
        issued one after another.
        """
        if session is None:
            async with start_transaction(self.db) as session:
                return await self.save_posting(
                    tenant_id, entries, deleted_entries_ids,
                    balances_change, contacts_balance_change, session=session
                )

        await self.apply_account_balances(tenant_id, balances_change, session=session)
        await self.delete_transactions(tenant_id, deleted_entries_ids, session=session)
        await self.insert_transactions(entries, session=session)
        await self.apply_contact_balances(tenant_id, contacts_balance_change, session=session)
