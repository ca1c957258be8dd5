from typing import Iterable, List, Optional
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.models.account import Account


class AccountRepository:
    """Chart of accounts lookups."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["accounts"]

    async def find_by_ids(self, tenant_id: str, account_ids: Iterable) -> List[Account]:
        docs = await self.collection.find({
            "tenant_id": tenant_id,
            "_id": {"$in": list(account_ids)}
        }).to_list(None)
        return [Account(**doc) for doc in docs]

    async def find_by_slug(self, tenant_id: str, slug: str) -> Optional[Account]:
        doc = await self.collection.find_one({"tenant_id": tenant_id, "slug": slug})
        if doc:
            return Account(**doc)
        return None
