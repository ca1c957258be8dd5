from typing import Iterable, List
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.models.contact import Contact


class ContactRepository:
    """Customer/vendor lookups."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["contacts"]

    async def find_by_ids(self, tenant_id: str, contact_ids: Iterable) -> List[Contact]:
        docs = await self.collection.find({
            "tenant_id": tenant_id,
            "_id": {"$in": list(contact_ids)}
        }).to_list(None)
        return [Contact(**doc) for doc in docs]
