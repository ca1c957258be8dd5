"""
SequenceRepository - per-tenant auto-increment transaction numbers.

Each (tenant, group) has a settings document:
{ next_number: "00007", number_prefix: "MJ-", auto_increment: true }
Missing documents fall back to the configured defaults.
"""

from datetime import datetime, timezone
from typing import Optional
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.core.config import settings

MANUAL_JOURNALS_GROUP = "manual_journals"


def increment_number(number: str) -> str:
    """Increment a numeric string keeping its zero padding ("0009" -> "0010")."""
    if not number.isdigit():
        return number
    return str(int(number) + 1).zfill(len(number))


class SequenceRepository:
    """Issues and advances transaction numbers."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["sequences"]

    async def _get_settings(self, tenant_id: str, group: str, session=None) -> dict:
        doc = await self.collection.find_one({"tenant_id": tenant_id, "group": group}, session=session)
        return {
            "next_number": settings.MANUAL_JOURNAL_NEXT_NUMBER,
            "number_prefix": settings.MANUAL_JOURNAL_NUMBER_PREFIX,
            "auto_increment": settings.MANUAL_JOURNAL_AUTO_INCREMENT,
            **(doc or {}),
        }

    async def get_next_number(
        self, tenant_id: str, group: str = MANUAL_JOURNALS_GROUP
    ) -> Optional[str]:
        """Next formatted number, or None when auto-increment is disabled."""
        sequence = await self._get_settings(tenant_id, group)
        if not sequence["auto_increment"]:
            return None
        return f"{sequence['number_prefix'] or ''}{sequence['next_number']}"

    async def increment_next_number(
        self, tenant_id: str, group: str = MANUAL_JOURNALS_GROUP, session=None
    ) -> str:
        """Advance the stored next number and return the new value."""
        sequence = await self._get_settings(tenant_id, group, session=session)
        next_number = increment_number(str(sequence["next_number"]))

        await self.collection.update_one(
            {"tenant_id": tenant_id, "group": group},
            {
                "$set": {
                    "next_number": next_number,
                    "updated_at": datetime.now(timezone.utc)
                },
                "$setOnInsert": {
                    "number_prefix": sequence["number_prefix"],
                    "auto_increment": sequence["auto_increment"]
                }
            },
            upsert=True,
            session=session
        )
        return next_number
