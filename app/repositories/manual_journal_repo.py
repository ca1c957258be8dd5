"""
ManualJournalRepository - persistence of journals and their entries.

Storage layout:
- manual_journals: one document per journal (no entries)
- manual_journal_entries: one document per entry, keyed by manual_journal_id

Writes run in the caller's session when one is given, otherwise in their own
transaction. `transaction()` lets a service span journal, ledger and sequence
writes with one session.
"""

import re
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Tuple
from motor.motor_asyncio import AsyncIOMotorDatabase
from bson import ObjectId

from app.db.mongo import start_transaction
from app.models.base import to_bson
from app.models.manual_journal import ManualJournal
from app.schemas.manual_journal import ManualJournalsFilter
from app.utils.journal_validation import ErrorType, ServiceError


def _as_object_ids(ids: Iterable) -> List[ObjectId]:
    """Convert ids to ObjectIds, dropping malformed ones."""
    object_ids = []
    for value in ids:
        if isinstance(value, ObjectId):
            object_ids.append(value)
        elif isinstance(value, str) and ObjectId.is_valid(value):
            object_ids.append(ObjectId(value))
    return object_ids


class ManualJournalRepository:
    """Manual journal database operations."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["manual_journals"]
        self.entries_collection = db["manual_journal_entries"]
        self.media_collection = db["media"]

    async def _with_entries(self, tenant_id: str, docs: List[dict], session=None) -> List[ManualJournal]:
        """Attach entries (ordered by index) to journal documents."""
        if not docs:
            return []
        journal_ids = [doc["_id"] for doc in docs]
        entry_docs = await self.entries_collection.find({
            "tenant_id": tenant_id,
            "manual_journal_id": {"$in": journal_ids}
        }, session=session).sort("index", 1).to_list(None)

        entries_by_journal = {}
        for entry_doc in entry_docs:
            entries_by_journal.setdefault(entry_doc["manual_journal_id"], []).append(entry_doc)

        return [
            ManualJournal(**doc, entries=entries_by_journal.get(doc["_id"], []))
            for doc in docs
        ]

    async def get(self, tenant_id: str, manual_journal_id, session=None) -> Optional[ManualJournal]:
        """Get a journal with its entries."""
        object_ids = _as_object_ids([manual_journal_id])
        if not object_ids:
            return None

        doc = await self.collection.find_one(
            {"_id": object_ids[0], "tenant_id": tenant_id}, session=session
        )
        if not doc:
            return None
        journals = await self._with_entries(tenant_id, [doc], session=session)
        return journals[0]

    async def get_many(
        self, tenant_id: str, manual_journal_ids: Iterable, session=None
    ) -> List[ManualJournal]:
        """Get the journals (with entries) that exist among the given ids."""
        object_ids = _as_object_ids(manual_journal_ids)
        if not object_ids:
            return []

        docs = await self.collection.find({
            "_id": {"$in": object_ids},
            "tenant_id": tenant_id
        }, session=session).to_list(None)
        return await self._with_entries(tenant_id, docs, session=session)

    async def exists_journal_number(
        self, tenant_id: str, journal_number: str, exclude_id=None
    ) -> bool:
        query = {"tenant_id": tenant_id, "journal_number": journal_number}
        if exclude_id:
            query["_id"] = {"$ne": exclude_id}
        return await self.collection.count_documents(query, limit=1) > 0

    @asynccontextmanager
    async def transaction(self):
        """Session shared by every write of one journal operation."""
        async with start_transaction(self.db) as session:
            yield session

    async def upsert_graph(
        self,
        manual_journal: ManualJournal,
        expected_version: Optional[int] = None,
        session=None
    ) -> ManualJournal:
        """
        Write the journal and replace its entries atomically.

        - expected_version None: insert a new journal
        - otherwise: replace only if the stored version still matches,
          raising MANUAL_JOURNAL_VERSION_CONFLICT when it doesn't
        """
        if session is None:
            async with self.transaction() as session:
                return await self.upsert_graph(manual_journal, expected_version, session=session)

        journal_doc = manual_journal.to_document(exclude={"entries"})
        entries_docs = [
            {
                **to_bson(entry.model_dump()),
                "tenant_id": manual_journal.tenant_id,
                "manual_journal_id": manual_journal.id
            }
            for entry in manual_journal.entries
        ]

        if expected_version is None:
            await self.collection.insert_one(journal_doc, session=session)
        else:
            result = await self.collection.replace_one(
                {
                    "_id": manual_journal.id,
                    "tenant_id": manual_journal.tenant_id,
                    "version": expected_version
                },
                journal_doc,
                session=session
            )
            if result.matched_count == 0:
                raise ServiceError(ErrorType.MANUAL_JOURNAL_VERSION_CONFLICT)

        await self.entries_collection.delete_many(
            {"tenant_id": manual_journal.tenant_id, "manual_journal_id": manual_journal.id},
            session=session
        )
        if entries_docs:
            await self.entries_collection.insert_many(entries_docs, session=session)

        return manual_journal

    async def delete_many(self, tenant_id: str, manual_journal_ids: Iterable, session=None) -> int:
        """Delete entries, then the journals themselves."""
        if session is None:
            async with self.transaction() as session:
                return await self.delete_many(tenant_id, manual_journal_ids, session=session)

        object_ids = _as_object_ids(manual_journal_ids)
        await self.entries_collection.delete_many(
            {"tenant_id": tenant_id, "manual_journal_id": {"$in": object_ids}},
            session=session
        )
        result = await self.collection.delete_many(
            {"tenant_id": tenant_id, "_id": {"$in": object_ids}},
            session=session
        )
        return result.deleted_count

    async def mark_published(
        self,
        tenant_id: str,
        manual_journal_ids: Iterable,
        published_at: datetime,
        expected_version: Optional[int] = None,
        session=None
    ) -> int:
        """
        Stamp published_at on the not-yet-published journals among the ids.

        With expected_version (single journal), raises
        MANUAL_JOURNAL_VERSION_CONFLICT if nothing matched.
        """
        query = {
            "tenant_id": tenant_id,
            "_id": {"$in": _as_object_ids(manual_journal_ids)},
            "published_at": None
        }
        if expected_version is not None:
            query["version"] = expected_version

        result = await self.collection.update_many(
            query,
            {
                "$set": {"published_at": published_at, "updated_at": datetime.now(timezone.utc)},
                "$inc": {"version": 1}
            },
            session=session
        )
        if expected_version is not None and result.modified_count == 0:
            raise ServiceError(ErrorType.MANUAL_JOURNAL_VERSION_CONFLICT)
        return result.modified_count

    async def paginate(
        self, tenant_id: str, journals_filter: ManualJournalsFilter
    ) -> Tuple[List[ManualJournal], int]:
        """Page of journals (with entries) matching the filter, and the total count."""
        query = {"tenant_id": tenant_id}

        if journals_filter.status == "draft":
            query["published_at"] = None
        elif journals_filter.status == "published":
            query["published_at"] = {"$ne": None}

        if journals_filter.search_keyword:
            pattern = {"$regex": re.escape(journals_filter.search_keyword), "$options": "i"}
            query["$or"] = [
                {"journal_number": pattern},
                {"reference": pattern},
                {"description": pattern}
            ]

        direction = 1 if journals_filter.sort_order == "asc" else -1
        skip = (journals_filter.page - 1) * journals_filter.page_size

        total = await self.collection.count_documents(query)
        docs = await self.collection.find(query).sort(
            [(journals_filter.column_sort_by, direction), ("_id", direction)]
        ).skip(skip).limit(journals_filter.page_size).to_list(None)

        return await self._with_entries(tenant_id, docs), total

    async def get_media(self, tenant_id: str, media_ids: Iterable) -> List[dict]:
        """Attachment documents with string ids."""
        object_ids = _as_object_ids(media_ids)
        if not object_ids:
            return []

        docs = await self.media_collection.find({
            "tenant_id": tenant_id,
            "_id": {"$in": object_ids}
        }).to_list(None)
        return [
            {**{k: v for k, v in doc.items() if k != "_id"}, "id": str(doc["_id"])}
            for doc in docs
        ]
