from decimal import Decimal
from typing import Any, Dict, Literal, Optional, List
from pydantic import BaseModel, Field
from datetime import date

from app.core.config import settings
from app.models.base import PyObjectId
from app.models.ledger import AccountTransaction
from app.models.manual_journal import ContactType, ManualJournal

class ManualJournalEntryDTO(BaseModel):
    index: int = Field(..., ge=0)
    account_id: PyObjectId
    credit: Decimal = Field(Decimal("0"), ge=0)
    debit: Decimal = Field(Decimal("0"), ge=0)
    contact_id: Optional[PyObjectId] = None
    contact_type: Optional[ContactType] = None
    note: Optional[str] = Field(None, max_length=1000)

    model_config = {"from_attributes": True, "arbitrary_types_allowed": True}

class ManualJournalDTO(BaseModel):
    """Create/edit payload. A missing journal number means auto-numbering on create."""
    date: date
    journal_number: Optional[str] = Field(None, max_length=255)
    journal_type: Optional[str] = Field(None, max_length=255)
    reference: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    currency_code: Optional[str] = Field(None, min_length=3, max_length=3)
    publish: bool = False
    entries: List[ManualJournalEntryDTO] = []
    media_ids: List[PyObjectId] = []

    model_config = {"from_attributes": True, "arbitrary_types_allowed": True}

class ManualJournalsFilter(BaseModel):
    page: int = Field(1, ge=1)
    page_size: int = Field(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE)
    column_sort_by: Literal["date", "journal_number", "amount", "created_at"] = "date"
    sort_order: Literal["asc", "desc"] = "desc"
    search_keyword: Optional[str] = None
    status: Optional[Literal["draft", "published"]] = None

class PaginationMeta(BaseModel):
    page: int
    page_size: int
    total: int

class FilterMeta(BaseModel):
    column_sort_by: str
    sort_order: str
    search_keyword: Optional[str] = None
    status: Optional[str] = None

class ManualJournalsList(BaseModel):
    manual_journals: List[ManualJournal]
    pagination: PaginationMeta
    filter_meta: FilterMeta

class ManualJournalDetails(ManualJournal):
    """Journal with its posted ledger lines and attachments."""
    transactions: List[AccountTransaction] = []
    media: List[Dict[str, Any]] = []

class PublishBulkMeta(BaseModel):
    already_published: int
    published: int
    total: int

class ManualJournalsIdsRequest(BaseModel):
    ids: List[PyObjectId] = Field(..., min_length=1)

    model_config = {"arbitrary_types_allowed": True}
