from typing import List
from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.api.deps import get_manual_journal_service
from app.core.auth import get_current_user
from app.schemas.auth import AuthorizedUser
from app.schemas.manual_journal import (
    ManualJournalDTO,
    ManualJournalsFilter,
    ManualJournalsIdsRequest,
)
from app.services.manual_journal_service import ManualJournalService
from app.utils.journal_validation import ErrorType, ServiceError

router = APIRouter()

ERROR_CODES = {
    ErrorType.NOT_FOUND: 100,
    ErrorType.CREDIT_DEBIT_NOT_EQUAL_ZERO: 200,
    ErrorType.CREDIT_DEBIT_NOT_EQUAL: 300,
    ErrorType.ACCCOUNTS_IDS_NOT_FOUND: 400,
    ErrorType.JOURNAL_NUMBER_EXISTS: 500,
    ErrorType.ENTRIES_SHOULD_ASSIGN_WITH_CONTACT: 600,
    ErrorType.CONTACTS_NOT_FOUND: 700,
    ErrorType.MANUAL_JOURNAL_NO_REQUIRED: 800,
    ErrorType.MANUAL_JOURNAL_ALREADY_PUBLISHED: 900,
    ErrorType.MANUAL_JOURNAL_VERSION_CONFLICT: 1000,
}


def service_error_to_http(exc: ServiceError) -> HTTPException:
    """NOT_FOUND maps to 404, every other service error to 400."""
    status_code = (
        status.HTTP_404_NOT_FOUND
        if exc.error_type == ErrorType.NOT_FOUND
        else status.HTTP_400_BAD_REQUEST
    )
    return HTTPException(
        status_code=status_code,
        detail={
            "errors": [{
                "type": exc.error_type.value,
                "code": ERROR_CODES[exc.error_type],
                "data": exc.payload,
            }]
        }
    )


@router.post("/publish")
async def publish_manual_journals(
    payload: ManualJournalsIdsRequest,
    current_user: AuthorizedUser = Depends(get_current_user),
    service: ManualJournalService = Depends(get_manual_journal_service)
):
    """Publish the given journals; already published ones are skipped."""
    try:
        meta = await service.publish_manual_journals(current_user.tenant_id, payload.ids)
    except ServiceError as exc:
        raise service_error_to_http(exc)
    return {
        "ids": [str(i) for i in payload.ids],
        "meta": meta.model_dump(),
        "message": "The manual journals have been published successfully."
    }


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_manual_journal(
    manual_journal_dto: ManualJournalDTO,
    current_user: AuthorizedUser = Depends(get_current_user),
    service: ManualJournalService = Depends(get_manual_journal_service)
):
    """Create a manual journal."""
    try:
        manual_journal = await service.make_journal_entries(
            current_user.tenant_id, manual_journal_dto, current_user
        )
    except ServiceError as exc:
        raise service_error_to_http(exc)
    return {
        "id": str(manual_journal.id),
        "manual_journal": manual_journal.model_dump(mode="json"),
        "message": "The manual journal has been created successfully."
    }


@router.post("/{manual_journal_id}/publish")
async def publish_manual_journal(
    manual_journal_id: str,
    current_user: AuthorizedUser = Depends(get_current_user),
    service: ManualJournalService = Depends(get_manual_journal_service)
):
    """Publish a draft journal."""
    try:
        await service.publish_manual_journal(current_user.tenant_id, manual_journal_id)
    except ServiceError as exc:
        raise service_error_to_http(exc)
    return {
        "id": manual_journal_id,
        "message": "The manual journal has been published successfully."
    }


@router.post("/{manual_journal_id}")
async def edit_manual_journal(
    manual_journal_id: str,
    manual_journal_dto: ManualJournalDTO,
    current_user: AuthorizedUser = Depends(get_current_user),
    service: ManualJournalService = Depends(get_manual_journal_service)
):
    """Edit a manual journal."""
    try:
        manual_journal, old_manual_journal = await service.edit_journal_entries(
            current_user.tenant_id, manual_journal_id, manual_journal_dto, current_user
        )
    except ServiceError as exc:
        raise service_error_to_http(exc)
    return {
        "id": manual_journal_id,
        "manual_journal": manual_journal.model_dump(mode="json"),
        "old_manual_journal": old_manual_journal.model_dump(mode="json"),
        "message": "The manual journal has been edited successfully."
    }


@router.delete("/")
async def delete_manual_journals(
    ids: List[str] = Query(..., min_length=1),
    current_user: AuthorizedUser = Depends(get_current_user),
    service: ManualJournalService = Depends(get_manual_journal_service)
):
    """Delete all of the given journals or none of them."""
    try:
        await service.delete_manual_journals(current_user.tenant_id, ids)
    except ServiceError as exc:
        raise service_error_to_http(exc)
    return {"ids": ids, "message": "The manual journals have been deleted successfully."}


@router.delete("/{manual_journal_id}")
async def delete_manual_journal(
    manual_journal_id: str,
    current_user: AuthorizedUser = Depends(get_current_user),
    service: ManualJournalService = Depends(get_manual_journal_service)
):
    """Delete a manual journal with its entries."""
    try:
        await service.delete_manual_journal(current_user.tenant_id, manual_journal_id)
    except ServiceError as exc:
        raise service_error_to_http(exc)
    return {"id": manual_journal_id, "message": "The manual journal has been deleted successfully."}


@router.get("/")
async def list_manual_journals(
    journals_filter: ManualJournalsFilter = Depends(),
    current_user: AuthorizedUser = Depends(get_current_user),
    service: ManualJournalService = Depends(get_manual_journal_service)
):
    """Paginated list of the tenant's journals."""
    result = await service.get_manual_journals(current_user.tenant_id, journals_filter)
    return result.model_dump(mode="json")


@router.get("/{manual_journal_id}")
async def get_manual_journal(
    manual_journal_id: str,
    current_user: AuthorizedUser = Depends(get_current_user),
    service: ManualJournalService = Depends(get_manual_journal_service)
):
    """Journal with entries, posted transactions and media."""
    try:
        manual_journal = await service.get_manual_journal(current_user.tenant_id, manual_journal_id)
    except ServiceError as exc:
        raise service_error_to_http(exc)
    return {"manual_journal": manual_journal.model_dump(mode="json")}
