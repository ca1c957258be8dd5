from fastapi import APIRouter
from app.api.v1.endpoints import manual_journals

api_router = APIRouter()

api_router.include_router(manual_journals.router, prefix="/manual-journals", tags=["manual-journals"])
