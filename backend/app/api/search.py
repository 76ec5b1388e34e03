"""Fund search endpoint."""

from fastapi import APIRouter

from app.services.fund_data import fund_data_service

router = APIRouter(prefix="/api", tags=["search"])


@router.get("/fund/search")
async def search_funds(q: str = ""):
    """Search funds by name or code.

    Returns the suggest feed's raw fund entries:
    [{CODE, NAME, SHORTNAME, CATEGORY, CATEGORYDESC, ...}].
    """
    return await fund_data_service.search.search_funds(q)
