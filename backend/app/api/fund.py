"""Fund API routes."""

from datetime import date
from typing import Annotated

from fastapi import APIRouter, HTTPException, Path, Query

from app.api.schemas import FUND_CODE_PATTERN, BatchFetchRequest
from app.models.fund import BatchResult, FundSnapshot, NetValuePoint
from app.services.errors import DataUnavailableError
from app.services.fund_data import fund_data_service

router = APIRouter(prefix="/api/fund", tags=["fund"])

FundCode = Annotated[str, Path(pattern=FUND_CODE_PATTERN)]


# Static path routes MUST come before parameterized /{fund_code} routes.


@router.post("/batch", response_model=BatchResult)
async def fetch_batch(body: BatchFetchRequest):
    """Fetch several funds one after another; failures are reported per code."""
    return await fund_data_service.fetch_many(body.codes)


@router.get("/{fund_code}", response_model=FundSnapshot)
async def get_fund(fund_code: FundCode):
    try:
        return await fund_data_service.fetch_fund(fund_code)
    except DataUnavailableError as e:
        raise HTTPException(status_code=404, detail=e.reason)


@router.get("/{fund_code}/net-value", response_model=NetValuePoint)
async def get_net_value(fund_code: FundCode, start: Annotated[date, Query()]):
    """First settled NAV on or after ``start`` (looks ahead a bounded number of days)."""
    point = await fund_data_service.net_values.find_settled_net_value(fund_code, start)
    if point is None:
        raise HTTPException(status_code=404, detail="No settled net value found")
    return point
