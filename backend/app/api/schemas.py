"""Pydantic schemas for API request/response."""

from typing import Annotated

from pydantic import BaseModel, Field, StringConstraints

FUND_CODE_PATTERN = r"^[0-9A-Za-z]{4,10}$"

FundCodeStr = Annotated[str, StringConstraints(pattern=FUND_CODE_PATTERN)]


class BatchFetchRequest(BaseModel):
    codes: list[FundCodeStr] = Field(min_length=1, max_length=50)


class WatchlistResponse(BaseModel):
    codes: list[str]
    snapshots: list[dict]
    missing: list[str]
