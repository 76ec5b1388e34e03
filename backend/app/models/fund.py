"""Fund snapshot and holding models."""

from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.config import MAX_HOLDINGS


class Holding(BaseModel):
    code: str = ""
    name: str = ""
    weight: str = ""  # e.g. "3.21%"
    change: float | None = None  # live percent price change


class FundEstimate(BaseModel):
    """Decoded payload of the live estimate feed."""

    code: str
    name: str = ""
    dwjz: str | None = None
    gsz: str | None = None
    gztime: str | None = None
    jzrq: str | None = None
    gszzl: float | str | None = None


class FundQuote(BaseModel):
    """Single-fund record of the secondary quote feed."""

    name: str = ""
    dwjz: str | None = None
    jzrq: str = ""
    zzl: float | None = None


class SettledFigures(BaseModel):
    dwjz: str | None = None
    jzrq: str | None = None
    zzl: float | None = None


class FundSnapshot(BaseModel):
    """Reconciled view of one fund, built fresh on every fetch cycle."""

    model_config = ConfigDict(populate_by_name=True)

    code: str = Field(frozen=True)
    name: str
    dwjz: str | None = None
    gsz: str | None = None
    gztime: str | None = None
    jzrq: str | None = None
    gszzl: float | str | None = None
    zzl: float | None = None
    no_valuation: bool = Field(default=False, alias="noValuation")
    holdings: list[Holding] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_invariants(self) -> "FundSnapshot":
        if len(self.holdings) > MAX_HOLDINGS:
            raise ValueError(f"at most {MAX_HOLDINGS} holdings allowed")
        if self.gztime is not None and self.gsz is None:
            raise ValueError("gztime requires gsz")
        if self.no_valuation and (self.gsz is not None or self.gztime is not None):
            raise ValueError("a snapshot without valuation cannot carry gsz/gztime")
        return self


class NetValuePoint(BaseModel):
    date: str  # "YYYY-MM-DD"
    value: float


class FetchFailure(BaseModel):
    code: str
    reason: str


class BatchResult(BaseModel):
    snapshots: list[FundSnapshot] = Field(default_factory=list)
    failures: list[FetchFailure] = Field(default_factory=list)
