from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from . import settings


class Segment(str, Enum):
    ALL = "ALL"
    COLD = "COLD"
    SODA_SNACK = "SODA_SNACK"


class StagedRecord(BaseModel):
    """
    One item's variance observation for one market and one period, as produced
    by extraction. It becomes a ShrinkRecord once an identifier is assigned at commit.
    """

    item_number: str = Field(default="", alias="itemNumber")
    item_name: str = Field(default="", alias="itemName")
    inv_variance: float = Field(default=0.0, alias="invVariance")
    total_revenue: float = Field(default=0.0, alias="totalRevenue")
    sold_qty: Optional[float] = Field(default=None, alias="soldQty")
    sale_price: Optional[float] = Field(default=None, alias="salePrice")
    unit_cost: float = Field(default=0.0, alias="unitCost")
    shrink_loss: float = Field(default=0.0, ge=0, alias="shrinkLoss")
    overage_gain: float = Field(default=0.0, ge=0, alias="overageGain")
    item_profit: Optional[float] = Field(default=None, alias="itemProfit")
    market_name: str = Field(default="", alias="marketName")
    period: str = "Unknown"

    # Accept both the camelCase aliases (persisted state, model output)
    # and the field names (extraction code).
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @model_validator(mode="after")
    def _shrink_and_overage_are_exclusive(self):
        if self.shrink_loss > 0 and self.overage_gain > 0:
            raise ValueError("shrinkLoss and overageGain cannot both be non-zero")
        return self


class ShrinkRecord(StagedRecord):
    id: str


class ColumnMap(BaseModel):
    """Column index of every canonical field within a sheet row (None when the sheet has no such column)."""

    item_number: Optional[int] = settings.DEFAULT_COLUMN_MAP["item_number"]
    item_name: Optional[int] = settings.DEFAULT_COLUMN_MAP["item_name"]
    variance: Optional[int] = settings.DEFAULT_COLUMN_MAP["variance"]
    revenue: Optional[int] = settings.DEFAULT_COLUMN_MAP["revenue"]
    sold_qty: Optional[int] = settings.DEFAULT_COLUMN_MAP["sold_qty"]
    sale_price: Optional[int] = settings.DEFAULT_COLUMN_MAP["sale_price"]
    item_cost: Optional[int] = settings.DEFAULT_COLUMN_MAP["item_cost"]


class FilterState(BaseModel):
    """Active month/market/segment selection. An empty month set means every month."""

    months: set[str] = Field(default_factory=set)
    market: str = settings.ALL_MARKETS
    segment: Segment = Segment.ALL


class Stats(BaseModel):
    total_revenue: float = 0.0
    total_shrink: float = 0.0
    total_overage: float = 0.0
    net_variance: float = 0.0
    accuracy: float = 100.0
    count: int = 0


class PeriodTrend(BaseModel):
    period: str
    shrink: float
    overage: float
    revenue: float
    net: float
    shrink_rate: float


class MarketVariance(BaseModel):
    name: str
    shortage: float
    overage: float


class LeaderboardEntry(BaseModel):
    name: str
    value: float


class MarketRisk(BaseModel):
    """Per-market radar scores, each scaled so the riskiest market scores 100."""

    name: str
    shrink_score: float
    overage_score: float
    frequency_score: float
