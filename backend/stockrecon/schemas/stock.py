"""Schemas for stock report reconciliation."""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from stockrecon.models.report import ReportStatus


# ============== Requests ==============

class InitializeStockRequest(BaseModel):
    """Select the day to count."""
    stock_date: date


class StockItemUpdate(BaseModel):
    """Physical closing count for one item."""
    actual_closing: Decimal = Field(..., ge=0)
    notes: Optional[str] = None
    photo_id: Optional[int] = None


class ManualItemCreate(BaseModel):
    """Product not tracked by the POS."""
    product_name: str = Field(..., min_length=1, max_length=100)
    opening_stock: Decimal = Field(..., ge=0)
    expected_out: Decimal = Field(Decimal("0"), ge=0)
    unit: str = Field("pcs", min_length=1, max_length=20)


# ============== Line items ==============

class StockItemPublic(BaseModel):
    """Line item as shown to staff doing a blind count."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    cycle_id: int
    product_id: str
    product_name: str
    product_sku: Optional[str] = None
    unit: str
    actual_closing: Optional[Decimal] = None
    photo_id: Optional[int] = None
    notes: Optional[str] = None
    completed: bool
    is_manual: bool


class StockItemResponse(StockItemPublic):
    """Line item with the expected figures, for admins."""
    opening_stock: Decimal
    expected_out: Decimal
    expected_closing: Decimal
    variance: Optional[Decimal] = None


# ============== Cycle ==============

class StockStatsPublic(BaseModel):
    total_items: int
    completed_items: int
    completion_percentage: int


class StockStats(StockStatsPublic):
    total_variance: Decimal
    shortfall_items: int
    surplus_items: int


class StockCyclePublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    report_id: int
    stock_date: date
    synced_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    items: List[StockItemPublic] = []


class StockCycleResponse(StockCyclePublic):
    items: List[StockItemResponse] = []


class StockReportDetail(BaseModel):
    """Cycle and progress for a report; both null until initialized."""
    stock_report: Optional[StockCyclePublic] = None
    stats: Optional[StockStatsPublic] = None


class StockReportAdminDetail(StockReportDetail):
    stock_report: Optional[StockCycleResponse] = None
    stats: Optional[StockStats] = None


# ============== Summary ==============

class StockSummaryItemPublic(BaseModel):
    product: str
    sku: Optional[str] = None
    actual_closing: Optional[Decimal] = None
    unit: str
    status: str


class StockSummaryItem(StockSummaryItemPublic):
    opening: Decimal
    expected_out: Decimal
    variance: Optional[Decimal] = None


class StockSummaryPublic(BaseModel):
    date: date
    synced_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    items: List[StockSummaryItemPublic] = []


class StockSummary(StockSummaryPublic):
    items: List[StockSummaryItem] = []


# ============== Finalize / photos ==============

class FinalizeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    status: ReportStatus
    submitted_at: Optional[datetime] = None


class PhotoResponse(BaseModel):
    id: int
    filename: str
    url: str
