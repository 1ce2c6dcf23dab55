"""Stock reconciliation cycle and line item models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean, Date, DateTime, ForeignKey, Numeric, String, Text, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stockrecon.db.base import Base, TimestampMixin

# SKU marking line items entered by hand rather than synced from the POS
MANUAL_SKU = "CUSTOM"
MANUAL_PRODUCT_PREFIX = "custom-"


class ProductGroup(str, Enum):
    """Product group labels reported by the POS."""

    RAW_MATERIAL = "Bahan Baku"
    FINISHED_GOODS = "Finished Goods"
    OTHER = "other"

    @classmethod
    def from_label(cls, label: Optional[str]) -> "ProductGroup":
        """Map a raw POS label onto a known group, OTHER when unrecognised."""
        if not isinstance(label, str):
            return cls.OTHER
        normalized = label.strip()
        for group in cls:
            if group is not cls.OTHER and group.value == normalized:
                return group
        return cls.OTHER


class StockCycle(TimestampMixin, Base):
    """One day's stock count attached to a stock report."""

    __tablename__ = "stock_cycles"
    __table_args__ = (UniqueConstraint("report_id", name="uq_stock_cycles_report_id"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    report_id: Mapped[int] = mapped_column(
        ForeignKey("reports.id", ondelete="CASCADE"), nullable=False, index=True
    )
    stock_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    synced_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    report: Mapped["Report"] = relationship("Report", back_populates="stock_cycle")
    items: Mapped[list["StockLineItem"]] = relationship(
        "StockLineItem",
        back_populates="cycle",
        cascade="all, delete-orphan",
        order_by="StockLineItem.product_name",
    )


class StockLineItem(TimestampMixin, Base):
    """A single product's opening, expected outflow and measured closing."""

    __tablename__ = "stock_line_items"

    id: Mapped[int] = mapped_column(primary_key=True)
    cycle_id: Mapped[int] = mapped_column(
        ForeignKey("stock_cycles.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # Product info (POS ids are kept as strings; manual items use custom-<uuid>)
    product_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    product_name: Mapped[str] = mapped_column(String(200), nullable=False)
    product_sku: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    unit: Mapped[str] = mapped_column(String(20), nullable=False)

    # Quantities
    opening_stock: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)
    expected_out: Mapped[Decimal] = mapped_column(Numeric(12, 3), default=0, nullable=False)
    actual_closing: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 3), nullable=True)
    variance: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 3), nullable=True)  # actual - expected closing

    # Evidence
    photo_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("report_photos.id", ondelete="SET NULL"), nullable=True
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    cycle: Mapped["StockCycle"] = relationship("StockCycle", back_populates="items")
    photo: Mapped[Optional["ReportPhoto"]] = relationship("ReportPhoto")

    @property
    def expected_closing(self) -> Decimal:
        return Decimal(self.opening_stock) - Decimal(self.expected_out)

    @property
    def is_manual(self) -> bool:
        return self.product_sku == MANUAL_SKU


# Forward references
from stockrecon.models.report import Report, ReportPhoto  # noqa: E402
