"""Report and report photo models.

Reports are owned by the wider reporting application; only the fields the
stock workflow reads or transitions are modelled here.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, Enum as SQLEnum, ForeignKey, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stockrecon.db.base import Base, TimestampMixin


class ReportType(str, Enum):
    """Kind of daily report."""

    STOCK = "stock"
    INCIDENT = "incident"
    OPENING_CHECKLIST = "opening_checklist"
    CLOSING_CHECKLIST = "closing_checklist"


class ReportStatus(str, Enum):
    """Lifecycle status of a report."""

    DRAFT = "draft"
    SUBMITTED = "submitted"
    RESOLVED = "resolved"


class PhotoCategory(str, Enum):
    """What a report photo is evidence of."""

    STOCK_MEASUREMENT = "stock_measurement"
    GENERAL = "general"


class Report(TimestampMixin, Base):
    """A daily report submitted by a staff member."""

    __tablename__ = "reports"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    type: Mapped[ReportType] = mapped_column(SQLEnum(ReportType), nullable=False)
    status: Mapped[ReportStatus] = mapped_column(
        SQLEnum(ReportStatus), default=ReportStatus.DRAFT, nullable=False
    )
    title: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    submitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    stock_cycle: Mapped[Optional["StockCycle"]] = relationship(
        "StockCycle", back_populates="report", uselist=False, cascade="all, delete-orphan"
    )
    photos: Mapped[list["ReportPhoto"]] = relationship(
        "ReportPhoto", back_populates="report", cascade="all, delete-orphan"
    )

    @property
    def is_draft(self) -> bool:
        return self.status == ReportStatus.DRAFT


class ReportPhoto(Base):
    """Metadata of an uploaded photo; the bytes live in the media store."""

    __tablename__ = "report_photos"

    id: Mapped[int] = mapped_column(primary_key=True)
    report_id: Mapped[int] = mapped_column(
        ForeignKey("reports.id", ondelete="CASCADE"), nullable=False, index=True
    )
    category: Mapped[PhotoCategory] = mapped_column(
        SQLEnum(PhotoCategory), default=PhotoCategory.GENERAL, nullable=False
    )
    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    mime_type: Mapped[str] = mapped_column(String(100), nullable=False)
    size: Mapped[int] = mapped_column(Integer, nullable=False)
    checksum: Mapped[str] = mapped_column(String(64), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    report: Mapped["Report"] = relationship("Report", back_populates="photos")


# Forward references
from stockrecon.models.stock import StockCycle  # noqa: E402
