"""Stock reconciliation service: daily POS sync, measurements and finalize.

A stock report owns exactly one cycle. Initializing the cycle pulls the day's
raw-material movement from the POS and seeds opening stock from the previous
day's completed cycle; staff then record a physical closing count per item,
and the report can only be submitted once every item has been counted.

Concurrent initialization of the same report is not locked; the last writer
wins on the delete-and-recreate path.
"""

import logging
import uuid
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from stockrecon.core.config import Settings, settings as default_settings
from stockrecon.core.exceptions import (
    ConfigurationError,
    NotFoundError,
    PreconditionError,
    ValidationError,
)
from stockrecon.db.base import utcnow
from stockrecon.models.report import Report, ReportPhoto, ReportStatus, ReportType
from stockrecon.models.stock import (
    MANUAL_PRODUCT_PREFIX,
    MANUAL_SKU,
    StockCycle,
    StockLineItem,
)
from stockrecon.services.inventory_client import OlseraInventoryClient

logger = logging.getLogger(__name__)


def _to_decimal(value: Any, field: str) -> Decimal:
    if value is None:
        raise ValidationError(f"{field} is required")
    try:
        result = Decimal(str(value))
    except InvalidOperation:
        raise ValidationError(f"{field} must be a number")
    if not result.is_finite():
        raise ValidationError(f"{field} must be a number")
    if result < 0:
        raise ValidationError(f"{field} must not be negative")
    return result


class StockReconciliationService:
    """Service for the stock report reconciliation workflow."""

    def __init__(
        self,
        db: Session,
        inventory_client: Optional[OlseraInventoryClient] = None,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.inventory_client = inventory_client
        self.settings = settings or default_settings

    # ==================== Lookups ====================

    def get_report(self, report_id: int, user_id: Optional[int] = None) -> Report:
        """Load a stock report, optionally checking it belongs to ``user_id``."""
        report = self.db.get(Report, report_id)
        if (
            report is None
            or report.type != ReportType.STOCK
            or (user_id is not None and report.user_id != user_id)
        ):
            raise NotFoundError("Stock report not found")
        return report

    def get_item(self, item_id: int, user_id: Optional[int] = None) -> StockLineItem:
        item = self.db.get(StockLineItem, item_id)
        if item is None or (user_id is not None and item.cycle.report.user_id != user_id):
            raise NotFoundError("Stock item not found")
        return item

    def get_cycle(self, report_id: int) -> Optional[StockCycle]:
        return (
            self.db.query(StockCycle)
            .filter(StockCycle.report_id == report_id)
            .first()
        )

    def require_cycle(self, report_id: int) -> StockCycle:
        cycle = self.get_cycle(report_id)
        if cycle is None:
            raise PreconditionError("Stock report not initialized. Please select a date first.")
        return cycle

    @staticmethod
    def _require_draft(report: Report) -> None:
        if not report.is_draft:
            raise PreconditionError(
                f"Stock report is {report.status.value} and can no longer be changed"
            )

    # ==================== Initialization ====================

    def initialize_cycle(self, report_id: int, stock_date: date) -> StockCycle:
        """Create or refresh the report's cycle for ``stock_date``.

        Re-initializing for the same date is a no-op. A different date
        discards existing items and measurements. Nothing is written if the
        POS fetch fails.
        """
        report = self.get_report(report_id)
        cycle = self.get_cycle(report.id)

        if cycle is not None and cycle.items and cycle.stock_date == stock_date:
            logger.info(f"Stock cycle for report {report.id} already initialized for {stock_date}")
            return cycle

        self._require_draft(report)

        if self.inventory_client is None:
            raise ConfigurationError("No POS inventory client configured for stock sync")

        records = self.inventory_client.fetch_daily_consumption(stock_date)
        logger.info(f"Fetched {len(records)} stock movements for {stock_date}")

        # Read carryover before touching the current cycle
        previous_closing = self.get_previous_closing_stocks(stock_date) if records else {}

        try:
            if cycle is None:
                cycle = StockCycle(report=report, stock_date=stock_date)
                self.db.add(cycle)
            else:
                if cycle.items:
                    logger.info(
                        f"Date changed for report {report.id} ({cycle.stock_date} -> {stock_date}), "
                        f"clearing {len(cycle.items)} items"
                    )
                cycle.items.clear()
                cycle.stock_date = stock_date
                cycle.completed_at = None

            for record in records:
                opening = previous_closing.get(record.product_id, record.beginning_qty)
                cycle.items.append(
                    StockLineItem(
                        product_id=record.product_id,
                        product_name=record.product_name,
                        product_sku=record.product_sku,
                        unit=self.settings.default_stock_unit,
                        opening_stock=opening,
                        expected_out=record.expected_out,
                        completed=False,
                    )
                )

            cycle.synced_at = utcnow()
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(cycle)
        if not records:
            logger.info(f"No raw materials found for {stock_date}; report {report.id} has an empty cycle")
        else:
            logger.info(
                f"Initialized stock cycle {cycle.id} for report {report.id}: "
                f"{len(records)} items, {len(previous_closing)} carried over"
            )
        return cycle

    def get_previous_closing_stocks(self, stock_date: date) -> Dict[str, Decimal]:
        """Map product id -> measured closing from the prior day's completed cycle."""
        previous_date = stock_date - timedelta(days=1)
        previous = (
            self.db.query(StockCycle)
            .filter(
                StockCycle.stock_date == previous_date,
                StockCycle.completed_at.isnot(None),
            )
            .order_by(StockCycle.completed_at.desc(), StockCycle.id.desc())
            .first()
        )
        if previous is None:
            return {}

        return {
            item.product_id: Decimal(item.actual_closing)
            for item in previous.items
            if item.actual_closing is not None
        }

    # ==================== Measurement ====================

    def record_measurement(
        self,
        item_id: int,
        actual_closing: Any,
        photo_id: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> StockLineItem:
        """Store a physical closing count and its variance.

        Expected closing = opening - expected out;
        variance = actual closing - expected closing.
        """
        actual = _to_decimal(actual_closing, "actual_closing")
        item = self.get_item(item_id)
        report = item.cycle.report
        self._require_draft(report)

        if photo_id is not None:
            self._check_photo(photo_id, report.id)
            item.photo_id = photo_id
        if notes is not None:
            item.notes = notes

        item.actual_closing = actual
        item.variance = actual - item.expected_closing
        item.completed = True
        self.db.flush()

        self.check_completion(item.cycle_id)
        self.db.commit()
        self.db.refresh(item)
        return item

    def attach_photo(self, item_id: int, photo_id: int) -> StockLineItem:
        item = self.get_item(item_id)
        report = item.cycle.report
        self._require_draft(report)
        self._check_photo(photo_id, report.id)

        item.photo_id = photo_id
        self.db.commit()
        self.db.refresh(item)
        return item

    def _check_photo(self, photo_id: int, report_id: int) -> None:
        photo = self.db.get(ReportPhoto, photo_id)
        if photo is None or photo.report_id != report_id:
            raise NotFoundError("Photo not found")

    def check_completion(self, cycle_id: int) -> bool:
        """True when every item is counted; stamps completed_at the first time."""
        cycle = self.db.get(StockCycle, cycle_id)
        if cycle is None:
            raise NotFoundError("Stock cycle not found")

        all_completed = all(item.completed for item in cycle.items)
        if all_completed and cycle.completed_at is None:
            cycle.completed_at = utcnow()
            self.db.commit()
            logger.info(f"Stock cycle {cycle.id} completed ({len(cycle.items)} items)")

        return all_completed

    def finalize(self, report_id: int) -> Report:
        """Submit the report once every item has been counted."""
        report = self.get_report(report_id)
        if report.status != ReportStatus.DRAFT:
            raise PreconditionError("Stock report not found or already submitted")

        cycle = self.require_cycle(report.id)
        if not self.check_completion(cycle.id):
            raise PreconditionError("All stock items must be completed before finalizing")

        report.status = ReportStatus.SUBMITTED
        report.submitted_at = utcnow()
        self.db.commit()
        self.db.refresh(report)

        logger.info(f"Stock report {report.id} finalized")
        return report

    # ==================== Manual items ====================

    def add_manual_item(
        self,
        cycle_id: int,
        product_name: str,
        opening_stock: Any,
        expected_out: Any = 0,
        unit: str = "pcs",
    ) -> StockLineItem:
        """Add a product the POS does not track."""
        name = (product_name or "").strip()
        if not name or len(name) > 100:
            raise ValidationError("product_name must be between 1 and 100 characters")
        opening = _to_decimal(opening_stock, "opening_stock")
        outflow = _to_decimal(expected_out, "expected_out")

        cycle = self.db.get(StockCycle, cycle_id)
        if cycle is None:
            raise NotFoundError("Stock cycle not found")
        self._require_draft(cycle.report)

        item = StockLineItem(
            product_id=f"{MANUAL_PRODUCT_PREFIX}{uuid.uuid4().hex}",
            product_name=name,
            product_sku=MANUAL_SKU,
            unit=unit or "pcs",
            opening_stock=opening,
            expected_out=outflow,
            completed=False,
        )
        cycle.items.append(item)
        self.db.commit()
        self.db.refresh(item)

        logger.info(f"Added manual item '{name}' to stock cycle {cycle.id}")
        return item

    # ==================== Reporting ====================

    def get_stats(self, report_id: int) -> Optional[Dict[str, Any]]:
        cycle = self.get_cycle(report_id)
        if cycle is None:
            return None

        items = cycle.items
        total = len(items)
        completed = sum(1 for item in items if item.completed)
        variances = [Decimal(item.variance) for item in items if item.variance is not None]

        if total:
            percentage = int(
                (Decimal(completed) * 100 / total).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
            )
        else:
            percentage = 100

        return {
            "total_items": total,
            "completed_items": completed,
            "completion_percentage": percentage,
            "total_variance": sum(variances, Decimal("0")),
            "shortfall_items": sum(1 for v in variances if v < 0),
            "surplus_items": sum(1 for v in variances if v > 0),
        }

    def generate_summary(self, report_id: int) -> Optional[Dict[str, Any]]:
        cycle = self.get_cycle(report_id)
        if cycle is None:
            return None

        return {
            "date": cycle.stock_date,
            "synced_at": cycle.synced_at,
            "completed_at": cycle.completed_at,
            "items": [
                {
                    "product": item.product_name,
                    "sku": item.product_sku,
                    "opening": item.opening_stock,
                    "expected_out": item.expected_out,
                    "actual_closing": item.actual_closing,
                    "variance": item.variance,
                    "unit": item.unit,
                    "status": "completed" if item.completed else "pending",
                }
                for item in cycle.items
            ],
        }
