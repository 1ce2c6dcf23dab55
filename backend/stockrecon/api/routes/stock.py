"""Stock report routes: POS sync, counting, photo evidence and finalize."""

import logging
from collections.abc import Generator
from datetime import datetime
from typing import Annotated
from zoneinfo import ZoneInfo

import httpx
from fastapi import APIRouter, Depends, File, Request, UploadFile
from fastapi.responses import FileResponse

from stockrecon.core.config import settings
from stockrecon.core.exceptions import NotFoundError, ValidationError
from stockrecon.core.rate_limit import limiter
from stockrecon.core.rbac import CurrentUser, TokenData
from stockrecon.db.session import DbSession
from stockrecon.models.report import PhotoCategory, ReportPhoto
from stockrecon.schemas.stock import (
    FinalizeResponse,
    InitializeStockRequest,
    ManualItemCreate,
    PhotoResponse,
    StockCyclePublic,
    StockCycleResponse,
    StockItemPublic,
    StockItemResponse,
    StockItemUpdate,
    StockReportAdminDetail,
    StockReportDetail,
    StockSummary,
    StockSummaryPublic,
)
from stockrecon.services.credential_vault import CredentialVault
from stockrecon.services.inventory_client import OlseraInventoryClient
from stockrecon.services.media_store import MediaStore
from stockrecon.services.stock_reconciliation_service import StockReconciliationService

logger = logging.getLogger(__name__)

router = APIRouter()


def get_inventory_client(db: DbSession) -> Generator[OlseraInventoryClient, None, None]:
    """Per-request POS client sharing one HTTP connection pool."""
    with httpx.Client(timeout=settings.olsera_timeout_seconds) as http:
        vault = CredentialVault(db, http)
        yield OlseraInventoryClient(vault, http)


InventoryClient = Annotated[OlseraInventoryClient, Depends(get_inventory_client)]


def _serialize_item(item, user: TokenData):
    schema = StockItemResponse if user.is_admin else StockItemPublic
    return schema.model_validate(item)


def _serialize_cycle(cycle, user: TokenData):
    schema = StockCycleResponse if user.is_admin else StockCyclePublic
    return schema.model_validate(cycle)


def _today() -> str:
    return datetime.now(ZoneInfo(settings.timezone)).date().isoformat()


# ==================== Cycle ====================

@router.post("/reports/{report_id}/initialize")
@limiter.limit("30/minute")
def initialize_stock_report(
    request: Request,
    report_id: int,
    body: InitializeStockRequest,
    db: DbSession,
    current_user: CurrentUser,
    inventory_client: InventoryClient,
):
    """Pull the day's raw-material movement from the POS into the report."""
    service = StockReconciliationService(db, inventory_client)
    service.get_report(report_id, current_user.id)

    if not current_user.is_admin and body.stock_date.isoformat() != _today():
        raise ValidationError("Stock reports can only be initialized for today")

    cycle = service.initialize_cycle(report_id, body.stock_date)
    return {
        "message": "Stock report initialized successfully",
        "stock_report": _serialize_cycle(cycle, current_user),
    }


@router.get("/reports/{report_id}")
@limiter.limit("60/minute")
def get_stock_report(
    request: Request,
    report_id: int,
    db: DbSession,
    current_user: CurrentUser,
):
    """Cycle, items and progress for a stock report."""
    service = StockReconciliationService(db)
    service.get_report(report_id, current_user.id)

    schema = StockReportAdminDetail if current_user.is_admin else StockReportDetail
    return schema.model_validate(
        {
            "stock_report": service.get_cycle(report_id),
            "stats": service.get_stats(report_id),
        },
        from_attributes=True,
    )


@router.get("/reports/{report_id}/summary")
@limiter.limit("60/minute")
def get_stock_summary(
    request: Request,
    report_id: int,
    db: DbSession,
    current_user: CurrentUser,
):
    service = StockReconciliationService(db)
    service.get_report(report_id, current_user.id)

    summary = service.generate_summary(report_id)
    if summary is None:
        raise NotFoundError("Stock report not initialized")

    schema = StockSummary if current_user.is_admin else StockSummaryPublic
    return schema.model_validate(summary)


@router.post("/reports/{report_id}/items")
@limiter.limit("30/minute")
def add_manual_item(
    request: Request,
    report_id: int,
    body: ManualItemCreate,
    db: DbSession,
    current_user: CurrentUser,
):
    """Add a product the POS does not track."""
    service = StockReconciliationService(db)
    service.get_report(report_id, current_user.id)
    cycle = service.require_cycle(report_id)

    item = service.add_manual_item(
        cycle.id,
        body.product_name,
        body.opening_stock,
        expected_out=body.expected_out,
        unit=body.unit,
    )
    return {
        "message": "Custom item added successfully",
        "item": _serialize_item(item, current_user),
    }


@router.post("/reports/{report_id}/finalize", response_model=FinalizeResponse)
@limiter.limit("10/minute")
def finalize_stock_report(
    request: Request,
    report_id: int,
    db: DbSession,
    current_user: CurrentUser,
):
    """Submit the report once every item has been counted."""
    service = StockReconciliationService(db)
    service.get_report(report_id, current_user.id)
    return service.finalize(report_id)


# ==================== Items ====================

@router.patch("/items/{item_id}")
@limiter.limit("120/minute")
def update_stock_item(
    request: Request,
    item_id: int,
    body: StockItemUpdate,
    db: DbSession,
    current_user: CurrentUser,
):
    """Record the physical closing count for an item."""
    service = StockReconciliationService(db)
    service.get_item(item_id, current_user.id)

    item = service.record_measurement(
        item_id,
        body.actual_closing,
        photo_id=body.photo_id,
        notes=body.notes,
    )
    return {
        "message": "Stock item updated successfully",
        "item": _serialize_item(item, current_user),
    }


@router.post("/items/{item_id}/photo", response_model=PhotoResponse)
@limiter.limit("30/minute")
def upload_stock_item_photo(
    request: Request,
    item_id: int,
    db: DbSession,
    current_user: CurrentUser,
    photo: UploadFile = File(...),
):
    """Attach a photo of the measured stock to an item."""
    service = StockReconciliationService(db)
    item = service.get_item(item_id, current_user.id)

    media = MediaStore(db)
    # One byte past the limit is enough to reject an oversized upload
    content = photo.file.read(media.max_size_bytes + 1)
    stored = media.save_photo(
        item.cycle.report_id,
        photo.filename or "",
        content,
        photo.content_type,
        category=PhotoCategory.STOCK_MEASUREMENT,
    )
    try:
        service.attach_photo(item_id, stored.id)
    except Exception:
        db.rollback()
        media.delete_file(stored)
        raise

    return PhotoResponse(
        id=stored.id,
        filename=stored.filename,
        url=f"{settings.api_v1_prefix}/stock/photos/{stored.id}",
    )


@router.get("/photos/{photo_id}")
@limiter.limit("120/minute")
def get_stock_photo(
    request: Request,
    photo_id: int,
    db: DbSession,
    current_user: CurrentUser,
):
    photo = db.get(ReportPhoto, photo_id)
    if photo is None or photo.report.user_id != current_user.id:
        raise NotFoundError("Photo not found")

    path = MediaStore(db).get_path(photo)
    return FileResponse(path=path, media_type=photo.mime_type, filename=photo.filename)
