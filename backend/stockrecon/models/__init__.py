"""SQLAlchemy models."""

from stockrecon.models.report import Report, ReportPhoto, ReportType, ReportStatus, PhotoCategory
from stockrecon.models.stock import (
    StockCycle,
    StockLineItem,
    ProductGroup,
    MANUAL_SKU,
    MANUAL_PRODUCT_PREFIX,
)
from stockrecon.models.credential import ApiCredential

__all__ = [
    "Report",
    "ReportPhoto",
    "ReportType",
    "ReportStatus",
    "PhotoCategory",
    "StockCycle",
    "StockLineItem",
    "ProductGroup",
    "MANUAL_SKU",
    "MANUAL_PRODUCT_PREFIX",
    "ApiCredential",
]
