"""API routes."""

import logging
from fastapi import APIRouter

from stockrecon.api.routes import stock

logger = logging.getLogger(__name__)

api_router = APIRouter()

api_router.include_router(stock.router, prefix="/stock", tags=["stock"])
