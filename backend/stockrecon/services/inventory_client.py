"""Olsera POS client: daily stock movement for raw materials."""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

import httpx

from stockrecon.core.config import Settings, settings as default_settings
from stockrecon.core.exceptions import UpstreamSyncError
from stockrecon.models.stock import ProductGroup
from stockrecon.services.credential_vault import CredentialVault, OLSERA_PROVIDER

logger = logging.getLogger(__name__)


def _qty(value: Any) -> Decimal:
    """Parse a POS quantity; missing values count as zero."""
    if value is None or value == "":
        return Decimal("0")
    try:
        result = Decimal(str(value))
    except InvalidOperation:
        raise UpstreamSyncError(f"Malformed quantity in stock movement: {value!r}")
    if not result.is_finite():
        raise UpstreamSyncError(f"Malformed quantity in stock movement: {value!r}")
    return result


@dataclass
class ConsumptionRecord:
    """One product's stock movement for a day, as reported by the POS."""

    product_id: str
    product_name: str
    product_sku: Optional[str]
    product_group: ProductGroup
    beginning_qty: Decimal
    sales_qty: Decimal
    outgoing_qty: Decimal

    @property
    def expected_out(self) -> Decimal:
        return self.sales_qty + self.outgoing_qty

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "ConsumptionRecord":
        try:
            product_id = payload["product_id"]
            product_name = payload["product_name"]
        except (KeyError, TypeError):
            raise UpstreamSyncError("Stock movement record is missing product_id or product_name")

        if product_id is None or str(product_id).strip() == "":
            raise UpstreamSyncError("Stock movement record has an empty product_id")
        if not isinstance(product_name, str) or not product_name.strip():
            raise UpstreamSyncError(f"Stock movement record {product_id!r} has no product_name")

        return cls(
            product_id=str(product_id),
            product_name=product_name,
            product_sku=payload.get("product_sku") or None,
            product_group=ProductGroup.from_label(payload.get("product_group_name")),
            beginning_qty=_qty(payload.get("beginning_qty")),
            sales_qty=_qty(payload.get("sum_sales_qty")),
            outgoing_qty=_qty(payload.get("sum_outgoing_qty")),
        )


class OlseraInventoryClient:
    """Fetches paginated stock movement from the Olsera open API.

    A 401 on a page triggers one re-authentication and one retry of that
    page. Everything else is terminal.
    """

    provider = OLSERA_PROVIDER

    def __init__(
        self,
        vault: CredentialVault,
        http: httpx.Client,
        settings: Optional[Settings] = None,
    ):
        self.vault = vault
        self.http = http
        self.settings = settings or default_settings

    @staticmethod
    def format_date(day: date) -> str:
        return day.strftime("%Y-%m-%d")

    def fetch_daily_consumption(self, day: date) -> List[ConsumptionRecord]:
        """Raw-material stock movement for a single calendar day."""
        formatted = self.format_date(day)
        logger.info(f"Fetching stock movement for date: {formatted}")
        return self.fetch_stock_movement(formatted, formatted)

    def fetch_stock_movement(self, start_date: str, end_date: str) -> List[ConsumptionRecord]:
        """Fetch all pages for a date range and keep raw materials only."""
        all_items: List[ConsumptionRecord] = []
        current_page = 1
        last_page = 1

        while current_page <= last_page:
            body = self._get_page(start_date, end_date, current_page)

            data = body.get("data")
            meta = body.get("meta") or {}
            if not isinstance(data, list):
                raise UpstreamSyncError("Stock movement response has no data list", provider_status=200)
            if not isinstance(meta, dict):
                raise UpstreamSyncError("Stock movement response has invalid meta", provider_status=200)

            records = [ConsumptionRecord.from_payload(item) for item in data]
            raw_materials = [r for r in records if r.product_group == ProductGroup.RAW_MATERIAL]
            logger.info(
                f"Page {current_page}: got {len(records)} items, "
                f"{len(raw_materials)} raw materials"
            )
            all_items.extend(raw_materials)

            try:
                last_page = int(meta.get("last_page", current_page))
            except (TypeError, ValueError):
                raise UpstreamSyncError("Stock movement response has invalid meta.last_page", provider_status=200)
            current_page += 1

        logger.info(f"Total raw materials fetched: {len(all_items)}")
        return all_items

    def _get_page(self, start_date: str, end_date: str, page: int) -> Dict[str, Any]:
        params = {"start_date": start_date, "end_date": end_date, "page": page}

        response = self._send(params)
        if response.status_code == 401:
            logger.warning(f"{self.provider} rejected token on page {page}, re-authenticating")
            self.vault.invalidate(self.provider)
            response = self._send(params)
            if response.status_code == 401:
                raise UpstreamSyncError(
                    f"{self.provider} rejected credentials after re-authentication",
                    provider_status=401,
                )

        if response.status_code != 200:
            logger.error(
                f"Failed to fetch stock movement page {page}: {response.status_code} - {response.text}"
            )
            raise UpstreamSyncError(
                f"Failed to fetch stock movement from {self.provider}",
                provider_status=response.status_code,
            )

        try:
            body = response.json()
        except ValueError:
            raise UpstreamSyncError(
                f"Malformed stock movement response from {self.provider}",
                provider_status=response.status_code,
            )
        if not isinstance(body, dict):
            raise UpstreamSyncError(
                f"Malformed stock movement response from {self.provider}",
                provider_status=response.status_code,
            )
        return body

    def _send(self, params: Dict[str, Any]) -> httpx.Response:
        token = self.vault.get_valid_token(self.provider)
        base_url = (
            self.vault.get_credentials(self.provider).base_url or self.settings.olsera_base_url
        ).rstrip("/")
        try:
            return self.http.get(
                f"{base_url}{self.settings.olsera_stock_movement_path}",
                params=params,
                headers={
                    "Authorization": f"Bearer {token}",
                    "Accept": "application/json",
                },
            )
        except httpx.HTTPError as e:
            logger.error(f"Stock movement request to {self.provider} failed: {e}")
            raise UpstreamSyncError(f"Could not reach {self.provider}: {e}") from e
