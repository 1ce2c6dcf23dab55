"""Tests for the Olsera inventory client, driven through httpx.MockTransport."""

from datetime import date
from decimal import Decimal

import httpx
import pytest

from stockrecon.core.config import Settings
from stockrecon.core.exceptions import AuthenticationError, UpstreamSyncError
from stockrecon.models.stock import ProductGroup
from stockrecon.services.credential_vault import CredentialVault
from stockrecon.services.inventory_client import ConsumptionRecord, OlseraInventoryClient


BASE_URL = "https://pos.test/api"
MOVEMENT_PATH = "/en/inventory/stockmovement"


def movement(product_id, name, group="Bahan Baku", beginning="10", sales="2", outgoing="1", sku=None):
    return {
        "product_id": product_id,
        "product_name": name,
        "product_sku": sku,
        "product_group_name": group,
        "beginning_qty": beginning,
        "sum_sales_qty": sales,
        "sum_outgoing_qty": outgoing,
    }


class FakeOlsera:
    """Scripted POS: token endpoint plus a queue of stock movement responses."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.token_requests = []
        self.movement_requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/id/token"):
            self.token_requests.append(request)
            return httpx.Response(
                200,
                json={"access_token": f"token-{len(self.token_requests)}", "expires_in": 3600},
            )

        assert request.url.path.endswith(MOVEMENT_PATH)
        self.movement_requests.append(request)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(request)
        return response


def page(items, current=1, last=1):
    return httpx.Response(200, json={"data": items, "meta": {"current_page": current, "last_page": last}})


@pytest.fixture
def client_settings():
    return Settings(
        olsera_base_url=BASE_URL,
        olsera_app_id="app",
        olsera_secret_key="secret",
    )


@pytest.fixture
def build_client(db_session, client_settings):
    def _build(fake: FakeOlsera) -> OlseraInventoryClient:
        http = httpx.Client(transport=httpx.MockTransport(fake))
        vault = CredentialVault(db_session, http, settings=client_settings)
        return OlseraInventoryClient(vault, http, settings=client_settings)

    return _build


class TestConsumptionRecord:
    def test_expected_out_is_sales_plus_outgoing(self):
        record = ConsumptionRecord.from_payload(movement(7, "Flour", sales="2.5", outgoing="1.25"))
        assert record.product_id == "7"
        assert record.expected_out == Decimal("3.75")
        assert record.product_group == ProductGroup.RAW_MATERIAL

    def test_missing_quantities_default_to_zero(self):
        record = ConsumptionRecord.from_payload(
            {"product_id": "1", "product_name": "Salt", "product_group_name": "Bahan Baku"}
        )
        assert record.beginning_qty == Decimal("0")
        assert record.expected_out == Decimal("0")

    def test_unknown_group_maps_to_other(self):
        record = ConsumptionRecord.from_payload(movement(1, "Mystery", group="Packaging"))
        assert record.product_group == ProductGroup.OTHER

    def test_missing_product_id_is_malformed(self):
        with pytest.raises(UpstreamSyncError):
            ConsumptionRecord.from_payload({"product_name": "No id"})

    def test_non_numeric_quantity_is_malformed(self):
        with pytest.raises(UpstreamSyncError):
            ConsumptionRecord.from_payload(movement(1, "Flour", beginning="lots"))

    @pytest.mark.parametrize("quantity", ["NaN", "Infinity"])
    def test_non_finite_quantity_is_malformed(self, quantity):
        with pytest.raises(UpstreamSyncError):
            ConsumptionRecord.from_payload(movement(1, "Flour", sales=quantity))

    @pytest.mark.parametrize("product_id", [None, "", "   "])
    def test_empty_product_id_is_malformed(self, product_id):
        with pytest.raises(UpstreamSyncError):
            ConsumptionRecord.from_payload(movement(product_id, "Flour"))

    @pytest.mark.parametrize("product_name", [None, "", 42])
    def test_missing_product_name_is_malformed(self, product_name):
        with pytest.raises(UpstreamSyncError):
            ConsumptionRecord.from_payload(movement(1, product_name))

    @pytest.mark.parametrize("label", [5, ["Bahan Baku"], {"name": "Bahan Baku"}])
    def test_non_string_group_maps_to_other(self, label):
        record = ConsumptionRecord.from_payload(movement(1, "Flour", group=label))
        assert record.product_group == ProductGroup.OTHER


class TestFetchDailyConsumption:
    def test_requests_single_day_with_bearer_token(self, build_client):
        fake = FakeOlsera([page([movement(1, "Flour")])])
        client = build_client(fake)

        client.fetch_daily_consumption(date(2026, 3, 9))

        request = fake.movement_requests[0]
        assert request.url.params["start_date"] == "2026-03-09"
        assert request.url.params["end_date"] == "2026-03-09"
        assert request.url.params["page"] == "1"
        assert request.headers["Authorization"] == "Bearer token-1"
        assert str(request.url).startswith(f"{BASE_URL}{MOVEMENT_PATH}")

    def test_concatenates_all_pages(self, build_client):
        fake = FakeOlsera([
            page([movement(1, "Flour"), movement(2, "Sugar")], current=1, last=3),
            page([movement(3, "Butter")], current=2, last=3),
            page([movement(4, "Eggs")], current=3, last=3),
        ])
        client = build_client(fake)

        records = client.fetch_daily_consumption(date(2026, 3, 9))

        assert [r.product_id for r in records] == ["1", "2", "3", "4"]
        assert [r.url.params["page"] for r in fake.movement_requests] == ["1", "2", "3"]
        # One token for the whole pagination run
        assert len(fake.token_requests) == 1

    def test_keeps_raw_materials_only(self, build_client):
        fake = FakeOlsera([
            page([
                movement(1, "Flour", group="Bahan Baku"),
                movement(2, "Croissant", group="Finished Goods"),
                movement(3, "Napkin", group=None),
            ])
        ])
        client = build_client(fake)

        records = client.fetch_daily_consumption(date(2026, 3, 9))

        assert [r.product_name for r in records] == ["Flour"]

    def test_empty_day_returns_empty_list(self, build_client):
        fake = FakeOlsera([page([])])
        client = build_client(fake)

        assert client.fetch_daily_consumption(date(2026, 3, 9)) == []


class TestRetryAndErrors:
    def test_401_reauthenticates_and_retries_once(self, build_client):
        fake = FakeOlsera([
            httpx.Response(401, json={"message": "Unauthenticated"}),
            page([movement(1, "Flour")]),
        ])
        client = build_client(fake)

        records = client.fetch_daily_consumption(date(2026, 3, 9))

        assert len(records) == 1
        assert len(fake.movement_requests) == 2
        assert len(fake.token_requests) == 2
        assert fake.movement_requests[1].headers["Authorization"] == "Bearer token-2"

    def test_second_401_is_terminal(self, build_client):
        fake = FakeOlsera([
            httpx.Response(401),
            httpx.Response(401),
            page([movement(1, "Flour")]),
        ])
        client = build_client(fake)

        with pytest.raises(UpstreamSyncError) as exc_info:
            client.fetch_daily_consumption(date(2026, 3, 9))

        assert exc_info.value.provider_status == 401
        assert len(fake.movement_requests) == 2

    def test_server_error_is_not_retried(self, build_client):
        fake = FakeOlsera([httpx.Response(503, text="maintenance")])
        client = build_client(fake)

        with pytest.raises(UpstreamSyncError) as exc_info:
            client.fetch_daily_consumption(date(2026, 3, 9))

        assert exc_info.value.provider_status == 503
        assert len(fake.movement_requests) == 1

    def test_error_on_later_page_discards_everything(self, build_client):
        fake = FakeOlsera([
            page([movement(1, "Flour")], current=1, last=2),
            httpx.Response(500),
        ])
        client = build_client(fake)

        with pytest.raises(UpstreamSyncError):
            client.fetch_daily_consumption(date(2026, 3, 9))

    def test_timeout_becomes_upstream_error(self, build_client):
        def timeout(request):
            raise httpx.ReadTimeout("timed out", request=request)

        fake = FakeOlsera([timeout])
        client = build_client(fake)

        with pytest.raises(UpstreamSyncError) as exc_info:
            client.fetch_daily_consumption(date(2026, 3, 9))

        assert exc_info.value.provider_status is None

    def test_body_without_data_list_is_malformed(self, build_client):
        fake = FakeOlsera([httpx.Response(200, json={"meta": {"last_page": 1}})])
        client = build_client(fake)

        with pytest.raises(UpstreamSyncError):
            client.fetch_daily_consumption(date(2026, 3, 9))

    @pytest.mark.parametrize("meta", [["x"], "last", 3])
    def test_meta_must_be_an_object(self, build_client, meta):
        fake = FakeOlsera([httpx.Response(200, json={"data": [], "meta": meta})])
        client = build_client(fake)

        with pytest.raises(UpstreamSyncError):
            client.fetch_daily_consumption(date(2026, 3, 9))

    def test_null_product_fields_fail_the_sync(self, build_client):
        fake = FakeOlsera([
            page([{"product_id": None, "product_name": None, "product_group_name": "Bahan Baku"}])
        ])
        client = build_client(fake)

        with pytest.raises(UpstreamSyncError):
            client.fetch_daily_consumption(date(2026, 3, 9))

    def test_non_json_body_is_malformed(self, build_client):
        fake = FakeOlsera([httpx.Response(200, text="<html>oops</html>")])
        client = build_client(fake)

        with pytest.raises(UpstreamSyncError):
            client.fetch_daily_consumption(date(2026, 3, 9))

    def test_authentication_failure_propagates(self, db_session, client_settings):
        def handler(request):
            return httpx.Response(403, json={"error": "forbidden"})

        http = httpx.Client(transport=httpx.MockTransport(handler))
        vault = CredentialVault(db_session, http, settings=client_settings)
        client = OlseraInventoryClient(vault, http, settings=client_settings)

        with pytest.raises(AuthenticationError):
            client.fetch_daily_consumption(date(2026, 3, 9))
