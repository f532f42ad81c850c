from __future__ import annotations

from typing import Any, Dict, List

import pytest

from src.core.config import Settings
from src.core.errors import BadRequestError, NotFoundError
from src.core.junket_api import ApiResult
from src.schemas.reporting import ReportFilters
from src.services.fx_service import FxService
from src.services.reporting_service import ReportingService

TRIP = {
    "id": "trip-1",
    "name": "Macau March",
    "currency": "HKD",
    "status": "active",
    "customers": [{"customer_id": "c-1", "customer_name": "Alice"}],
}


def ok(data: Any) -> ApiResult:
    return ApiResult(success=True, data=data, status_code=200)


def failed(message: str = "HTTP error! status: 500") -> ApiResult:
    return ApiResult.failure(message, status_code=500)


class StubJunketRepository:
    """Answers every read from a canned table; unknown reads fail."""

    def __init__(self, responses: Dict[str, ApiResult]) -> None:
        self.responses = responses
        self.calls: List[str] = []

    def _answer(self, name: str) -> ApiResult:
        self.calls.append(name)
        return self.responses.get(name, failed(f"{name} unavailable"))

    def list_customers(self) -> ApiResult:
        return self._answer("customers")

    def list_agents(self) -> ApiResult:
        return self._answer("agents")

    def list_trips(self) -> ApiResult:
        return self._answer("trips")

    def get_trip(self, trip_id: str) -> ApiResult:
        return self._answer(f"trip:{trip_id}")

    def list_rolling_records(self, trip_id: str | None = None) -> ApiResult:
        return self._answer("rolling_records")

    def list_transactions(self) -> ApiResult:
        return self._answer("transactions")

    def get_trip_customer_stats(self, trip_id: str) -> ApiResult:
        return self._answer(f"customer-stats:{trip_id}")

    def list_trip_customers(self, trip_id: str) -> ApiResult:
        return self._answer(f"trip-customers:{trip_id}")

    def list_trip_transactions(self, trip_id: str) -> ApiResult:
        return self._answer(f"trip-transactions:{trip_id}")


class StubFxRepository:
    def list_latest_rates(self, limit: int = 500) -> List[Any]:
        _ = limit
        return []


def make_service(responses: Dict[str, ApiResult]) -> ReportingService:
    fx_service = FxService(StubFxRepository())
    fx_service.settings = Settings(
        GLOBAL_CURRENCY="HKD",
        FALLBACK_TRIP_CURRENCY="HKD",
        FX_STATIC_RATES="USD/HKD=7.8",
    )
    service = ReportingService(StubJunketRepository(responses), fx_service)
    service.settings = Settings(FETCH_MAX_WORKERS=4, RECENT_ACTIVITY_HOURS=24)
    return service


def test_trip_customers_stop_at_first_successful_empty_source():
    service = make_service(
        {
            "trip:trip-1": ok(TRIP),
            "customer-stats:trip-1": failed("HTTP error! status: 403"),
            "trip-customers:trip-1": ok([]),
            "customers": ok([{"id": "c-1", "name": "Alice"}]),
            "trip-transactions:trip-1": ok([]),
            "rolling_records": ok([]),
        }
    )

    response = service.get_trip_customers("trip-1")

    assert response.customers == []
    assert response.source == "trip-customers"
    assert response.attempts == 2
    assert response.degraded is False
    assert "customers" not in service.repository.calls


def test_trip_customers_from_generic_listing_use_trip_records():
    service = make_service(
        {
            "trip:trip-1": ok(TRIP),
            "customers": ok(
                [
                    {"id": "c-1", "name": "Alice", "totalRolling": 99999},
                    {"id": "c-9", "name": "Other"},
                ]
            ),
            "trip-transactions:trip-1": ok(
                [
                    {
                        "customer_id": "c-1",
                        "trip_id": "trip-1",
                        "transaction_type": "buy-in",
                        "amount": 300,
                    },
                    {
                        "customer_id": "c-1",
                        "trip_id": "trip-1",
                        "transaction_type": "rolling",
                        "amount": 9,
                    },
                ]
            ),
            "rolling_records": ok(
                [
                    {"customer_id": "c-1", "trip_id": "trip-1", "rolling_amount": 500, "win_loss": -100},
                    {"customer_id": "c-1", "trip_id": "trip-2", "rolling_amount": 700, "win_loss": 0},
                ]
            ),
        }
    )

    response = service.get_trip_customers("trip-1")

    assert response.source == "customers"
    assert response.attempts == 3
    assert [customer.customer_id for customer in response.customers] == ["c-1"]
    customer = response.customers[0]
    assert customer.rolling_amount == pytest.approx(500)
    assert customer.win_loss == pytest.approx(-100)
    assert customer.buy_in_amount == pytest.approx(300)
    assert customer.net_cash_flow == pytest.approx(-300)
    assert customer.rolling_commission == pytest.approx(7)
    assert response.transactions_count == 1
    assert response.rolling_records_count == 1


def test_trip_customers_degraded_when_dependent_fetch_fails():
    service = make_service(
        {
            "trip:trip-1": ok(TRIP),
            "customer-stats:trip-1": ok(
                [{"customerId": "c-1", "customerName": "Alice", "rollingAmount": 10}]
            ),
            "rolling_records": ok([]),
        }
    )

    response = service.get_trip_customers("trip-1")

    assert response.source == "customer-stats"
    assert response.customers[0].rolling_amount == 10
    assert response.degraded is True


def test_trip_lookup_falls_back_to_listing():
    service = make_service(
        {
            "trips": ok({"data": [{"id": "trip-0"}, {**TRIP, "currency": "USD"}]}),
            "customer-stats:trip-1": ok([{"customer_id": "c-1", "rolling_amount": 100}]),
            "trip-transactions:trip-1": ok([]),
            "rolling_records": ok([]),
        }
    )

    response = service.get_trip_customers("trip-1")

    assert response.trip_id == "trip-1"
    assert response.customers[0].rolling_amount == pytest.approx(780)


def test_unknown_trip_raises_not_found():
    service = make_service({"trips": ok([{"id": "trip-0"}])})

    with pytest.raises(NotFoundError) as exc_info:
        service.get_trip_financials("trip-404")
    assert exc_info.value.details == {"tripId": "trip-404"}


def test_trip_financials_compute_sharing_from_embedded_rows():
    trip = {
        "id": "trip-1",
        "name": "Macau March",
        "currency": "HKD",
        "customers": [
            {
                "customer_id": "c-1",
                "rolling_amount": 1000,
                "win_loss": -200,
                "buy_in_amount": 500,
                "buy_out_amount": 300,
            }
        ],
        "agents": [{"agentId": "a-1", "agentName": "Ann", "sharePercentage": 30}],
        "expenses": [{"category": "hotel", "amount": 20}],
    }
    service = make_service(
        {
            "trip:trip-1": ok(trip),
            "trip-transactions:trip-1": ok([]),
            "rolling_records": ok([]),
        }
    )

    financials = service.get_trip_financials("trip-1")

    assert financials.totals_source == "trip_customers"
    assert financials.total_rolling == 1000
    assert financials.net_cash_flow == -200
    assert financials.total_expenses == 20
    assert financials.total_rolling_commission == pytest.approx(14)
    assert financials.sharing.source == "computed"
    assert financials.sharing.net_result == pytest.approx(166)
    assert financials.sharing.total_agent_share == pytest.approx(49.8)
    assert financials.sharing.company_share == pytest.approx(116.2)
    assert financials.sharing.agent_breakdown[0].agent_name == "Ann"
    assert financials.missing_rate_pairs == []


def test_dashboard_reports_failed_sources_and_keeps_going():
    service = make_service(
        {
            "customers": ok([{"id": "c-1", "name": "Alice", "agentId": "a-1", "totalRolling": 1000}]),
            "trips": ok([]),
            "rolling_records": ok([]),
            "transactions": ok([]),
        }
    )

    metrics = service.get_dashboard_metrics(ReportFilters())

    assert metrics.data_quality.failed_sources == ["agents"]
    assert metrics.total_customers == 1
    assert metrics.total_agents == 0
    assert metrics.ranked_customers[0].total_rolling == 1000


def test_dashboard_converts_to_requested_currency():
    service = make_service(
        {
            "customers": ok([]),
            "agents": ok([]),
            "trips": ok(
                [
                    {
                        "id": "trip-1",
                        "currency": "USD",
                        "sharing": {"totalRolling": 100, "companyShare": 10},
                    }
                ]
            ),
            "rolling_records": ok([]),
            "transactions": ok([]),
        }
    )

    in_hkd = service.get_dashboard_metrics(ReportFilters())
    in_usd = service.get_dashboard_metrics(ReportFilters(currency="USD"))

    assert in_hkd.total_rolling == pytest.approx(780)
    assert in_usd.currency == "USD"
    assert in_usd.total_rolling == pytest.approx(100)


def test_agent_scope_without_agent_id_is_rejected_before_fetching():
    service = make_service({})

    with pytest.raises(BadRequestError):
        service.get_dashboard_metrics(ReportFilters(role="agent"))
    assert service.repository.calls == []


def test_list_customers_is_scoped_and_ranked():
    service = make_service(
        {
            "customers": ok(
                [
                    {"id": "c-1", "name": "Alice", "agentId": "a-1", "totalRolling": 100},
                    {"id": "c-2", "name": "Bob", "agentId": "a-1", "totalRolling": 300},
                    {"id": "c-3", "name": "Carol", "agentId": "a-2", "totalRolling": 900},
                ]
            ),
            "agents": ok([]),
            "trips": ok([]),
            "rolling_records": ok([]),
            "transactions": ok([]),
        }
    )

    customers, failed_sources = service.list_customers(ReportFilters(role="agent", agent_id="a-1"))

    assert [customer.id for customer in customers] == ["c-2", "c-1"]
    assert failed_sources == []


def test_trip_records_without_trip_tag_are_ignored():
    service = make_service(
        {
            "trip:trip-1": ok(TRIP),
            "customers": ok([{"id": "c-1", "name": "Alice"}]),
            "trip-transactions:trip-1": ok(
                [
                    {"customer_id": "c-1", "transaction_type": "buy-in", "amount": 999},
                    {
                        "customer_id": "c-1",
                        "trip_id": "trip-1",
                        "transaction_type": "buy-in",
                        "amount": 100,
                    },
                ]
            ),
            "rolling_records": ok(
                [
                    {"customer_id": "c-1", "rolling_amount": 5000, "win_loss": 50},
                    {"customer_id": "c-1", "trip_id": "trip-1", "rolling_amount": 200, "win_loss": -20},
                ]
            ),
        }
    )

    response = service.get_trip_customers("trip-1")

    customer = response.customers[0]
    assert customer.rolling_amount == pytest.approx(200)
    assert customer.win_loss == pytest.approx(-20)
    assert customer.buy_in_amount == pytest.approx(100)
    assert response.rolling_records_count == 1
    assert response.transactions_count == 1



def test_trip_financials_ignore_untagged_records():
    service = make_service(
        {
            "trip:trip-1": ok({"id": "trip-1", "name": "Macau March", "currency": "HKD"}),
            "trip-transactions:trip-1": ok(
                [
                    {
                        "customer_id": "c-1",
                        "trip_id": "trip-1",
                        "transaction_type": "buy-in",
                        "amount": 100,
                    }
                ]
            ),
            "rolling_records": ok(
                [
                    {"customer_id": "c-1", "rolling_amount": 5000},
                    {"customer_id": "c-1", "trip_id": "trip-1", "rolling_amount": 200},
                ]
            ),
        }
    )

    financials = service.get_trip_financials("trip-1")

    assert financials.totals_source == "records"
    assert financials.total_rolling == pytest.approx(200)
    assert financials.total_buy_in == pytest.approx(100)
