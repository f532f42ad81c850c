from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Tuple

import pytest
from fastapi.testclient import TestClient

from src.api.dependencies import get_fx_service, get_reporting_service
from src.core.errors import BadRequestError, NotFoundError
from src.main import create_app
from src.schemas.fx import FxRate
from src.schemas.reporting import (
    CustomerSummary,
    DashboardMetrics,
    DataQualitySummary,
    ReportFilters,
    TripCustomerSummary,
    TripCustomersResponse,
    TripFinancialsResponse,
    TripFinancialValidation,
    TripSharingSummary,
    TripStatusCounts,
)

GENERATED_AT = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def make_customer_summary(customer_id: str, name: str, total_rolling: float, total_win_loss: float):
    rolling_commission = total_rolling * 0.014
    return CustomerSummary(
        id=customer_id,
        name=name,
        agent_id="agent-1",
        agent_name="Agent One",
        status="active",
        is_active=True,
        is_agent=False,
        rolling_percentage=1.4,
        credit_limit=0,
        available_credit=0,
        total_rolling=total_rolling,
        total_win_loss=total_win_loss,
        total_buy_in=100,
        total_buy_out=50,
        net_cash_flow=-50,
        rolling_commission=rolling_commission,
        net_gaming_result=total_win_loss - rolling_commission,
        total_net_position=-50 + total_win_loss - rolling_commission,
        totals_source="upstream",
    )


class FakeReportingService:
    def __init__(self) -> None:
        self.last_filters: ReportFilters | None = None

    def get_dashboard_metrics(self, filters: ReportFilters) -> DashboardMetrics:
        self.last_filters = filters
        if filters.role == "agent" and not filters.agent_id:
            raise BadRequestError("agent_id is required for agent-scoped reports")
        customers = [
            make_customer_summary("c-1", "Alice", 1000, -200),
            make_customer_summary("c-2", "Bob", 500, 300),
        ]
        return DashboardMetrics(
            currency=filters.currency or "HKD",
            scope_role=filters.role,
            scope_agent_id=filters.agent_id,
            total_rolling=1500,
            gross_profit=100,
            total_expenses=50,
            net_profit=30,
            total_rolling_commission=21,
            house_net_win=79,
            customer_total_win_loss=100,
            customer_total_buy_in=200,
            customer_total_buy_out=100,
            profit_margin=0.02,
            expense_ratio=50 / 1500,
            commission_ratio=21 / 1500,
            total_customers=2,
            active_customers=2,
            total_agents=1,
            active_agents=1,
            total_trips=1,
            planned_trips=1,
            ongoing_trips=0,
            completed_trips=0,
            trip_status_counts=TripStatusCounts(active=1),
            recent_rolling_records=0,
            recent_buy_in_out_records=0,
            sort_by="rolling",
            sort_order="desc",
            ranked_customers=customers,
            data_quality=DataQualitySummary(failed_sources=["agents"]),
            generated_at=GENERATED_AT,
        )

    def list_customers(self, filters: ReportFilters) -> Tuple[List[CustomerSummary], List[str]]:
        self.last_filters = filters
        return [
            make_customer_summary("c-1", "Alice", 1000, -200),
            make_customer_summary("c-2", "Bob", 500, 300),
            make_customer_summary("c-3", "Carol", 100, 0),
        ], []

    def get_trip_customers(self, trip_id: str, currency: str | None = None) -> TripCustomersResponse:
        if trip_id != "trip-1":
            raise NotFoundError("Trip not found", details={"tripId": trip_id})
        return TripCustomersResponse(
            trip_id=trip_id,
            currency=currency or "HKD",
            source="trip-customers",
            attempts=2,
            customers=[
                TripCustomerSummary(
                    customer_id="c-1",
                    customer_name="Alice",
                    rolling_amount=1000,
                    win_loss=-200,
                    buy_in_amount=500,
                    buy_out_amount=300,
                    net_cash_flow=-200,
                    rolling_commission=14,
                    is_active=True,
                )
            ],
            transactions_count=2,
            rolling_records_count=1,
        )

    def get_trip_financials(self, trip_id: str, currency: str | None = None) -> TripFinancialsResponse:
        if trip_id != "trip-1":
            raise NotFoundError("Trip not found", details={"tripId": trip_id})
        return TripFinancialsResponse(
            trip_id=trip_id,
            trip_name="Macau March",
            status="active",
            native_currency="HKD",
            currency=currency or "HKD",
            totals_source="trip_customers",
            total_rolling=1000,
            total_win_loss=-200,
            total_buy_in=500,
            total_buy_out=300,
            net_cash_flow=-200,
            total_expenses=20,
            total_rolling_commission=14,
            sharing=TripSharingSummary(
                total_rolling=1000,
                total_win_loss=-200,
                total_expenses=20,
                total_rolling_commission=14,
                total_buy_in=500,
                total_buy_out=300,
                net_cash_flow=-200,
                net_result=166,
                total_agent_share=0,
                company_share=166,
                agent_share_percentage=0,
                company_share_percentage=100,
                source="computed",
            ),
            validation=TripFinancialValidation(is_valid=True),
        )


class FakeFxService:
    def get_rates(self) -> List[FxRate]:
        return [
            FxRate(
                currency_pair="PESO/HKD",
                mid_rate=0.14,
                source="fx_rates",
                rate_timestamp=GENERATED_AT,
            ),
            FxRate(currency_pair="USD/HKD", mid_rate=7.8, source="static"),
        ]


@pytest.fixture()
def reporting_service() -> FakeReportingService:
    return FakeReportingService()


@pytest.fixture()
def client(reporting_service: FakeReportingService) -> TestClient:
    app = create_app()
    app.dependency_overrides[get_reporting_service] = lambda: reporting_service
    app.dependency_overrides[get_fx_service] = FakeFxService
    return TestClient(app)
