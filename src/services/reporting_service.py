from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from src.analytics.currency import CurrencyConverter
from src.analytics.dashboard_metrics import (
    ReportScope,
    calculate_dashboard_metrics,
    rank_customers,
    summarize_customers,
)
from src.analytics.identity import (
    normalize_agent,
    normalize_buy_in_out_records,
    normalize_customer,
    normalize_identity,
    normalize_rolling_record,
    normalize_trip,
    normalize_trip_customer,
)
from src.analytics.rollup import (
    DEFAULT_ROLLING_PERCENTAGE,
    calculate_rolling_commission,
    resolve_trip_sharing,
    rollup,
    rollup_trip,
    validate_trip_financials,
)
from src.analytics.source_fallback import (
    FallbackResolution,
    SourceStrategy,
    fetch_concurrently,
    resolve_with_fallback,
    result_failed,
    result_items,
)
from src.core.config import get_settings
from src.core.errors import BadRequestError, NotFoundError
from src.core.junket_api import ApiResult
from src.models.junket import (
    BuyInOutRecord,
    ReportSnapshot,
    RollingRecord,
    TripCustomerRecord,
    TripRecord,
)
from src.repositories.junket_repository import JunketRepository
from src.schemas.reporting import (
    CustomerSummary,
    DashboardMetrics,
    ReportFilters,
    TripAgentShare,
    TripCustomerSummary,
    TripCustomersResponse,
    TripFinancialsResponse,
    TripSharingSummary,
)
from src.services.fx_service import FxService

logger = logging.getLogger(__name__)

SNAPSHOT_SOURCES = ("customers", "agents", "trips", "rolling_records", "buy_in_out_records")


class ReportingService:
    def __init__(self, repository: JunketRepository, fx_service: FxService) -> None:
        self.repository = repository
        self.fx_service = fx_service
        self.settings = get_settings()

    @staticmethod
    def _resolve_scope(filters: ReportFilters) -> ReportScope:
        scope = ReportScope(role=filters.role, agent_id=filters.agent_id)
        if scope.is_agent_scoped and not filters.agent_id:
            raise BadRequestError(
                "agent_id is required for agent-scoped reports", details={"role": scope.role}
            )
        return scope

    def _fetch(self, fetches: Dict[str, Callable[[], Any]]) -> Dict[str, Any]:
        return fetch_concurrently(fetches, max_workers=self.settings.fetch_max_workers)

    def load_snapshot(self, currency: Optional[str] = None) -> Tuple[ReportSnapshot, CurrencyConverter]:
        results = self._fetch(
            {
                "customers": self.repository.list_customers,
                "agents": self.repository.list_agents,
                "trips": self.repository.list_trips,
                "rolling_records": self.repository.list_rolling_records,
                "buy_in_out_records": self.repository.list_transactions,
                "fx_rates": self.fx_service.list_rate_rows,
            }
        )
        failed_sources = [name for name in SNAPSHOT_SOURCES if result_failed(results[name])]
        for name in failed_sources:
            message = getattr(results[name], "message", None)
            logger.warning(
                "Source %s unavailable, continuing with an empty collection: %s", name, message
            )

        snapshot = ReportSnapshot(
            customers=[normalize_customer(raw) for raw in result_items(results["customers"])],
            agents=[normalize_agent(raw) for raw in result_items(results["agents"])],
            trips=[normalize_trip(raw) for raw in result_items(results["trips"])],
            rolling_records=[
                normalize_rolling_record(raw) for raw in result_items(results["rolling_records"])
            ],
            buy_in_out_records=normalize_buy_in_out_records(result_items(results["buy_in_out_records"])),
            failed_sources=failed_sources,
        )
        converter = self.fx_service.build_converter(currency, rows=result_items(results["fx_rates"]))
        return snapshot, converter

    def get_dashboard_metrics(self, filters: ReportFilters) -> DashboardMetrics:
        scope = self._resolve_scope(filters)
        snapshot, converter = self.load_snapshot(filters.currency)
        metrics = calculate_dashboard_metrics(
            snapshot,
            converter,
            scope=scope,
            sort_by=filters.sort_by,
            sort_order=filters.sort_order,
            recent_window=timedelta(hours=self.settings.recent_activity_hours),
        )
        logger.info(
            "Dashboard metrics computed role=%s customers=%s trips=%s failed_sources=%s",
            scope.role,
            metrics.total_customers,
            metrics.total_trips,
            len(metrics.data_quality.failed_sources),
        )
        return metrics

    def list_customers(self, filters: ReportFilters) -> Tuple[List[CustomerSummary], List[str]]:
        scope = self._resolve_scope(filters)
        snapshot, converter = self.load_snapshot(filters.currency)
        summaries = summarize_customers(snapshot, converter, scope)
        return rank_customers(summaries, filters.sort_by, filters.sort_order), snapshot.failed_sources

    def _load_trip(self, trip_id: str) -> TripRecord:
        def find_trip(data: Any) -> Any:
            if isinstance(data, dict) and normalize_identity(data)["id"] == trip_id:
                return data
            for raw in result_items(ApiResult(success=True, data=data)):
                if normalize_identity(raw)["id"] == trip_id:
                    return raw
            raise LookupError(f"trip {trip_id} not in listing")

        resolution = resolve_with_fallback(
            f"trip {trip_id}",
            [
                SourceStrategy("trip", lambda: self.repository.get_trip(trip_id)),
                SourceStrategy("trips", self.repository.list_trips),
            ],
            extract=find_trip,
        )
        if not resolution.succeeded or not resolution.data:
            raise NotFoundError("Trip not found", details={"tripId": trip_id})
        data = resolution.data
        if isinstance(data, list):
            data = data[0]
        return normalize_trip(data)

    def _trip_customer_strategies(self, trip: TripRecord) -> List[SourceStrategy]:
        def generic_customers() -> ApiResult:
            result = self.repository.list_customers()
            if not result.success:
                return result
            trip_customer_ids = {row.customer_id for row in trip.customers}
            if not trip_customer_ids:
                return ApiResult.failure("trip carries no customer ids to match against")
            matched = [
                raw for raw in result_items(result) if normalize_identity(raw)["id"] in trip_customer_ids
            ]
            return ApiResult(success=True, data=matched)

        def embedded_customers() -> ApiResult:
            if not trip.customers:
                return ApiResult.failure("trip has no embedded customers")
            return ApiResult(success=True, data=list(trip.customers))

        return [
            SourceStrategy("customer-stats", lambda: self.repository.get_trip_customer_stats(trip.id)),
            SourceStrategy("trip-customers", lambda: self.repository.list_trip_customers(trip.id)),
            SourceStrategy("customers", generic_customers),
            SourceStrategy("embedded", embedded_customers),
        ]

    def _load_trip_records(
        self, trip_id: str, include_rates: bool = False
    ) -> Tuple[List[RollingRecord], List[BuyInOutRecord], List[str], Optional[List[Any]]]:
        fetches: Dict[str, Callable[[], Any]] = {
            "transactions": lambda: self.repository.list_trip_transactions(trip_id),
            "rolling_records": lambda: self.repository.list_rolling_records(trip_id),
        }
        if include_rates:
            fetches["fx_rates"] = self.fx_service.list_rate_rows
        results = self._fetch(fetches)

        failed = [name for name in ("transactions", "rolling_records") if result_failed(results[name])]
        for name in failed:
            logger.warning("Dependent fetch %s for trip %s failed; treating as empty", name, trip_id)

        # Endpoints may ignore the trip filter; rows not tagged with this trip are dropped.
        rolling = [
            record
            for record in map(normalize_rolling_record, result_items(results["rolling_records"]))
            if record.trip_id == trip_id
        ]
        cash = [
            record
            for record in normalize_buy_in_out_records(result_items(results["transactions"]))
            if record.trip_id == trip_id
        ]
        rates = result_items(results["fx_rates"]) if include_rates else None
        return rolling, cash, failed, rates

    def get_trip_customers(self, trip_id: str, currency: Optional[str] = None) -> TripCustomersResponse:
        trip = self._load_trip(trip_id)
        resolution = resolve_with_fallback(
            f"customers for trip {trip.id}", self._trip_customer_strategies(trip)
        )
        rolling, cash, failed, rates = self._load_trip_records(trip.id, include_rates=True)
        converter = self.fx_service.build_converter(currency, rows=rates)

        rows = self._trip_customer_rows(resolution, rolling, cash)
        customers = [self._summarize_trip_customer(row, trip, converter) for row in rows]
        return TripCustomersResponse(
            trip_id=trip.id,
            currency=converter.global_currency,
            source=resolution.source or "none",
            attempts=resolution.attempts,
            customers=customers,
            transactions_count=len(cash),
            rolling_records_count=len(rolling),
            degraded=not resolution.succeeded or bool(failed),
        )

    @staticmethod
    def _trip_customer_rows(
        resolution: FallbackResolution,
        rolling: List[RollingRecord],
        cash: List[BuyInOutRecord],
    ) -> List[TripCustomerRecord]:
        rows = [normalize_trip_customer(raw) for raw in resolution.items]
        if resolution.source != "customers":
            return rows
        # The generic listing only carries lifetime totals; trip figures come from trip records.
        local_rows: List[TripCustomerRecord] = []
        for row in rows:
            totals = rollup(row.customer_id, rolling, cash)
            local_rows.append(
                row.model_copy(
                    update={
                        "rolling_amount": totals.total_rolling,
                        "win_loss": totals.total_win_loss,
                        "buy_in_amount": totals.total_buy_in,
                        "buy_out_amount": totals.total_buy_out,
                        "net_cash_flow": totals.net_cash_flow,
                    }
                )
            )
        return local_rows

    @staticmethod
    def _summarize_trip_customer(
        row: TripCustomerRecord, trip: TripRecord, converter: CurrencyConverter
    ) -> TripCustomerSummary:
        rolling_amount = converter.convert(row.rolling_amount, trip=trip)
        percentage = row.rolling_percentage
        if percentage is None:
            percentage = DEFAULT_ROLLING_PERCENTAGE
        return TripCustomerSummary(
            customer_id=row.customer_id,
            customer_name=row.customer_name,
            rolling_amount=rolling_amount,
            win_loss=converter.convert(row.win_loss, trip=trip),
            buy_in_amount=converter.convert(row.buy_in_amount, trip=trip),
            buy_out_amount=converter.convert(row.buy_out_amount, trip=trip),
            net_cash_flow=converter.convert(row.net_cash_flow, trip=trip),
            rolling_commission=calculate_rolling_commission(rolling_amount, percentage),
            is_active=row.is_active,
        )

    def get_trip_financials(
        self, trip_id: str, currency: Optional[str] = None
    ) -> TripFinancialsResponse:
        trip = self._load_trip(trip_id)
        rolling, cash, _, rates = self._load_trip_records(trip.id, include_rates=True)
        converter = self.fx_service.build_converter(currency, rows=rates)

        totals = rollup_trip(trip, rolling, cash)
        sharing = resolve_trip_sharing(trip, rolling, cash)
        validation = validate_trip_financials(
            totals.total_buy_in, totals.total_buy_out, totals.total_win_loss, totals.total_rolling
        )
        converted_totals = converter.convert_totals(totals, trip=trip)
        converted_sharing = converter.convert_sharing(sharing, trip)

        return TripFinancialsResponse(
            trip_id=trip.id,
            trip_name=trip.name,
            status=trip.status,
            native_currency=converter.source_currency(trip=trip),
            currency=converter.global_currency,
            totals_source=totals.source,
            total_rolling=converted_totals.total_rolling,
            total_win_loss=converted_totals.total_win_loss,
            total_buy_in=converted_totals.total_buy_in,
            total_buy_out=converted_totals.total_buy_out,
            net_cash_flow=converted_totals.net_cash_flow,
            total_expenses=converter.convert(
                sum(expense.amount for expense in trip.expenses), trip=trip
            ),
            total_rolling_commission=converted_sharing.total_rolling_commission,
            sharing=TripSharingSummary(
                **converted_sharing.model_dump(exclude={"agent_breakdown", "currency"}),
                agent_breakdown=[
                    TripAgentShare(**agent.model_dump()) for agent in converted_sharing.agent_breakdown
                ],
            ),
            validation=validation,
            missing_rate_pairs=converter.missing_pair_labels(),
        )
