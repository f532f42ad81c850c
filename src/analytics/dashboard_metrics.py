from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence

from src.analytics.currency import CurrencyConverter
from src.analytics.identity import is_synthetic_identity
from src.analytics.rollup import (
    apply_customer_totals,
    calculate_customer_net_position,
    calculate_rolling_commission,
    resolve_trip_sharing,
)
from src.models.junket import (
    AgentRecord,
    BuyInOutRecord,
    CustomerRecord,
    ReportSnapshot,
    RollingRecord,
    TripRecord,
)
from src.schemas.reporting import (
    CustomerSummary,
    DashboardMetrics,
    DataQualitySummary,
    TripStatusCounts,
)
from src.shared.numbers import safe_ratio
from src.shared.time import is_within_window, utc_now

RECENT_ACTIVITY_WINDOW = timedelta(hours=24)

SORT_BY_ALIASES: Dict[str, str] = {
    "rolling": "rolling",
    "totalrolling": "rolling",
    "total_rolling": "rolling",
    "winloss": "winloss",
    "totalwinloss": "winloss",
    "total_win_loss": "winloss",
}
SORT_ORDER_ALIASES: Dict[str, str] = {
    "asc": "asc",
    "ascending": "asc",
    "desc": "desc",
    "descending": "desc",
}
UNRESTRICTED_ROLES = frozenset({"admin", "boss", "staff"})


@dataclass(frozen=True)
class ReportScope:
    role: str = "admin"
    agent_id: Optional[str] = None

    @property
    def is_agent_scoped(self) -> bool:
        return self.role.strip().lower() not in UNRESTRICTED_ROLES

    def includes_customer(self, customer: CustomerRecord) -> bool:
        if not self.is_agent_scoped:
            return True
        return self.agent_id is not None and customer.agent_id == self.agent_id

    def includes_trip(self, trip: TripRecord) -> bool:
        if not self.is_agent_scoped:
            return True
        if self.agent_id is None:
            return False
        if any(agent.agent_id == self.agent_id for agent in trip.agents):
            return True
        return trip.agent_id == self.agent_id

    def includes_agent(self, agent: AgentRecord) -> bool:
        return not self.is_agent_scoped or agent.id == self.agent_id


def normalize_sort_by(sort_by: str) -> str:
    key = (sort_by or "").strip().lower()
    if key not in SORT_BY_ALIASES:
        raise ValueError(f"Unsupported sort_by value: {sort_by}")
    return SORT_BY_ALIASES[key]


def normalize_sort_order(sort_order: str) -> str:
    key = (sort_order or "").strip().lower()
    if key not in SORT_ORDER_ALIASES:
        raise ValueError(f"Unsupported sort_order value: {sort_order}")
    return SORT_ORDER_ALIASES[key]


def scope_snapshot(snapshot: ReportSnapshot, scope: ReportScope) -> ReportSnapshot:
    """Drop everything the caller may not see, before any totals are taken."""
    if not scope.is_agent_scoped:
        return snapshot
    customers = [customer for customer in snapshot.customers if scope.includes_customer(customer)]
    trips = [trip for trip in snapshot.trips if scope.includes_trip(trip)]
    customer_ids = {customer.id for customer in customers}
    return snapshot.model_copy(
        update={
            "customers": customers,
            "agents": [agent for agent in snapshot.agents if scope.includes_agent(agent)],
            "trips": trips,
            "rolling_records": [
                record for record in snapshot.rolling_records if record.customer_id in customer_ids
            ],
            "buy_in_out_records": [
                record for record in snapshot.buy_in_out_records if record.customer_id in customer_ids
            ],
        }
    )


def build_customer_summary(customer: CustomerRecord, converter: CurrencyConverter) -> CustomerSummary:
    # Customer running totals are kept in the ledger currency.
    ledger = converter.fallback_currency

    def money(value: Optional[float]) -> float:
        return converter.convert(value, from_currency=ledger)

    total_rolling = money(customer.total_rolling)
    total_win_loss = money(customer.total_win_loss)
    total_buy_in = money(customer.total_buy_in)
    total_buy_out = money(customer.total_buy_out)
    rolling_commission = calculate_rolling_commission(total_rolling, customer.rolling_percentage)
    position = calculate_customer_net_position(
        total_win_loss, total_buy_in, total_buy_out, rolling_commission
    )
    return CustomerSummary(
        id=customer.id,
        name=customer.name,
        agent_id=customer.agent_id,
        agent_name=customer.agent_name,
        status=customer.status,
        is_active=customer.is_active,
        is_agent=customer.is_agent,
        rolling_percentage=customer.rolling_percentage,
        credit_limit=money(customer.credit_limit),
        available_credit=money(customer.available_credit),
        total_rolling=total_rolling,
        total_win_loss=total_win_loss,
        total_buy_in=total_buy_in,
        total_buy_out=total_buy_out,
        net_cash_flow=position.net_cash_flow,
        rolling_commission=rolling_commission,
        net_gaming_result=position.net_gaming_result,
        total_net_position=position.total_net_position,
        totals_source=customer.totals_source,
        is_synthetic_identity=is_synthetic_identity(customer),
    )


def _trips_by_id(trips: Iterable[TripRecord]) -> Dict[str, TripRecord]:
    return {trip.id: trip for trip in trips}


def resolve_customers(snapshot: ReportSnapshot, converter: CurrencyConverter) -> List[CustomerRecord]:
    """Customers with totals filled from local records where the backend sent none."""
    trips_by_id = _trips_by_id(snapshot.trips)
    ledger = converter.fallback_currency
    rolling = converter.convert_rolling_records(
        snapshot.rolling_records, trips_by_id, to_currency=ledger
    )
    cash = converter.convert_buy_in_out_records(
        snapshot.buy_in_out_records, trips_by_id, to_currency=ledger
    )
    return apply_customer_totals(snapshot.customers, rolling, cash)


def summarize_customers(
    snapshot: ReportSnapshot,
    converter: CurrencyConverter,
    scope: Optional[ReportScope] = None,
) -> List[CustomerSummary]:
    scoped = scope_snapshot(snapshot, scope or ReportScope())
    customers = resolve_customers(scoped, converter)
    return [build_customer_summary(customer, converter) for customer in customers]


def rank_customers(
    customers: Sequence[CustomerSummary],
    sort_by: str = "rolling",
    sort_order: str = "desc",
) -> List[CustomerSummary]:
    """Order customers by rolling or win/loss. Ties keep their input order."""
    field = "total_rolling" if normalize_sort_by(sort_by) == "rolling" else "total_win_loss"
    descending = normalize_sort_order(sort_order) == "desc"
    return sorted(customers, key=lambda customer: getattr(customer, field), reverse=descending)


def count_trip_statuses(trips: Iterable[TripRecord]) -> TripStatusCounts:
    counts = {"active": 0, "in_progress": 0, "completed": 0, "cancelled": 0, "other": 0}
    for trip in trips:
        key = trip.status.replace("-", "_")
        counts[key if key in counts else "other"] += 1
    return TripStatusCounts(**counts)


def count_recent(
    timestamps: Iterable[Optional[datetime]],
    now: datetime,
    window: timedelta = RECENT_ACTIVITY_WINDOW,
) -> int:
    return sum(1 for value in timestamps if is_within_window(value, now, window))


def _recent_rolling(records: Sequence[RollingRecord], now: datetime, window: timedelta) -> int:
    return count_recent((record.recorded_at for record in records), now, window)


def _recent_cash(records: Sequence[BuyInOutRecord], now: datetime, window: timedelta) -> int:
    return count_recent((record.timestamp for record in records), now, window)


def calculate_dashboard_metrics(
    snapshot: ReportSnapshot,
    converter: CurrencyConverter,
    scope: Optional[ReportScope] = None,
    sort_by: str = "rolling",
    sort_order: str = "desc",
    now: Optional[datetime] = None,
    recent_window: timedelta = RECENT_ACTIVITY_WINDOW,
) -> DashboardMetrics:
    scope = scope or ReportScope()
    now = now or utc_now()
    # Conversions look trips up by id, including ones the scope hides.
    all_trips = _trips_by_id(snapshot.trips)
    scoped = scope_snapshot(snapshot, scope)

    customers = resolve_customers(scoped, converter)
    summaries = [build_customer_summary(customer, converter) for customer in customers]
    customers_by_id = {customer.id: customer for customer in customers}

    total_rolling = 0.0
    gross_profit = 0.0
    total_expenses = 0.0
    net_profit = 0.0
    total_rolling_commission = 0.0
    computed_sharing_trips = 0
    for trip in scoped.trips:
        trip_rolling = [record for record in scoped.rolling_records if record.trip_id == trip.id]
        trip_cash = [record for record in scoped.buy_in_out_records if record.trip_id == trip.id]
        sharing = resolve_trip_sharing(trip, trip_rolling, trip_cash, customers_by_id)
        if sharing.source == "computed":
            computed_sharing_trips += 1
        converted = converter.convert_sharing(sharing, all_trips.get(trip.id, trip))
        total_rolling += converted.total_rolling
        gross_profit += converted.total_win_loss
        total_expenses += converted.total_expenses
        net_profit += converted.company_share
        total_rolling_commission += converted.total_rolling_commission

    status_counts = count_trip_statuses(scoped.trips)
    ranked = rank_customers(summaries, sort_by, sort_order)

    return DashboardMetrics(
        currency=converter.global_currency,
        scope_role=scope.role,
        scope_agent_id=scope.agent_id,
        total_rolling=total_rolling,
        gross_profit=gross_profit,
        total_expenses=total_expenses,
        net_profit=net_profit,
        total_rolling_commission=total_rolling_commission,
        house_net_win=gross_profit - total_rolling_commission,
        customer_total_win_loss=sum(summary.total_win_loss for summary in summaries),
        customer_total_buy_in=sum(summary.total_buy_in for summary in summaries),
        customer_total_buy_out=sum(summary.total_buy_out for summary in summaries),
        profit_margin=safe_ratio(net_profit, total_rolling),
        expense_ratio=safe_ratio(total_expenses, total_rolling),
        commission_ratio=safe_ratio(total_rolling_commission, total_rolling),
        total_customers=len(customers),
        active_customers=sum(1 for customer in customers if customer.is_active),
        total_agents=len(scoped.agents),
        active_agents=sum(1 for agent in scoped.agents if agent.is_active),
        total_trips=len(scoped.trips),
        planned_trips=status_counts.active,
        ongoing_trips=status_counts.in_progress,
        completed_trips=status_counts.completed,
        trip_status_counts=status_counts,
        recent_rolling_records=_recent_rolling(scoped.rolling_records, now, recent_window),
        recent_buy_in_out_records=_recent_cash(scoped.buy_in_out_records, now, recent_window),
        sort_by=normalize_sort_by(sort_by),
        sort_order=normalize_sort_order(sort_order),
        ranked_customers=ranked,
        data_quality=DataQualitySummary(
            synthetic_identities=sum(1 for summary in summaries if summary.is_synthetic_identity),
            missing_rate_pairs=converter.missing_pair_labels(),
            failed_sources=list(snapshot.failed_sources),
            computed_sharing_trips=computed_sharing_trips,
        ),
        generated_at=now,
    )
