from __future__ import annotations

from collections import defaultdict
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from src.analytics.identity import (
    normalize_buy_in_out_record,
    normalize_rolling_record,
)
from src.models.junket import (
    CUSTOMER_TOTAL_FIELDS,
    BuyInOutRecord,
    CustomerRecord,
    RollingRecord,
    RollupTotals,
    TripAgentRecord,
    TripRecord,
    TripSharingRecord,
)
from src.schemas.reporting import CustomerNetPosition, TripFinancialValidation

DEFAULT_ROLLING_PERCENTAGE = 1.4


def _sum_totals(
    rolling_records: Iterable[RollingRecord],
    buy_in_out_records: Iterable[BuyInOutRecord],
    source: str = "records",
) -> RollupTotals:
    total_rolling = 0.0
    total_win_loss = 0.0
    total_buy_in = 0.0
    total_buy_out = 0.0
    for record in rolling_records:
        total_rolling += record.rolling_amount
        total_win_loss += record.win_loss
    for record in buy_in_out_records:
        if record.transaction_type == "buy-in":
            total_buy_in += record.amount
        elif record.transaction_type == "buy-out":
            total_buy_out += record.amount
    return RollupTotals(
        total_rolling=total_rolling,
        total_win_loss=total_win_loss,
        total_buy_in=total_buy_in,
        total_buy_out=total_buy_out,
        source=source,
    )


def rollup(
    customer_id: str,
    rolling_records: Iterable[Any],
    buy_in_out_records: Iterable[Any],
) -> RollupTotals:
    """Sum one customer's rolling and cash records.

    Records may be raw upstream dicts or canonical records; raw ones are
    normalized first so ``customer_id`` and ``customerId`` both match.
    """
    rolling = [normalize_rolling_record(record) for record in rolling_records]
    cash = [normalize_buy_in_out_record(record) for record in buy_in_out_records]
    return _sum_totals(
        (record for record in rolling if record.customer_id == customer_id),
        (record for record in cash if record.customer_id == customer_id),
    )


def rollup_by_customer(
    rolling_records: Iterable[RollingRecord],
    buy_in_out_records: Iterable[BuyInOutRecord],
) -> Dict[str, RollupTotals]:
    rolling_groups: Dict[str, List[RollingRecord]] = defaultdict(list)
    cash_groups: Dict[str, List[BuyInOutRecord]] = defaultdict(list)
    for record in rolling_records:
        rolling_groups[record.customer_id].append(record)
    for record in buy_in_out_records:
        cash_groups[record.customer_id].append(record)
    return {
        customer_id: _sum_totals(rolling_groups.get(customer_id, []), cash_groups.get(customer_id, []))
        for customer_id in set(rolling_groups) | set(cash_groups)
    }


def _merge_customer_totals(customer: CustomerRecord, local: RollupTotals) -> Dict[str, float]:
    """Backend running totals where sent, the local rollup for every other field."""
    merged: Dict[str, float] = {}
    for field in CUSTOMER_TOTAL_FIELDS:
        upstream = getattr(customer, field)
        merged[field] = getattr(local, field) if upstream is None else upstream
    return merged


def resolve_customer_totals(
    customer: CustomerRecord,
    rolling_records: Iterable[Any],
    buy_in_out_records: Iterable[Any],
) -> RollupTotals:
    # Each backend running total is authoritative when present; records fill the rest.
    if customer.has_all_upstream_totals:
        local = RollupTotals()
    else:
        local = rollup(customer.id, rolling_records, buy_in_out_records)
    return RollupTotals(**_merge_customer_totals(customer, local), source=customer.totals_source)


def apply_customer_totals(
    customers: Sequence[CustomerRecord],
    rolling_records: Sequence[RollingRecord],
    buy_in_out_records: Sequence[BuyInOutRecord],
) -> List[CustomerRecord]:
    """Fill in the totals the backend did not send from local records."""
    local_totals = rollup_by_customer(rolling_records, buy_in_out_records)
    resolved: List[CustomerRecord] = []
    for customer in customers:
        if customer.has_all_upstream_totals:
            resolved.append(customer)
            continue
        local = local_totals.get(customer.id, RollupTotals())
        resolved.append(customer.model_copy(update=_merge_customer_totals(customer, local)))
    return resolved


def rollup_trip(
    trip: TripRecord,
    rolling_records: Iterable[Any],
    buy_in_out_records: Iterable[Any],
) -> RollupTotals:
    """Trip level totals in the trip's own currency.

    Precedence: totals the backend stored on the trip, then the per-customer
    rows embedded on the trip, then local records tagged with the trip id.
    """
    upstream = (trip.total_rolling, trip.total_win_loss, trip.total_buy_in, trip.total_buy_out)
    if any(value is not None for value in upstream):
        return RollupTotals(
            total_rolling=trip.total_rolling or 0.0,
            total_win_loss=trip.total_win_loss or 0.0,
            total_buy_in=trip.total_buy_in or 0.0,
            total_buy_out=trip.total_buy_out or 0.0,
            source="upstream",
        )
    if trip.customers:
        return RollupTotals(
            total_rolling=sum(row.rolling_amount for row in trip.customers),
            total_win_loss=sum(row.win_loss for row in trip.customers),
            total_buy_in=sum(row.buy_in_amount for row in trip.customers),
            total_buy_out=sum(row.buy_out_amount for row in trip.customers),
            source="trip_customers",
        )
    rolling = [normalize_rolling_record(record) for record in rolling_records]
    cash = [normalize_buy_in_out_record(record) for record in buy_in_out_records]
    return _sum_totals(
        (record for record in rolling if record.trip_id == trip.id),
        (record for record in cash if record.trip_id == trip.id),
    )


def calculate_rolling_commission(total_rolling: float, rolling_percentage: float) -> float:
    return total_rolling * rolling_percentage / 100


def trip_rolling_commission(
    trip: TripRecord,
    rolling_records: Iterable[RollingRecord],
    customers_by_id: Optional[Mapping[str, CustomerRecord]] = None,
    totals: Optional[RollupTotals] = None,
) -> float:
    """Commission owed to customers on a trip, priced at each customer's rate."""
    customers_by_id = customers_by_id or {}

    def percentage_for(customer_id: str, row_percentage: Optional[float] = None) -> float:
        if row_percentage is not None:
            return row_percentage
        customer = customers_by_id.get(customer_id)
        return customer.rolling_percentage if customer else DEFAULT_ROLLING_PERCENTAGE

    if trip.customers:
        return sum(
            calculate_rolling_commission(
                row.rolling_amount, percentage_for(row.customer_id, row.rolling_percentage)
            )
            for row in trip.customers
        )
    trip_records = [record for record in rolling_records if record.trip_id == trip.id]
    if trip_records:
        return sum(
            calculate_rolling_commission(record.rolling_amount, percentage_for(record.customer_id))
            for record in trip_records
        )
    if totals is not None:
        return calculate_rolling_commission(totals.total_rolling, DEFAULT_ROLLING_PERCENTAGE)
    return 0.0


def calculate_trip_sharing(
    total_win_loss: float,
    total_expenses: float,
    total_rolling_commission: float,
    agents: Sequence[TripAgentRecord] = (),
    total_buy_in: float = 0.0,
    total_buy_out: float = 0.0,
    total_rolling: float = 0.0,
) -> TripSharingRecord:
    """Profit split from the house's side of the table.

    ``total_win_loss`` is customer-positive, so the house wins its negation.
    """
    house_gross_win = -total_win_loss
    house_net_win = house_gross_win - total_rolling_commission
    house_final_profit = house_net_win - total_expenses

    agent_share_percentage = sum(agent.share_percentage for agent in agents)
    breakdown = [
        agent.model_copy(
            update={"calculated_share": house_final_profit * agent.share_percentage / 100}
        )
        for agent in agents
    ]
    total_agent_share = sum(agent.calculated_share for agent in breakdown)

    return TripSharingRecord(
        total_rolling=total_rolling,
        total_win_loss=total_win_loss,
        total_expenses=total_expenses,
        total_rolling_commission=total_rolling_commission,
        total_buy_in=total_buy_in,
        total_buy_out=total_buy_out,
        net_cash_flow=total_buy_out - total_buy_in,
        net_result=house_final_profit,
        total_agent_share=total_agent_share,
        company_share=house_final_profit * (100 - agent_share_percentage) / 100,
        agent_share_percentage=agent_share_percentage,
        company_share_percentage=100 - agent_share_percentage,
        agent_breakdown=breakdown,
        source="computed",
    )


def resolve_trip_sharing(
    trip: TripRecord,
    rolling_records: Sequence[RollingRecord],
    buy_in_out_records: Sequence[BuyInOutRecord],
    customers_by_id: Optional[Mapping[str, CustomerRecord]] = None,
) -> TripSharingRecord:
    if trip.sharing is not None:
        return trip.sharing
    totals = rollup_trip(trip, rolling_records, buy_in_out_records)
    return calculate_trip_sharing(
        total_win_loss=totals.total_win_loss,
        total_expenses=sum(expense.amount for expense in trip.expenses),
        total_rolling_commission=trip_rolling_commission(
            trip, rolling_records, customers_by_id, totals
        ),
        agents=trip.agents,
        total_buy_in=totals.total_buy_in,
        total_buy_out=totals.total_buy_out,
        total_rolling=totals.total_rolling,
    )


def calculate_customer_net_position(
    win_loss: float,
    buy_in: float,
    buy_out: float,
    rolling_commission: float,
) -> CustomerNetPosition:
    net_cash_flow = buy_out - buy_in
    net_gaming_result = win_loss - rolling_commission
    return CustomerNetPosition(
        net_cash_flow=net_cash_flow,
        net_gaming_result=net_gaming_result,
        total_net_position=net_cash_flow + net_gaming_result,
    )


def validate_trip_financials(
    total_buy_in: float,
    total_buy_out: float,
    total_win_loss: float,
    total_rolling: float,
) -> TripFinancialValidation:
    warnings: List[str] = []
    errors: List[str] = []

    if total_buy_in < 0:
        errors.append("Total buy-in cannot be negative")
    if total_buy_out < 0:
        errors.append("Total buy-out cannot be negative")
    if total_rolling < 0:
        warnings.append("Total rolling amount is negative")

    net_cash_flow = total_buy_out - total_buy_in
    if abs(net_cash_flow) > abs(total_win_loss) * 2:
        warnings.append("Net cash flow seems disproportionate to win/loss amounts")
    if total_buy_in > 0 and total_rolling == 0:
        warnings.append("Customers bought in but no rolling activity recorded")
    if total_rolling > 0 and total_buy_in == 0:
        warnings.append("Rolling activity recorded but no buy-in amounts")

    return TripFinancialValidation(is_valid=not errors, warnings=warnings, errors=errors)
