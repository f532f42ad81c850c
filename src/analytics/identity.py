"""Canonicalization of upstream records whose field names drift between endpoints.

Every alternative spelling of a logical attribute lives in one of the ordered
candidate tables below; the ``normalize_*`` helpers apply them once at the
ingestion boundary so joins downstream only ever see canonical ids.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from src.models.junket import (
    CUSTOMER_TOTAL_FIELDS,
    AgentRecord,
    BuyInOutRecord,
    CustomerRecord,
    RollingRecord,
    TripAgentRecord,
    TripCustomerRecord,
    TripExpenseRecord,
    TripRecord,
    TripSharingRecord,
)
from src.shared.numbers import optional_number
from src.shared.time import parse_timestamp

logger = logging.getLogger(__name__)

UNKNOWN_ID = "unknown-id"
SYNTHETIC_NAME_PREFIX = "Customer "

ID_CANDIDATES: Tuple[str, ...] = ("id", "customer_id", "customerId", "ID", "Id")
NAME_CANDIDATES: Tuple[str, ...] = (
    "name",
    "customer_name",
    "customerName",
    "full_name",
    "fullName",
    "Name",
    "first_name",
    "firstName",
    "last_name",
    "lastName",
    "display_name",
    "displayName",
)
# Association rows carry their own row id, so the customer reference wins.
TRIP_CUSTOMER_ID_CANDIDATES: Tuple[str, ...] = ("customer_id", "customerId")

CUSTOMER_FIELDS: Dict[str, Tuple[str, ...]] = {
    "agent_id": ("agent_id", "agentId"),
    "agent_name": ("agent_name", "agentName"),
    "status": ("status",),
    "is_active": ("is_active", "isActive"),
    "is_agent": ("is_agent", "isAgent"),
    "rolling_percentage": ("rolling_percentage", "rollingPercentage"),
    "credit_limit": ("credit_limit", "creditLimit"),
    "available_credit": ("available_credit", "availableCredit"),
    "total_rolling": ("total_rolling", "totalRolling"),
    "total_win_loss": ("total_win_loss", "totalWinLoss"),
    "total_buy_in": ("total_buy_in", "totalBuyIn"),
    "total_buy_out": ("total_buy_out", "totalBuyOut", "total_cash_out", "totalCashOut"),
}

AGENT_FIELDS: Dict[str, Tuple[str, ...]] = {
    "id": ("id", "agent_id", "agentId"),
    "name": ("name", "agent_name", "agentName", "full_name", "fullName"),
    "status": ("status",),
    "is_active": ("is_active", "isActive"),
}

TRIP_FIELDS: Dict[str, Tuple[str, ...]] = {
    "id": ("id", "trip_id", "tripId"),
    "name": ("name", "trip_name", "tripName", "title"),
    "date": ("date", "start_date", "startDate", "trip_date", "tripDate"),
    "status": ("status",),
    "currency": ("currency", "currency_code", "currencyCode"),
    "customers": ("customers", "trip_customers", "tripCustomers"),
    "agents": ("agents", "trip_agents", "tripAgents"),
    "expenses": ("expenses", "trip_expenses", "tripExpenses"),
    "agent_id": ("agent_id", "agentId"),
    "sharing": ("sharing", "trip_sharing", "tripSharing"),
    "total_rolling": ("total_rolling", "totalRolling"),
    "total_win_loss": ("total_win_loss", "totalWinLoss"),
    "total_buy_in": ("total_buy_in", "totalBuyIn"),
    "total_buy_out": ("total_buy_out", "totalBuyOut", "total_cash_out", "totalCashOut"),
}

# Per-trip rate columns: quote currency -> candidate field names.
TRIP_RATE_FIELDS: Dict[str, Tuple[str, ...]] = {
    "PESO": ("exchange_rate_peso", "exchangeRatePeso"),
    "HKD": ("exchange_rate_hkd", "exchangeRateHkd"),
    "MYR": ("exchange_rate_myr", "exchangeRateMyr"),
}

SHARING_FIELDS: Dict[str, Tuple[str, ...]] = {
    "total_rolling": ("total_rolling", "totalRolling"),
    "total_win_loss": ("total_win_loss", "totalWinLoss"),
    "total_expenses": ("total_expenses", "totalExpenses"),
    "total_rolling_commission": ("total_rolling_commission", "totalRollingCommission"),
    "total_buy_in": ("total_buy_in", "totalBuyIn"),
    "total_buy_out": ("total_buy_out", "totalBuyOut"),
    "net_cash_flow": ("net_cash_flow", "netCashFlow"),
    "net_result": ("net_result", "netResult"),
    "total_agent_share": ("total_agent_share", "totalAgentShare"),
    "company_share": ("company_share", "companyShare"),
    "agent_share_percentage": ("agent_share_percentage", "agentSharePercentage"),
    "company_share_percentage": ("company_share_percentage", "companySharePercentage"),
    "agent_breakdown": ("agent_breakdown", "agentBreakdown"),
    "currency": ("currency", "currency_code", "currencyCode"),
}

TRIP_CUSTOMER_FIELDS: Dict[str, Tuple[str, ...]] = {
    "rolling_amount": ("rolling_amount", "rollingAmount", "total_rolling", "totalRolling"),
    "win_loss": ("win_loss", "winLoss", "net_result", "netResult", "total_win_loss", "totalWinLoss"),
    "buy_in_amount": ("buy_in_amount", "buyInAmount", "total_buy_in", "totalBuyIn"),
    "buy_out_amount": (
        "buy_out_amount",
        "buyOutAmount",
        "total_cash_out",
        "totalCashOut",
        "total_buy_out",
        "totalBuyOut",
    ),
    "net_cash_flow": ("net_cash_flow", "netCashFlow"),
    "rolling_percentage": ("rolling_percentage", "rollingPercentage"),
    "is_active": ("is_active", "isActive"),
}

TRIP_AGENT_FIELDS: Dict[str, Tuple[str, ...]] = {
    "agent_id": ("agent_id", "agentId", "id"),
    "agent_name": ("agent_name", "agentName", "name"),
    "share_percentage": (
        "share_percentage",
        "sharePercentage",
        "profit_share_percentage",
        "profitSharePercentage",
    ),
    "calculated_share": ("calculated_share", "calculatedShare"),
}

EXPENSE_FIELDS: Dict[str, Tuple[str, ...]] = {
    "id": ("id", "expense_id", "expenseId"),
    "category": ("category", "expense_type", "expenseType"),
    "description": ("description", "notes"),
    "amount": ("amount",),
    "date": ("date", "expense_date", "expenseDate"),
}

ROLLING_FIELDS: Dict[str, Tuple[str, ...]] = {
    "id": ("id",),
    "customer_id": ("customer_id", "customerId"),
    "trip_id": ("trip_id", "tripId"),
    "rolling_amount": ("rolling_amount", "rollingAmount", "amount"),
    "win_loss": ("win_loss", "winLoss"),
    "game_type": ("game_type", "gameType"),
    "recorded_at": (
        "recorded_at",
        "recordedAt",
        "datetime",
        "session_start_time",
        "sessionStartTime",
        "created_at",
        "createdAt",
        "timestamp",
    ),
}

BUY_IN_OUT_FIELDS: Dict[str, Tuple[str, ...]] = {
    "id": ("id",),
    "customer_id": ("customer_id", "customerId"),
    "trip_id": ("trip_id", "tripId"),
    "transaction_type": (
        "transaction_type",
        "transactionType",
        "type",
        "exchange_type",
        "exchangeType",
    ),
    "amount": ("amount", "transaction_amount", "transactionAmount"),
    "timestamp": ("timestamp", "created_at", "createdAt", "transaction_date", "transactionDate", "date"),
}

BUY_IN_TYPES = frozenset({"buy-in", "buy_in", "buyin", "cash-to-chips"})
BUY_OUT_TYPES = frozenset({"buy-out", "buy_out", "buyout", "cash-out", "cash_out", "chips-to-cash"})

TRIP_STATUS_ALIASES: Dict[str, str] = {
    "planned": "active",
    "ongoing": "in-progress",
    "in_progress": "in-progress",
    "inprogress": "in-progress",
    "canceled": "cancelled",
}


def _is_present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def resolve_field(
    record: Mapping[str, Any],
    candidates: Sequence[str],
    nested_key: Optional[str] = None,
) -> Any:
    """Return the first present value among ``candidates``.

    When ``nested_key`` names a sub-object, the same candidates are tried
    there as well, one level deep.
    """
    for key in candidates:
        value = record.get(key)
        if _is_present(value):
            return value.strip() if isinstance(value, str) else value
    if nested_key:
        nested = record.get(nested_key)
        if isinstance(nested, Mapping):
            return resolve_field(nested, candidates)
    return None


def _resolve_text(
    record: Mapping[str, Any], candidates: Sequence[str], nested_key: Optional[str] = None
) -> Optional[str]:
    # Structured values are skipped so a nested object under "id" does not hide "customer_id".
    for key in candidates:
        value = resolve_field(record, (key,))
        if value is not None and not isinstance(value, (Mapping, list)):
            return str(value).strip() or None
    if nested_key:
        nested = record.get(nested_key)
        if isinstance(nested, Mapping):
            return _resolve_text(nested, candidates)
    return None


def _resolve_bool(record: Mapping[str, Any], candidates: Sequence[str], default: bool) -> bool:
    value = resolve_field(record, candidates)
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in {"true", "1", "yes", "y", "active"}
    return bool(value)


def _resolve_optional_number(record: Mapping[str, Any], candidates: Sequence[str]) -> Optional[float]:
    return optional_number(resolve_field(record, candidates))


def _resolve_number(record: Mapping[str, Any], candidates: Sequence[str], default: float = 0.0) -> float:
    value = _resolve_optional_number(record, candidates)
    return default if value is None else value


def _as_mapping(raw: Any) -> Mapping[str, Any]:
    if isinstance(raw, Mapping):
        return raw
    if hasattr(raw, "model_dump"):
        return raw.model_dump()
    return {}


def normalize_identity(record: Mapping[str, Any]) -> Dict[str, Any]:
    """Return a copy of ``record`` with a guaranteed ``id`` and ``name``."""
    record = _as_mapping(record)
    record_id = _resolve_text(record, ID_CANDIDATES, nested_key="customer") or UNKNOWN_ID
    name = _resolve_text(record, NAME_CANDIDATES, nested_key="customer")
    normalized = dict(record)
    normalized["id"] = record_id
    normalized["name"] = name or f"{SYNTHETIC_NAME_PREFIX}{record_id}"
    return normalized


def is_synthetic_identity(record: Any) -> bool:
    mapping = _as_mapping(record)
    record_id = str(mapping.get("id") or mapping.get("customer_id") or "")
    name = str(mapping.get("name") or mapping.get("customer_name") or "")
    return record_id == UNKNOWN_ID or name == f"{SYNTHETIC_NAME_PREFIX}{record_id}"


def normalize_customer(raw: Any) -> CustomerRecord:
    if isinstance(raw, CustomerRecord):
        return raw
    record = normalize_identity(raw)
    status = (_resolve_text(record, CUSTOMER_FIELDS["status"]) or "active").lower()
    totals = {
        field: _resolve_optional_number(record, CUSTOMER_FIELDS[field])
        for field in CUSTOMER_TOTAL_FIELDS
    }
    upstream_totals = record.get("upstream_totals")
    if not isinstance(upstream_totals, list):
        upstream_totals = [field for field in CUSTOMER_TOTAL_FIELDS if totals[field] is not None]
    agent_id = _resolve_text(record, CUSTOMER_FIELDS["agent_id"])
    if agent_id is None:
        agent_id = _resolve_text(_as_mapping(record.get("agent")), ("id",))
    return CustomerRecord(
        id=record["id"],
        name=record["name"],
        agent_id=agent_id,
        agent_name=_resolve_text(record, CUSTOMER_FIELDS["agent_name"])
        or _resolve_text(_as_mapping(record.get("agent")), ("name",)),
        status=status,
        is_active=_resolve_bool(record, CUSTOMER_FIELDS["is_active"], default=status == "active"),
        is_agent=_resolve_bool(record, CUSTOMER_FIELDS["is_agent"], default=False),
        rolling_percentage=_resolve_number(record, CUSTOMER_FIELDS["rolling_percentage"], default=1.4),
        credit_limit=_resolve_number(record, CUSTOMER_FIELDS["credit_limit"]),
        available_credit=_resolve_number(record, CUSTOMER_FIELDS["available_credit"]),
        upstream_totals=upstream_totals,
        **totals,
    )


def normalize_agent(raw: Any) -> AgentRecord:
    if isinstance(raw, AgentRecord):
        return raw
    record = _as_mapping(raw)
    agent_id = _resolve_text(record, AGENT_FIELDS["id"]) or UNKNOWN_ID
    status = (_resolve_text(record, AGENT_FIELDS["status"]) or "active").lower()
    return AgentRecord(
        id=agent_id,
        name=_resolve_text(record, AGENT_FIELDS["name"]) or f"Agent {agent_id}",
        status=status,
        is_active=_resolve_bool(record, AGENT_FIELDS["is_active"], default=status == "active"),
    )


def normalize_trip_status(value: Optional[str]) -> str:
    status = (value or "active").strip().lower()
    return TRIP_STATUS_ALIASES.get(status, status)


def normalize_trip_agent(raw: Any) -> TripAgentRecord:
    if isinstance(raw, TripAgentRecord):
        return raw
    record = _as_mapping(raw)
    nested_agent = _as_mapping(record.get("agent"))
    return TripAgentRecord(
        agent_id=_resolve_text(record, TRIP_AGENT_FIELDS["agent_id"])
        or _resolve_text(nested_agent, ("id",))
        or UNKNOWN_ID,
        agent_name=_resolve_text(record, TRIP_AGENT_FIELDS["agent_name"])
        or _resolve_text(nested_agent, ("name",))
        or "",
        share_percentage=_resolve_number(record, TRIP_AGENT_FIELDS["share_percentage"]),
        calculated_share=_resolve_number(record, TRIP_AGENT_FIELDS["calculated_share"]),
    )


def normalize_trip_expense(raw: Any) -> TripExpenseRecord:
    if isinstance(raw, TripExpenseRecord):
        return raw
    record = _as_mapping(raw)
    return TripExpenseRecord(
        id=_resolve_text(record, EXPENSE_FIELDS["id"]),
        category=(_resolve_text(record, EXPENSE_FIELDS["category"]) or "other").lower(),
        description=_resolve_text(record, EXPENSE_FIELDS["description"]) or "",
        amount=_resolve_number(record, EXPENSE_FIELDS["amount"]),
        date=_resolve_text(record, EXPENSE_FIELDS["date"]),
    )


def normalize_trip_customer(raw: Any) -> TripCustomerRecord:
    if isinstance(raw, TripCustomerRecord):
        return raw
    record = _as_mapping(raw)
    customer_id = _resolve_text(record, TRIP_CUSTOMER_ID_CANDIDATES) or _resolve_text(
        _as_mapping(record.get("customer")), ID_CANDIDATES
    )
    identity = normalize_identity(record if customer_id is None else {**record, "id": customer_id})
    buy_in = _resolve_number(record, TRIP_CUSTOMER_FIELDS["buy_in_amount"])
    buy_out = _resolve_number(record, TRIP_CUSTOMER_FIELDS["buy_out_amount"])
    net_cash_flow = _resolve_optional_number(record, TRIP_CUSTOMER_FIELDS["net_cash_flow"])
    rolling_percentage = _resolve_optional_number(record, TRIP_CUSTOMER_FIELDS["rolling_percentage"])
    return TripCustomerRecord(
        customer_id=identity["id"],
        customer_name=identity["name"],
        rolling_amount=_resolve_number(record, TRIP_CUSTOMER_FIELDS["rolling_amount"]),
        win_loss=_resolve_number(record, TRIP_CUSTOMER_FIELDS["win_loss"]),
        buy_in_amount=buy_in,
        buy_out_amount=buy_out,
        net_cash_flow=buy_out - buy_in if net_cash_flow is None else net_cash_flow,
        rolling_percentage=rolling_percentage,
        is_active=_resolve_bool(record, TRIP_CUSTOMER_FIELDS["is_active"], default=True),
    )


def normalize_trip_sharing(raw: Any) -> Optional[TripSharingRecord]:
    if isinstance(raw, TripSharingRecord):
        return raw
    if isinstance(raw, list):
        raw = raw[0] if raw else None
    record = _as_mapping(raw)
    if not record:
        return None
    breakdown = resolve_field(record, SHARING_FIELDS["agent_breakdown"])
    company_pct = _resolve_optional_number(record, SHARING_FIELDS["company_share_percentage"])
    currency = _resolve_text(record, SHARING_FIELDS["currency"])
    return TripSharingRecord(
        total_rolling=_resolve_number(record, SHARING_FIELDS["total_rolling"]),
        total_win_loss=_resolve_number(record, SHARING_FIELDS["total_win_loss"]),
        total_expenses=_resolve_number(record, SHARING_FIELDS["total_expenses"]),
        total_rolling_commission=_resolve_number(record, SHARING_FIELDS["total_rolling_commission"]),
        total_buy_in=_resolve_number(record, SHARING_FIELDS["total_buy_in"]),
        total_buy_out=_resolve_number(record, SHARING_FIELDS["total_buy_out"]),
        net_cash_flow=_resolve_number(record, SHARING_FIELDS["net_cash_flow"]),
        net_result=_resolve_number(record, SHARING_FIELDS["net_result"]),
        total_agent_share=_resolve_number(record, SHARING_FIELDS["total_agent_share"]),
        company_share=_resolve_number(record, SHARING_FIELDS["company_share"]),
        agent_share_percentage=_resolve_number(record, SHARING_FIELDS["agent_share_percentage"]),
        company_share_percentage=100.0 if company_pct is None else company_pct,
        agent_breakdown=[
            normalize_trip_agent(item) for item in (breakdown if isinstance(breakdown, list) else [])
        ],
        currency=currency.upper() if currency else None,
        source=str(record.get("source") or "upstream"),
    )


def _trip_exchange_rates(record: Mapping[str, Any]) -> Dict[str, float]:
    rates: Dict[str, float] = {}
    embedded = record.get("exchange_rates")
    if isinstance(embedded, Mapping):
        for code, value in embedded.items():
            rate = optional_number(value)
            if rate:
                rates[str(code).upper()] = rate
    for code, candidates in TRIP_RATE_FIELDS.items():
        rate = _resolve_optional_number(record, candidates)
        # A stored 0 means "not configured", never a real rate.
        if rate:
            rates.setdefault(code, rate)
    return rates


def _list_field(record: Mapping[str, Any], candidates: Sequence[str]) -> List[Any]:
    value = resolve_field(record, candidates)
    return value if isinstance(value, list) else []


def normalize_trip(raw: Any) -> TripRecord:
    if isinstance(raw, TripRecord):
        return raw
    record = _as_mapping(raw)
    trip_id = _resolve_text(record, TRIP_FIELDS["id"]) or UNKNOWN_ID
    currency = _resolve_text(record, TRIP_FIELDS["currency"])
    return TripRecord(
        id=trip_id,
        name=_resolve_text(record, TRIP_FIELDS["name"]) or f"Trip {trip_id}",
        date=_resolve_text(record, TRIP_FIELDS["date"]),
        status=normalize_trip_status(_resolve_text(record, TRIP_FIELDS["status"])),
        currency=currency.upper() if currency else None,
        exchange_rates=_trip_exchange_rates(record),
        customers=[
            normalize_trip_customer(item) for item in _list_field(record, TRIP_FIELDS["customers"])
        ],
        agents=[normalize_trip_agent(item) for item in _list_field(record, TRIP_FIELDS["agents"])],
        expenses=[normalize_trip_expense(item) for item in _list_field(record, TRIP_FIELDS["expenses"])],
        agent_id=_resolve_text(record, TRIP_FIELDS["agent_id"]),
        sharing=normalize_trip_sharing(resolve_field(record, TRIP_FIELDS["sharing"])),
        total_rolling=_resolve_optional_number(record, TRIP_FIELDS["total_rolling"]),
        total_win_loss=_resolve_optional_number(record, TRIP_FIELDS["total_win_loss"]),
        total_buy_in=_resolve_optional_number(record, TRIP_FIELDS["total_buy_in"]),
        total_buy_out=_resolve_optional_number(record, TRIP_FIELDS["total_buy_out"]),
    )


def _reference_id(
    record: Mapping[str, Any], candidates: Sequence[str], nested_key: str
) -> Optional[str]:
    nested = _as_mapping(record.get(nested_key))
    return _resolve_text(record, candidates) or _resolve_text(nested, ("id",))


def normalize_rolling_record(raw: Any) -> RollingRecord:
    if isinstance(raw, RollingRecord):
        return raw
    record = _as_mapping(raw)
    return RollingRecord(
        id=_resolve_text(record, ROLLING_FIELDS["id"]),
        customer_id=_reference_id(record, ROLLING_FIELDS["customer_id"], "customer") or UNKNOWN_ID,
        trip_id=_reference_id(record, ROLLING_FIELDS["trip_id"], "trip"),
        rolling_amount=_resolve_number(record, ROLLING_FIELDS["rolling_amount"]),
        win_loss=_resolve_number(record, ROLLING_FIELDS["win_loss"]),
        game_type=_resolve_text(record, ROLLING_FIELDS["game_type"]),
        recorded_at=parse_timestamp(resolve_field(record, ROLLING_FIELDS["recorded_at"])),
    )


def normalize_transaction_type(value: Optional[str]) -> str:
    text = (value or "").strip().lower()
    if text in BUY_IN_TYPES:
        return "buy-in"
    if text in BUY_OUT_TYPES:
        return "buy-out"
    return text


def normalize_buy_in_out_record(raw: Any) -> BuyInOutRecord:
    if isinstance(raw, BuyInOutRecord):
        return raw
    record = _as_mapping(raw)
    return BuyInOutRecord(
        id=_resolve_text(record, BUY_IN_OUT_FIELDS["id"]),
        customer_id=_reference_id(record, BUY_IN_OUT_FIELDS["customer_id"], "customer") or UNKNOWN_ID,
        trip_id=_reference_id(record, BUY_IN_OUT_FIELDS["trip_id"], "trip"),
        transaction_type=normalize_transaction_type(
            _resolve_text(record, BUY_IN_OUT_FIELDS["transaction_type"])
        ),
        amount=_resolve_number(record, BUY_IN_OUT_FIELDS["amount"]),
        timestamp=parse_timestamp(resolve_field(record, BUY_IN_OUT_FIELDS["timestamp"])),
    )


def normalize_buy_in_out_records(raws: Iterable[Any]) -> List[BuyInOutRecord]:
    """Normalize a transactions payload, keeping only cash buy-in/buy-out rows."""
    records: List[BuyInOutRecord] = []
    skipped = 0
    for raw in raws:
        record = normalize_buy_in_out_record(raw)
        if record.transaction_type in {"buy-in", "buy-out"}:
            records.append(record)
        else:
            skipped += 1
    if skipped:
        logger.debug("Skipped %s non cash transactions while normalizing buy-in/out rows", skipped)
    return records
