from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import Field

from src.shared.base import SnapshotRecord

CUSTOMER_TOTAL_FIELDS = ("total_rolling", "total_win_loss", "total_buy_in", "total_buy_out")


class CustomerRecord(SnapshotRecord):
    id: str
    name: str
    agent_id: Optional[str] = None
    agent_name: Optional[str] = None
    status: str = "active"
    is_active: bool = True
    is_agent: bool = False
    rolling_percentage: float = 1.4
    credit_limit: float = 0.0
    available_credit: float = 0.0
    # None until either the backend or a local rollup supplies the figure.
    total_rolling: Optional[float] = None
    total_win_loss: Optional[float] = None
    total_buy_in: Optional[float] = None
    total_buy_out: Optional[float] = None
    # Which of the totals above the backend sent as running totals.
    upstream_totals: List[str] = Field(default_factory=list)

    @property
    def has_upstream_totals(self) -> bool:
        return bool(self.upstream_totals)

    @property
    def has_all_upstream_totals(self) -> bool:
        return all(field in self.upstream_totals for field in CUSTOMER_TOTAL_FIELDS)

    @property
    def totals_source(self) -> str:
        if self.has_all_upstream_totals:
            return "upstream"
        return "mixed" if self.upstream_totals else "records"


class AgentRecord(SnapshotRecord):
    id: str
    name: str
    status: str = "active"
    is_active: bool = True


class TripAgentRecord(SnapshotRecord):
    agent_id: str
    agent_name: str = ""
    share_percentage: float = 0.0
    calculated_share: float = 0.0


class TripExpenseRecord(SnapshotRecord):
    id: Optional[str] = None
    category: str = "other"
    description: str = ""
    amount: float = 0.0
    date: Optional[str] = None


class TripCustomerRecord(SnapshotRecord):
    customer_id: str
    customer_name: str
    rolling_amount: float = 0.0
    win_loss: float = 0.0
    buy_in_amount: float = 0.0
    buy_out_amount: float = 0.0
    net_cash_flow: float = 0.0
    rolling_percentage: Optional[float] = None
    is_active: bool = True


class TripSharingRecord(SnapshotRecord):
    total_rolling: float = 0.0
    total_win_loss: float = 0.0
    total_expenses: float = 0.0
    total_rolling_commission: float = 0.0
    total_buy_in: float = 0.0
    total_buy_out: float = 0.0
    net_cash_flow: float = 0.0
    net_result: float = 0.0
    total_agent_share: float = 0.0
    company_share: float = 0.0
    agent_share_percentage: float = 0.0
    company_share_percentage: float = 100.0
    agent_breakdown: List[TripAgentRecord] = Field(default_factory=list)
    # Currency the figures are tagged with; None means the trip's currency.
    currency: Optional[str] = None
    source: str = "upstream"


class TripRecord(SnapshotRecord):
    id: str
    name: str
    date: Optional[str] = None
    status: str = "active"
    currency: Optional[str] = None
    # Quote currency -> rate from the trip's own currency.
    exchange_rates: Dict[str, float] = Field(default_factory=dict)
    customers: List[TripCustomerRecord] = Field(default_factory=list)
    agents: List[TripAgentRecord] = Field(default_factory=list)
    expenses: List[TripExpenseRecord] = Field(default_factory=list)
    agent_id: Optional[str] = None
    sharing: Optional[TripSharingRecord] = None
    total_rolling: Optional[float] = None
    total_win_loss: Optional[float] = None
    total_buy_in: Optional[float] = None
    total_buy_out: Optional[float] = None


class RollingRecord(SnapshotRecord):
    id: Optional[str] = None
    customer_id: str
    trip_id: Optional[str] = None
    rolling_amount: float = 0.0
    win_loss: float = 0.0
    game_type: Optional[str] = None
    recorded_at: Optional[datetime] = None


class BuyInOutRecord(SnapshotRecord):
    id: Optional[str] = None
    customer_id: str
    trip_id: Optional[str] = None
    transaction_type: str
    amount: float = 0.0
    timestamp: Optional[datetime] = None


class RollupTotals(SnapshotRecord):
    total_rolling: float = 0.0
    total_win_loss: float = 0.0
    total_buy_in: float = 0.0
    total_buy_out: float = 0.0
    # "upstream", "mixed", "trip_customers" or "records"
    source: str = "records"

    @property
    def net_cash_flow(self) -> float:
        return self.total_buy_out - self.total_buy_in


class ReportSnapshot(SnapshotRecord):
    """Everything one reporting cycle reads, already normalized."""

    customers: List[CustomerRecord] = Field(default_factory=list)
    agents: List[AgentRecord] = Field(default_factory=list)
    trips: List[TripRecord] = Field(default_factory=list)
    rolling_records: List[RollingRecord] = Field(default_factory=list)
    buy_in_out_records: List[BuyInOutRecord] = Field(default_factory=list)
    failed_sources: List[str] = Field(default_factory=list)
