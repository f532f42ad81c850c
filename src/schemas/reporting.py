from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import ConfigDict, Field

from src.shared.base import BaseSchema

SORT_BY_PATTERN = "^(rolling|winloss|totalRolling|totalWinLoss)$"
SORT_ORDER_PATTERN = "^(asc|desc|ascending|descending)$"
ROLE_PATTERN = "^(admin|agent|boss|staff)$"


class ReportFilters(BaseSchema):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    role: str = Field(default="admin", pattern=ROLE_PATTERN)
    agent_id: Optional[str] = None
    sort_by: str = Field(default="rolling", pattern=SORT_BY_PATTERN)
    sort_order: str = Field(default="desc", pattern=SORT_ORDER_PATTERN)
    currency: Optional[str] = None


class CustomerSummary(BaseSchema):
    id: str
    name: str
    agent_id: Optional[str] = None
    agent_name: Optional[str] = None
    status: str
    is_active: bool
    is_agent: bool
    rolling_percentage: float
    credit_limit: float
    available_credit: float
    total_rolling: float
    total_win_loss: float
    total_buy_in: float
    total_buy_out: float
    net_cash_flow: float
    rolling_commission: float
    net_gaming_result: float
    total_net_position: float
    totals_source: str
    is_synthetic_identity: bool = False


class CustomerNetPosition(BaseSchema):
    net_cash_flow: float
    net_gaming_result: float
    total_net_position: float


class TripStatusCounts(BaseSchema):
    active: int = 0
    in_progress: int = 0
    completed: int = 0
    cancelled: int = 0
    other: int = 0


class DataQualitySummary(BaseSchema):
    synthetic_identities: int = 0
    missing_rate_pairs: List[str] = Field(default_factory=list)
    failed_sources: List[str] = Field(default_factory=list)
    computed_sharing_trips: int = 0


class DashboardMetrics(BaseSchema):
    currency: str
    scope_role: str
    scope_agent_id: Optional[str] = None

    total_rolling: float
    gross_profit: float
    total_expenses: float
    net_profit: float
    total_rolling_commission: float
    house_net_win: float

    customer_total_win_loss: float
    customer_total_buy_in: float
    customer_total_buy_out: float

    profit_margin: float
    expense_ratio: float
    commission_ratio: float

    total_customers: int
    active_customers: int
    total_agents: int
    active_agents: int
    total_trips: int
    planned_trips: int
    ongoing_trips: int
    completed_trips: int
    trip_status_counts: TripStatusCounts

    recent_rolling_records: int
    recent_buy_in_out_records: int

    sort_by: str
    sort_order: str
    ranked_customers: List[CustomerSummary]

    data_quality: DataQualitySummary
    generated_at: datetime


class TripCustomerSummary(BaseSchema):
    customer_id: str
    customer_name: str
    rolling_amount: float
    win_loss: float
    buy_in_amount: float
    buy_out_amount: float
    net_cash_flow: float
    rolling_commission: float
    is_active: bool


class TripCustomersResponse(BaseSchema):
    trip_id: str
    currency: str
    source: str
    attempts: int
    customers: List[TripCustomerSummary]
    transactions_count: int
    rolling_records_count: int
    degraded: bool = False


class TripAgentShare(BaseSchema):
    agent_id: str
    agent_name: str
    share_percentage: float
    calculated_share: float


class TripSharingSummary(BaseSchema):
    total_rolling: float
    total_win_loss: float
    total_expenses: float
    total_rolling_commission: float
    total_buy_in: float
    total_buy_out: float
    net_cash_flow: float
    net_result: float
    total_agent_share: float
    company_share: float
    agent_share_percentage: float
    company_share_percentage: float
    agent_breakdown: List[TripAgentShare] = Field(default_factory=list)
    source: str


class TripFinancialValidation(BaseSchema):
    is_valid: bool
    warnings: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)


class TripFinancialsResponse(BaseSchema):
    trip_id: str
    trip_name: str
    status: str
    native_currency: str
    currency: str
    totals_source: str
    total_rolling: float
    total_win_loss: float
    total_buy_in: float
    total_buy_out: float
    net_cash_flow: float
    total_expenses: float
    total_rolling_commission: float
    sharing: TripSharingSummary
    validation: TripFinancialValidation
    missing_rate_pairs: List[str] = Field(default_factory=list)
