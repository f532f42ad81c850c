from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from src.api.dependencies import get_reporting_service
from src.schemas.reporting import (
    ROLE_PATTERN,
    SORT_BY_PATTERN,
    SORT_ORDER_PATTERN,
    DashboardMetrics,
    ReportFilters,
)
from src.services.reporting_service import ReportingService
from src.shared.response import ResponseEnvelope, build_meta

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


def get_report_filters(
    role: str = Query(default="admin", pattern=ROLE_PATTERN),
    agent_id: str | None = Query(default=None),
    sort_by: str = Query(default="rolling", pattern=SORT_BY_PATTERN),
    sort_order: str = Query(default="desc", pattern=SORT_ORDER_PATTERN),
    currency: str | None = Query(default=None, min_length=3, max_length=8),
) -> ReportFilters:
    return ReportFilters(
        role=role,
        agent_id=agent_id,
        sort_by=sort_by,
        sort_order=sort_order,
        currency=currency.upper() if currency else None,
    )


@router.get("/metrics")
def dashboard_metrics(
    filters: ReportFilters = Depends(get_report_filters),
    service: ReportingService = Depends(get_reporting_service),
) -> ResponseEnvelope[DashboardMetrics]:
    data = service.get_dashboard_metrics(filters)
    data_status = "partial" if data.data_quality.failed_sources else "live"
    meta = build_meta(
        source="junket_api",
        currency=data.currency,
        data_status=data_status,
        generated_at=data.generated_at,
    )
    return ResponseEnvelope(data=data, meta=meta)
