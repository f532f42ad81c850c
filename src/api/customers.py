from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Query

from src.api.dashboard import get_report_filters
from src.api.dependencies import get_reporting_service
from src.core.config import get_settings
from src.schemas.reporting import CustomerSummary, ReportFilters
from src.services.reporting_service import ReportingService
from src.shared.response import ResponseEnvelope, build_meta, paginate_list

router = APIRouter(prefix="/customers", tags=["customers"])


@router.get("")
def list_customers(
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=50, ge=1, le=200),
    filters: ReportFilters = Depends(get_report_filters),
    service: ReportingService = Depends(get_reporting_service),
) -> ResponseEnvelope[List[CustomerSummary]]:
    customers, failed_sources = service.list_customers(filters)
    data, pagination = paginate_list(customers, page, page_size)
    meta = build_meta(
        source="junket_api",
        currency=filters.currency or get_settings().global_currency,
        data_status="partial" if failed_sources else "live",
    )
    return ResponseEnvelope(data=data, pagination=pagination, meta=meta)
