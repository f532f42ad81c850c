from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from src.api.dependencies import get_reporting_service
from src.schemas.reporting import TripCustomersResponse, TripFinancialsResponse
from src.services.reporting_service import ReportingService
from src.shared.response import ResponseEnvelope, build_meta

router = APIRouter(prefix="/trips", tags=["trips"])


@router.get("/{trip_id}/customers")
def trip_customers(
    trip_id: str,
    currency: str | None = Query(default=None, min_length=3, max_length=8),
    service: ReportingService = Depends(get_reporting_service),
) -> ResponseEnvelope[TripCustomersResponse]:
    data = service.get_trip_customers(trip_id, currency.upper() if currency else None)
    meta = build_meta(
        source=f"junket_api:{data.source}",
        currency=data.currency,
        data_status="partial" if data.degraded else "live",
    )
    return ResponseEnvelope(data=data, meta=meta)


@router.get("/{trip_id}/financials")
def trip_financials(
    trip_id: str,
    currency: str | None = Query(default=None, min_length=3, max_length=8),
    service: ReportingService = Depends(get_reporting_service),
) -> ResponseEnvelope[TripFinancialsResponse]:
    data = service.get_trip_financials(trip_id, currency.upper() if currency else None)
    meta = build_meta(
        source="junket_api",
        currency=data.currency,
        data_status="degraded" if data.missing_rate_pairs else "live",
    )
    return ResponseEnvelope(data=data, meta=meta)
