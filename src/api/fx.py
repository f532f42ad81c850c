from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends

from src.api.dependencies import get_fx_service
from src.schemas.fx import FxRate
from src.services.fx_service import FxService
from src.shared.response import ResponseEnvelope, build_meta


router = APIRouter(prefix="/fx", tags=["fx"])


@router.get("/rates")
def fx_rates(service: FxService = Depends(get_fx_service)) -> ResponseEnvelope[List[FxRate]]:
    data = service.get_rates()
    latest = max((item.rate_timestamp for item in data if item.rate_timestamp), default=None)
    return ResponseEnvelope(
        data=data,
        meta=build_meta(source="fx_rates", generated_at=latest),
    )
