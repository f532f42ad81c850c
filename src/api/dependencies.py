from __future__ import annotations

from functools import lru_cache

from src.repositories.fx_repository import FxRepository
from src.repositories.junket_repository import JunketRepository
from src.services.fx_service import FxService
from src.services.reporting_service import ReportingService


@lru_cache
def get_junket_repository() -> JunketRepository:
    return JunketRepository()


@lru_cache
def get_fx_repository() -> FxRepository:
    return FxRepository()


def get_fx_service() -> FxService:
    return FxService(repository=get_fx_repository())


def get_reporting_service() -> ReportingService:
    return ReportingService(repository=get_junket_repository(), fx_service=get_fx_service())
