from __future__ import annotations

import logging
from typing import Iterable, List, Optional

import httpx

from src.analytics.currency import CurrencyConverter, RateTable, format_pair, normalize_currency
from src.core.config import get_settings, parse_static_rates
from src.models.fx import FxRateRecord
from src.repositories.fx_repository import FxRepository
from src.schemas.fx import FxRate

logger = logging.getLogger(__name__)


class FxService:
    def __init__(self, repository: FxRepository) -> None:
        self.repository = repository
        self.settings = get_settings()

    def list_rate_rows(self) -> List[FxRateRecord]:
        try:
            return self.repository.list_latest_rates()
        except httpx.HTTPError as exc:
            logger.warning("Could not load fx_rates, falling back to static rates: %s", exc)
            return []

    def build_rate_table(self, rows: Optional[Iterable[FxRateRecord]] = None) -> RateTable:
        if rows is None:
            rows = self.list_rate_rows()
        return RateTable.from_sources(parse_static_rates(self.settings.fx_static_rates), rows)

    def build_converter(
        self,
        currency: Optional[str] = None,
        rows: Optional[Iterable[FxRateRecord]] = None,
    ) -> CurrencyConverter:
        return CurrencyConverter(
            global_currency=normalize_currency(currency) or self.settings.global_currency,
            rate_table=self.build_rate_table(rows),
            fallback_currency=self.settings.fallback_trip_currency,
        )

    def get_rates(self) -> List[FxRate]:
        table = self.build_rate_table()
        return [
            FxRate(
                currency_pair=format_pair(pair),
                mid_rate=table.get(*pair) or 0.0,
                source=table.source_of(*pair) or "static",
                rate_timestamp=table.timestamp_of(*pair),
            )
            for pair in table.pairs()
        ]
