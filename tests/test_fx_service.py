from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import List

import httpx
import pytest

from src.core.config import Settings, parse_static_rates
from src.models.fx import FxRateRecord
from src.services.fx_service import FxService

RATE_TIME = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


class StubFxRepository:
    def __init__(self, rows: List[FxRateRecord] | None = None, error: Exception | None = None) -> None:
        self.rows = rows or []
        self.error = error
        self.calls = 0

    def list_latest_rates(self, limit: int = 500) -> List[FxRateRecord]:
        _ = limit
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.rows


def make_service(repository: StubFxRepository, static_rates: str = "") -> FxService:
    service = FxService(repository)
    service.settings = Settings(
        GLOBAL_CURRENCY="HKD",
        FALLBACK_TRIP_CURRENCY="HKD",
        FX_STATIC_RATES=static_rates,
    )
    return service


def test_parse_static_rates_skips_malformed_entries():
    rates = parse_static_rates("usd/hkd=7.8, HKD/USD = 0.128,broken,MYR/HKD=abc,/HKD=1")
    assert rates == {("USD", "HKD"): 7.8, ("HKD", "USD"): 0.128}


def test_build_converter_prefers_stored_rates_over_static():
    repository = StubFxRepository(
        [
            FxRateRecord(
                currency_pair="USD/HKD",
                mid_rate=Decimal("7.81"),
                rate_timestamp=RATE_TIME,
                source="twelve_data",
            )
        ]
    )
    service = make_service(repository, "USD/HKD=7.8,MYR/HKD=1.7")

    converter = service.build_converter()

    assert converter.global_currency == "HKD"
    assert converter.convert(100, from_currency="USD") == pytest.approx(781)
    assert converter.convert(100, from_currency="MYR") == pytest.approx(170)


def test_build_converter_honours_requested_currency():
    service = make_service(StubFxRepository(), "HKD/USD=0.128")
    converter = service.build_converter(currency="usd")

    assert converter.global_currency == "USD"
    assert converter.convert(1000) == pytest.approx(128)


def test_build_converter_uses_supplied_rows_without_querying():
    repository = StubFxRepository()
    service = make_service(repository)
    rows = [FxRateRecord(currency_pair="PESO/HKD", mid_rate=Decimal("0.14"), rate_timestamp=RATE_TIME)]

    converter = service.build_converter(rows=rows)

    assert repository.calls == 0
    assert converter.convert(1000, from_currency="PESO") == pytest.approx(140)


def test_unreachable_rates_table_falls_back_to_static(caplog):
    repository = StubFxRepository(error=httpx.ConnectError("connection refused"))
    service = make_service(repository, "USD/HKD=7.8")

    converter = service.build_converter()

    assert converter.convert(10, from_currency="USD") == pytest.approx(78)
    assert "falling back to static rates" in caplog.text


def test_get_rates_lists_every_pair_with_source():
    repository = StubFxRepository(
        [
            FxRateRecord(
                currency_pair="PESO/HKD",
                mid_rate=Decimal("0.14"),
                rate_timestamp=RATE_TIME,
                source="twelve_data",
            )
        ]
    )
    service = make_service(repository, "USD/HKD=7.8")

    rates = {rate.currency_pair: rate for rate in service.get_rates()}

    assert set(rates) == {"PESO/HKD", "USD/HKD"}
    assert rates["PESO/HKD"].mid_rate == pytest.approx(0.14)
    assert rates["PESO/HKD"].source == "twelve_data"
    assert rates["PESO/HKD"].rate_timestamp == RATE_TIME
    assert rates["USD/HKD"].source == "static"
    assert rates["USD/HKD"].rate_timestamp is None
