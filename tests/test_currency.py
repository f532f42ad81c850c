from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from src.analytics.currency import CurrencyConverter, RateTable
from src.analytics.identity import normalize_trip
from src.models.fx import FxRateRecord
from src.models.junket import RollupTotals, TripSharingRecord


def make_converter(rates=None, global_currency="HKD") -> CurrencyConverter:
    return CurrencyConverter(global_currency=global_currency, rate_table=RateTable(rates or {}))


def test_trip_sharing_converted_to_global_currency():
    trip = normalize_trip({"id": "t-1", "name": "Vegas", "currency": "USD"})
    converter = make_converter({("USD", "HKD"): 7.8})
    sharing = TripSharingRecord(total_rolling=10000)

    converted = converter.convert_sharing(sharing, trip)

    assert converted.total_rolling == pytest.approx(78000)
    assert sharing.total_rolling == 10000


def test_same_currency_is_identity():
    converter = make_converter()
    assert converter.convert(1234.5, from_currency="HKD") == 1234.5
    assert converter.missing_pairs == set()


def test_missing_source_currency_falls_back():
    converter = CurrencyConverter("USD", RateTable({("HKD", "USD"): 0.128}), fallback_currency="HKD")
    trip = normalize_trip({"id": "t-1", "name": "No currency"})
    assert converter.convert(1000, trip=trip) == pytest.approx(128)
    assert converter.convert(1000) == pytest.approx(128)


def test_round_trip_with_reciprocal_rates():
    converter = make_converter({("USD", "HKD"): 8.0, ("HKD", "USD"): 0.125})
    hkd = converter.convert(250, from_currency="USD")
    back = converter.convert(hkd, from_currency="HKD", to_currency="USD")
    assert back == pytest.approx(250)


def test_conversion_preserves_sign():
    converter = make_converter({("MYR", "HKD"): 1.7})
    assert converter.convert(-100, from_currency="MYR") == pytest.approx(-170)
    assert converter.convert(100, from_currency="MYR") == pytest.approx(170)


def test_missing_rate_contributes_zero_and_warns_once(caplog):
    converter = make_converter()
    with caplog.at_level(logging.WARNING, logger="src.analytics.currency"):
        first = converter.convert(500, from_currency="PESO")
        second = converter.convert(700, from_currency="PESO")

    assert first == 0
    assert second == 0
    assert converter.missing_pair_labels() == ["PESO/HKD"]
    assert len([record for record in caplog.records if record.levelno == logging.WARNING]) == 1


def test_inverse_rate_is_not_derived():
    converter = make_converter({("HKD", "USD"): 0.128})
    assert converter.convert(100, from_currency="USD") == 0
    assert ("USD", "HKD") in converter.missing_pairs


def test_trip_rate_overrides_table():
    trip = normalize_trip({"id": "t-1", "name": "Manila", "currency": "PESO", "exchange_rate_hkd": 0.15})
    converter = make_converter({("PESO", "HKD"): 0.14})
    assert converter.convert(1000, trip=trip) == pytest.approx(150)


def test_trip_placeholder_rate_yields_to_table():
    trip = normalize_trip({"id": "t-1", "name": "Manila", "currency": "PESO", "exchange_rate_hkd": 1.0})
    converter = make_converter({("PESO", "HKD"): 0.14})
    assert converter.convert(1000, trip=trip) == pytest.approx(140)


def test_trip_placeholder_rate_without_table_is_missing(caplog):
    trip = normalize_trip({"id": "t-1", "name": "Manila", "currency": "PESO", "exchange_rate_hkd": 1.0})
    converter = make_converter()
    with caplog.at_level(logging.WARNING, logger="src.analytics.currency"):
        converted = converter.convert(1000, trip=trip)

    assert converted == 0
    assert ("PESO", "HKD") in converter.missing_pairs
    assert any("PESO/HKD" in record.getMessage() for record in caplog.records)


def test_sharing_currency_tag_wins_over_trip_currency():
    trip = normalize_trip(
        {"id": "t-1", "name": "Untagged", "sharing": {"total_rolling": 10000, "currency": "USD"}}
    )
    assert trip.sharing is not None
    converter = make_converter({("USD", "HKD"): 7.8})

    converted = converter.convert_sharing(trip.sharing, trip)

    assert converted.total_rolling == pytest.approx(78000)
    assert converted.currency == "HKD"
    assert converter.missing_pairs == set()

    hkd_trip = normalize_trip({"id": "t-2", "name": "Macau", "currency": "HKD"})
    tagged = TripSharingRecord(total_rolling=100, company_share=10, currency="USD")
    assert converter.convert_sharing(tagged, hkd_trip).company_share == pytest.approx(78)


def test_rate_table_prefers_latest_row_over_static():
    rows = [
        FxRateRecord(
            currency_pair="USD/HKD",
            mid_rate=Decimal("7.70"),
            rate_timestamp=datetime(2026, 1, 1, tzinfo=timezone.utc),
            source="twelve_data",
        ),
        FxRateRecord(
            currency_pair="usd/hkd",
            mid_rate=Decimal("7.82"),
            rate_timestamp=datetime(2026, 2, 1, tzinfo=timezone.utc),
            source="twelve_data",
        ),
        FxRateRecord(currency_pair="broken", mid_rate=Decimal("1")),
    ]
    table = RateTable.from_sources({("USD", "HKD"): 7.8, ("MYR", "HKD"): 1.7}, rows)

    assert table.get("USD", "HKD") == pytest.approx(7.82)
    assert table.source_of("USD", "HKD") == "twelve_data"
    assert table.get("MYR", "HKD") == 1.7
    assert table.source_of("MYR", "HKD") == "static"
    assert len(table) == 2


def test_convert_totals_keeps_source():
    converter = make_converter({("USD", "HKD"): 7.8})
    totals = RollupTotals(
        total_rolling=10, total_win_loss=-1, total_buy_in=2, total_buy_out=1, source="upstream"
    )
    converted = converter.convert_totals(totals, from_currency="USD")
    assert converted.total_rolling == pytest.approx(78)
    assert converted.total_win_loss == pytest.approx(-7.8)
    assert converted.net_cash_flow == pytest.approx(-7.8)
    assert converted.source == "upstream"
