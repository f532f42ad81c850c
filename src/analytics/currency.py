from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Mapping, Optional, Set, Tuple

from src.models.fx import FxRateRecord
from src.models.junket import (
    BuyInOutRecord,
    RollingRecord,
    RollupTotals,
    TripAgentRecord,
    TripRecord,
    TripSharingRecord,
)
from src.shared.numbers import to_number

logger = logging.getLogger(__name__)

DEFAULT_CURRENCY = "HKD"
SUPPORTED_TRIP_CURRENCIES = ("PESO", "HKD", "MYR")

CurrencyPair = Tuple[str, str]

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def normalize_currency(code: Optional[str]) -> Optional[str]:
    if code is None:
        return None
    text = str(code).strip().upper()
    return text or None


def format_pair(pair: CurrencyPair) -> str:
    return f"{pair[0]}/{pair[1]}"


class RateTable:
    """Directed ``(from, to) -> rate`` lookup.

    Rates are looked up exactly as stored; an inverse is never derived.
    """

    def __init__(self, rates: Optional[Mapping[CurrencyPair, float]] = None) -> None:
        self._rates: Dict[CurrencyPair, float] = {}
        self._sources: Dict[CurrencyPair, str] = {}
        self._timestamps: Dict[CurrencyPair, Optional[datetime]] = {}
        for pair, rate in (rates or {}).items():
            self.set(pair[0], pair[1], rate, source="static")

    @classmethod
    def from_sources(
        cls,
        static_rates: Optional[Mapping[CurrencyPair, float]] = None,
        fx_rows: Iterable[FxRateRecord] = (),
    ) -> "RateTable":
        table = cls(static_rates)
        # Newest row per pair wins; rows override the static defaults.
        ordered = sorted(fx_rows, key=lambda row: row.rate_timestamp or _EPOCH, reverse=True)
        seen: Set[CurrencyPair] = set()
        for row in ordered:
            pair = row.pair()
            if pair is None or pair in seen or row.mid_rate is None:
                continue
            rate = to_number(row.mid_rate)
            if rate <= 0:
                continue
            seen.add(pair)
            table.set(
                pair[0],
                pair[1],
                rate,
                source=row.source or "fx_rates",
                rate_timestamp=row.rate_timestamp,
            )
        return table

    def set(
        self,
        base: str,
        quote: str,
        rate: float,
        source: str = "static",
        rate_timestamp: Optional[datetime] = None,
    ) -> None:
        pair = (base.strip().upper(), quote.strip().upper())
        self._rates[pair] = float(rate)
        self._sources[pair] = source
        self._timestamps[pair] = rate_timestamp

    def get(self, base: str, quote: str) -> Optional[float]:
        return self._rates.get((base, quote))

    def source_of(self, base: str, quote: str) -> Optional[str]:
        return self._sources.get((base, quote))

    def timestamp_of(self, base: str, quote: str) -> Optional[datetime]:
        return self._timestamps.get((base, quote))

    def pairs(self) -> List[CurrencyPair]:
        return sorted(self._rates)

    def __contains__(self, pair: object) -> bool:
        return pair in self._rates

    def __len__(self) -> int:
        return len(self._rates)


class CurrencyConverter:
    def __init__(
        self,
        global_currency: str = DEFAULT_CURRENCY,
        rate_table: Optional[RateTable] = None,
        fallback_currency: str = DEFAULT_CURRENCY,
    ) -> None:
        self.global_currency = normalize_currency(global_currency) or DEFAULT_CURRENCY
        self.rate_table = rate_table or RateTable()
        self.fallback_currency = normalize_currency(fallback_currency) or DEFAULT_CURRENCY
        self.missing_pairs: Set[CurrencyPair] = set()

    def source_currency(
        self, from_currency: Optional[str] = None, trip: Optional[TripRecord] = None
    ) -> str:
        explicit = normalize_currency(from_currency)
        if explicit:
            return explicit
        if trip is not None and trip.currency:
            return normalize_currency(trip.currency) or self.fallback_currency
        return self.fallback_currency

    def rate(self, base: str, quote: str, trip: Optional[TripRecord] = None) -> Optional[float]:
        if base == quote:
            return 1.0
        if trip is not None and self.source_currency(trip=trip) == base:
            trip_rate = trip.exchange_rates.get(quote)
            # Trips default every configured rate to 1.0, which is a placeholder and not a rate.
            if trip_rate and trip_rate != 1.0:
                return trip_rate
        return self.rate_table.get(base, quote)

    def convert(
        self,
        amount: object,
        from_currency: Optional[str] = None,
        trip: Optional[TripRecord] = None,
        to_currency: Optional[str] = None,
    ) -> float:
        value = to_number(amount)
        base = self.source_currency(from_currency, trip)
        quote = normalize_currency(to_currency) or self.global_currency
        rate = self.rate(base, quote, trip)
        if rate is None:
            self._record_missing((base, quote))
            return 0.0
        return value * rate

    def _record_missing(self, pair: CurrencyPair) -> None:
        if pair in self.missing_pairs:
            return
        self.missing_pairs.add(pair)
        logger.warning(
            "No exchange rate for %s; amounts in %s contribute 0 to %s totals",
            format_pair(pair),
            pair[0],
            pair[1],
        )

    def missing_pair_labels(self) -> List[str]:
        return [format_pair(pair) for pair in sorted(self.missing_pairs)]

    def convert_totals(
        self,
        totals: RollupTotals,
        from_currency: Optional[str] = None,
        trip: Optional[TripRecord] = None,
    ) -> RollupTotals:
        return totals.model_copy(
            update={
                "total_rolling": self.convert(totals.total_rolling, from_currency, trip),
                "total_win_loss": self.convert(totals.total_win_loss, from_currency, trip),
                "total_buy_in": self.convert(totals.total_buy_in, from_currency, trip),
                "total_buy_out": self.convert(totals.total_buy_out, from_currency, trip),
            }
        )

    def convert_sharing(self, sharing: TripSharingRecord, trip: TripRecord) -> TripSharingRecord:
        """Express a trip's sharing block in the display currency; percentages stay as-is.

        A currency tag on the block wins over the trip's own currency.
        """
        money_fields = (
            "total_rolling",
            "total_win_loss",
            "total_expenses",
            "total_rolling_commission",
            "total_buy_in",
            "total_buy_out",
            "net_cash_flow",
            "net_result",
            "total_agent_share",
            "company_share",
        )
        update: Dict[str, object] = {
            field: self.convert(getattr(sharing, field), from_currency=sharing.currency, trip=trip)
            for field in money_fields
        }
        update["agent_breakdown"] = [
            self._convert_agent_share(agent, trip, sharing.currency) for agent in sharing.agent_breakdown
        ]
        update["currency"] = self.global_currency
        return sharing.model_copy(update=update)

    def _convert_agent_share(
        self, agent: TripAgentRecord, trip: TripRecord, from_currency: Optional[str] = None
    ) -> TripAgentRecord:
        converted = self.convert(agent.calculated_share, from_currency=from_currency, trip=trip)
        return agent.model_copy(update={"calculated_share": converted})

    def convert_rolling_records(
        self,
        records: Iterable[RollingRecord],
        trips_by_id: Mapping[str, TripRecord],
        to_currency: Optional[str] = None,
    ) -> List[RollingRecord]:
        converted: List[RollingRecord] = []
        for record in records:
            trip = trips_by_id.get(record.trip_id) if record.trip_id else None
            converted.append(
                record.model_copy(
                    update={
                        "rolling_amount": self.convert(
                            record.rolling_amount, trip=trip, to_currency=to_currency
                        ),
                        "win_loss": self.convert(record.win_loss, trip=trip, to_currency=to_currency),
                    }
                )
            )
        return converted

    def convert_buy_in_out_records(
        self,
        records: Iterable[BuyInOutRecord],
        trips_by_id: Mapping[str, TripRecord],
        to_currency: Optional[str] = None,
    ) -> List[BuyInOutRecord]:
        return [
            record.model_copy(
                update={
                    "amount": self.convert(
                        record.amount,
                        trip=trips_by_id.get(record.trip_id) if record.trip_id else None,
                        to_currency=to_currency,
                    )
                }
            )
            for record in records
        ]
