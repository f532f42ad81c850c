from __future__ import annotations

from typing import List

from src.core.config import get_settings
from src.core.supabase import SupabaseClient
from src.models.fx import FxRateRecord

MAX_RATE_ROWS = 500


class FxRepository:
    def __init__(self) -> None:
        # The rates table is optional; without Supabase only static rates apply.
        self.client = SupabaseClient() if get_settings().supabase_url else None

    @property
    def is_configured(self) -> bool:
        return self.client is not None

    def list_latest_rates(self, limit: int = MAX_RATE_ROWS) -> List[FxRateRecord]:
        if self.client is None:
            return []
        rows = self.client.select(
            table="fx_rates",
            select="id,currency_pair,rate_timestamp,mid_rate,source",
            order="rate_timestamp.desc",
            limit=max(limit, 1),
        )
        return [FxRateRecord.model_validate(row) for row in rows]
