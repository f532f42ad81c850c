from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional, Tuple

from pydantic import BaseModel


class FxRateRecord(BaseModel):
    id: Optional[str] = None
    currency_pair: Optional[str] = None
    rate_timestamp: Optional[datetime] = None
    mid_rate: Optional[Decimal] = None
    source: Optional[str] = None

    def pair(self) -> Optional[Tuple[str, str]]:
        if not self.currency_pair or "/" not in self.currency_pair:
            return None
        base, quote = (part.strip().upper() for part in self.currency_pair.split("/", 1))
        if not base or not quote:
            return None
        return base, quote
