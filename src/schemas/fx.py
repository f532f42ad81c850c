from __future__ import annotations

from datetime import datetime
from typing import Optional

from src.shared.base import BaseSchema


class FxRate(BaseSchema):
    currency_pair: str
    mid_rate: float
    source: str
    rate_timestamp: Optional[datetime] = None
