from __future__ import annotations

import logging
from threading import Lock
from typing import Any, Dict, List, Optional

import httpx

from src.core.config import get_settings

logger = logging.getLogger(__name__)


class SupabaseClient:
    """Read-only PostgREST access for reference tables such as ``fx_rates``."""

    _http: httpx.Client | None = None
    _http_lock: Lock = Lock()

    def __init__(self) -> None:
        settings = get_settings()
        if not settings.supabase_url:
            raise ValueError("Supabase URL is required")
        api_key = settings.supabase_service_role_key or settings.supabase_anon_key
        if not api_key:
            raise ValueError("Supabase API key is required")
        self.rest_url = settings.supabase_url.rstrip("/") + "/rest/v1"
        self.headers = {"apikey": api_key, "Authorization": f"Bearer {api_key}"}
        self.timeout = settings.junket_api_timeout_seconds

    @classmethod
    def _client(cls) -> httpx.Client:
        with cls._http_lock:
            if cls._http is None:
                cls._http = httpx.Client(limits=httpx.Limits(max_keepalive_connections=10))
            return cls._http

    def select(
        self,
        table: str,
        select: str,
        order: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Rows of ``table``; raises ``httpx.HTTPError`` when the request fails."""
        params: Dict[str, str] = {"select": select}
        if order:
            params["order"] = order
        if limit is not None:
            params["limit"] = str(limit)
        response = self._client().get(
            f"{self.rest_url}/{table}", params=params, headers=self.headers, timeout=self.timeout
        )
        response.raise_for_status()
        rows = response.json()
        if not isinstance(rows, list):
            logger.warning("Unexpected %s payload type %s", table, type(rows).__name__)
            return []
        return rows
