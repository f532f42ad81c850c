from __future__ import annotations

import logging
from threading import Lock
from typing import Any, Dict, Optional

import httpx
from pydantic import BaseModel

from src.core.config import get_settings

logger = logging.getLogger(__name__)


class ApiResult(BaseModel):
    """Tagged outcome of one upstream call.

    Transport failures, HTTP errors and ``success: false`` envelopes all come
    back as ``success=False`` so callers never branch on exceptions.
    """

    success: bool
    data: Any = None
    message: Optional[str] = None
    status_code: Optional[int] = None

    @classmethod
    def failure(cls, message: str, status_code: Optional[int] = None) -> "ApiResult":
        return cls(success=False, data=None, message=message, status_code=status_code)


class JunketApiClient:
    _shared_client: httpx.Client | None = None
    _client_lock: Lock = Lock()

    def __init__(self) -> None:
        settings = get_settings()
        self.base_url = settings.junket_api_url.rstrip("/")
        self.token = settings.junket_api_token
        self.timeout = settings.junket_api_timeout_seconds
        self._client = self._get_shared_client()

    @classmethod
    def _get_shared_client(cls) -> httpx.Client:
        if cls._shared_client is not None:
            return cls._shared_client
        with cls._client_lock:
            if cls._shared_client is None:
                cls._shared_client = httpx.Client(
                    timeout=30.0,
                    limits=httpx.Limits(max_keepalive_connections=20, max_connections=100),
                )
        return cls._shared_client

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def get(self, path: str, params: Optional[Dict[str, str]] = None) -> ApiResult:
        url = f"{self.base_url}/{path.lstrip('/')}"
        try:
            response = self._client.get(
                url, headers=self._headers(), params=params, timeout=self.timeout
            )
        except httpx.HTTPError as exc:
            logger.warning("Upstream request failed path=%s error=%s", path, exc)
            return ApiResult.failure(str(exc))

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if response.status_code >= 400:
            message = f"HTTP error! status: {response.status_code}"
            if isinstance(payload, dict):
                message = str(payload.get("message") or payload.get("error") or message)
            return ApiResult.failure(message, status_code=response.status_code)
        if payload is None:
            return ApiResult.failure("Upstream returned a non-JSON body", response.status_code)
        return self._unwrap(payload, response.status_code)

    @staticmethod
    def _unwrap(payload: Any, status_code: int) -> ApiResult:
        if isinstance(payload, dict) and "success" in payload:
            message = payload.get("message") or payload.get("error")
            return ApiResult(
                success=bool(payload.get("success")),
                data=payload.get("data"),
                message=str(message) if message else None,
                status_code=status_code,
            )
        return ApiResult(success=True, data=payload, status_code=status_code)
