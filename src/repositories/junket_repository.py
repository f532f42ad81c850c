from __future__ import annotations

from typing import Optional

from src.core.junket_api import ApiResult, JunketApiClient


class JunketRepository:
    """Raw reads against the junket backend.

    Every method returns the tagged ``ApiResult`` untouched; normalization and
    fallback decisions belong to the service layer.
    """

    def __init__(self, client: Optional[JunketApiClient] = None) -> None:
        self.client = client or JunketApiClient()

    def list_customers(self) -> ApiResult:
        return self.client.get("/customers")

    def list_agents(self) -> ApiResult:
        return self.client.get("/agents")

    def list_trips(self) -> ApiResult:
        return self.client.get("/trips")

    def get_trip(self, trip_id: str) -> ApiResult:
        return self.client.get(f"/trips/{trip_id}")

    def list_rolling_records(self, trip_id: Optional[str] = None) -> ApiResult:
        params = {"trip_id": trip_id} if trip_id else None
        return self.client.get("/rolling-records", params=params)

    def list_transactions(self) -> ApiResult:
        return self.client.get("/transactions")

    def get_trip_customer_stats(self, trip_id: str) -> ApiResult:
        return self.client.get(f"/trips/{trip_id}/customer-stats")

    def list_trip_customers(self, trip_id: str) -> ApiResult:
        return self.client.get(f"/trips/{trip_id}/customers")

    def list_trip_transactions(self, trip_id: str) -> ApiResult:
        return self.client.get(f"/trips/{trip_id}/transactions")
