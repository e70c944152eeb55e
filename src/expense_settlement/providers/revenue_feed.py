"""External revenue feed adapters.

All feed adapters must implement the RevenueFeed protocol.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import httpx

from expense_settlement.errors import FeedError

if TYPE_CHECKING:
    from expense_settlement.config import Settings


class RevenueFeed(Protocol):
    """Protocol for revenue sources pulled per period."""

    async def fetch(self, period: str) -> list[dict[str, Any]]:
        """Return raw revenue rows for a period.

        Raises:
            FeedError: The feed is unreachable or returned a malformed payload
        """
        ...


def extract_rows(payload: Any) -> list[Any]:
    """Accept a bare list or an ``{"items": [...]}`` envelope."""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict) and isinstance(payload.get("items"), list):
        return payload["items"]
    raise FeedError("Revenue feed payload must be a list or an object with an items list")


class HttpRevenueFeed:
    """Pulls revenue rows with ``GET <endpoint>?period=YYYY-MM``."""

    def __init__(
        self,
        endpoint: str,
        token: str = "",
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.endpoint = endpoint
        self.token = token
        self.timeout = timeout
        self.transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> HttpRevenueFeed:
        return cls(
            endpoint=settings.erp_endpoint,
            token=settings.erp_token,
            timeout=settings.erp_timeout_seconds,
        )

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def fetch(self, period: str) -> list[dict[str, Any]]:
        if not self.endpoint:
            raise FeedError("Revenue feed endpoint is not configured")

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.get(
                    self.endpoint,
                    params={"period": period},
                    headers=self._headers(),
                )
            except httpx.HTTPError as e:
                raise FeedError(f"Revenue feed request failed: {e}") from e

        if response.is_error:
            raise FeedError(
                f"Revenue feed returned HTTP {response.status_code}",
                {"status_code": response.status_code},
            )
        try:
            payload = response.json()
        except ValueError as e:
            raise FeedError("Revenue feed returned invalid JSON") from e
        return extract_rows(payload)
