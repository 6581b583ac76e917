from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from .config import PolymarketConfig
from .exceptions import (
    PolymarketAPIError,
    PolymarketNotFoundError,
    PolymarketRateLimitError,
)
from .models import GammaMarket, MarketOdds

logger = logging.getLogger(__name__)


class GammaClient:
    """Read-only async client for Polymarket's Gamma markets API."""

    def __init__(
        self,
        config: PolymarketConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config or PolymarketConfig()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> GammaClient:
        limits = httpx.Limits(
            max_connections=self.config.max_connections,
            max_keepalive_connections=self.config.max_keepalive_connections,
        )
        self._client = httpx.AsyncClient(
            base_url=self.config.base_url,
            timeout=self.config.timeout_seconds,
            limits=limits,
            transport=self._transport,
            headers={"Accept": "application/json"},
        )
        return self

    async def __aexit__(
        self,
        exc_type: type | None,
        exc_val: Exception | None,
        exc_tb: Any,
    ) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.debug("Closed GammaClient")

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("GammaClient must be used as async context manager")
        return self._client

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
    ) -> Any:
        retry_count = 0
        last_error: Exception | None = None
        rate_limited = False

        while retry_count < self.config.max_retries:
            try:
                response = await self.client.request(
                    method=method,
                    url=endpoint,
                    params=params,
                )

                if response.status_code == 404:
                    raise PolymarketNotFoundError(
                        f"Resource not found: {endpoint}", status_code=404
                    )
                elif response.status_code == 429:
                    rate_limited = True
                    wait_time = 2 ** retry_count
                    logger.warning(f"Rate limited, waiting {wait_time}s...")
                    await asyncio.sleep(wait_time)
                    retry_count += 1
                    continue
                elif response.status_code >= 500:
                    wait_time = 2 ** retry_count
                    logger.warning(
                        f"Server error {response.status_code}, "
                        f"retrying in {wait_time}s..."
                    )
                    last_error = PolymarketAPIError(
                        f"Server error {response.status_code}",
                        status_code=response.status_code,
                    )
                    await asyncio.sleep(wait_time)
                    retry_count += 1
                    continue
                elif response.status_code >= 400:
                    raise PolymarketAPIError(
                        f"Polymarket API error {response.status_code}: {response.text[:200]}",
                        status_code=response.status_code,
                    )

                try:
                    return response.json()
                except ValueError as e:
                    raise PolymarketAPIError(
                        f"Invalid JSON from {endpoint}: {e}",
                        status_code=response.status_code,
                    ) from e

            except httpx.TimeoutException as e:
                last_error = e
                retry_count += 1
                if retry_count < self.config.max_retries:
                    logger.warning(f"Timeout, retrying ({retry_count})...")
                    await asyncio.sleep(2)

            except httpx.RequestError as e:
                last_error = e
                logger.error(f"Network error: {e}")
                break

        if rate_limited and last_error is None:
            raise PolymarketRateLimitError(
                f"Rate limited after {retry_count} retries", status_code=429
            )
        raise PolymarketAPIError(
            f"Request failed after {retry_count} retries: {last_error}"
        )

    async def get_markets(
        self,
        limit: int = 100,
        offset: int = 0,
        closed: bool = False,
    ) -> list[GammaMarket]:
        """List markets. A limit of 0 requests the API maximum."""
        page_size = self.config.max_page_size if limit <= 0 else limit
        params: dict[str, Any] = {
            "limit": page_size,
            "offset": offset,
            "closed": str(closed).lower(),
        }
        data = await self._request("GET", "/markets", params=params)
        if not isinstance(data, list):
            raise PolymarketAPIError("Unexpected markets payload: expected a list")

        markets: list[GammaMarket] = []
        for raw in data:
            if not isinstance(raw, dict) or not raw.get("id"):
                continue
            markets.append(GammaMarket.from_api(raw))

        logger.info(f"Fetched {len(markets)} markets from Polymarket")
        return markets

    async def _get_market_payload(self, market_id: str) -> dict[str, Any]:
        data = await self._request("GET", f"/markets/{market_id}")
        if not isinstance(data, dict):
            raise PolymarketAPIError(f"Unexpected payload for market {market_id}")
        return data

    async def get_market(self, market_id: str) -> GammaMarket:
        data = await self._get_market_payload(market_id)
        if not data.get("id"):
            data = {**data, "id": market_id}
        return GammaMarket.from_api(data)

    async def get_market_odds(self, market_id: str) -> MarketOdds:
        """Fetch current YES/NO implied probabilities for a market."""
        data = await self._get_market_payload(market_id)
        odds = MarketOdds.from_api(data)
        # Gamma occasionally omits the id on single-market lookups
        if not odds.market_id:
            odds.market_id = market_id
        return odds
