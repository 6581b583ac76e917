"""Tests for the Gamma client against a mocked transport."""

import asyncio
import json

import httpx
import pytest

from polysentience.services.polymarket import (
    GammaClient,
    PolymarketAPIError,
    PolymarketConfig,
    PolymarketNotFoundError,
    PolymarketRateLimitError,
)


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch):
    async def _sleep(_seconds):
        return None

    monkeypatch.setattr(asyncio, "sleep", _sleep)


def _client(handler) -> GammaClient:
    return GammaClient(PolymarketConfig(max_retries=3), transport=httpx.MockTransport(handler))


def test_get_markets_sends_params_and_skips_bad_rows() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json=[
                {"id": "1", "question": "A?", "outcomePrices": ["0.2", "0.8"]},
                {"question": "no id"},
                "junk",
            ],
        )

    async def run() -> None:
        async with _client(handler) as client:
            markets = await client.get_markets(limit=0)
            assert [m.id for m in markets] == ["1"]
            assert markets[0].yes_price == 0.2

    asyncio.run(run())
    assert seen[0].url.path == "/markets"
    assert seen[0].url.params["limit"] == "1000"
    assert seen[0].url.params["closed"] == "false"


def test_get_market_odds_fills_missing_id() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/markets/42"
        return httpx.Response(200, json={"outcomePrices": "[\"0.65\", \"0.35\"]"})

    async def run() -> None:
        async with _client(handler) as client:
            odds = await client.get_market_odds("42")
            assert odds.market_id == "42"
            assert odds.yes_price == 0.65

    asyncio.run(run())


def test_not_found_raises_immediately() -> None:
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(404)

    async def run() -> None:
        async with _client(handler) as client:
            with pytest.raises(PolymarketNotFoundError):
                await client.get_market("missing")

    asyncio.run(run())
    assert calls == 1


def test_server_errors_retry_then_succeed() -> None:
    responses = [httpx.Response(502), httpx.Response(200, json={"id": "7"})]

    def handler(request: httpx.Request) -> httpx.Response:
        return responses.pop(0)

    async def run() -> None:
        async with _client(handler) as client:
            market = await client.get_market("7")
            assert market.id == "7"

    asyncio.run(run())


def test_rate_limit_exhausts_retries() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429)

    async def run() -> None:
        async with _client(handler) as client:
            with pytest.raises(PolymarketRateLimitError):
                await client.get_markets()

    asyncio.run(run())


def test_invalid_json_is_an_api_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"<html>", headers={"content-type": "text/html"})

    async def run() -> None:
        async with _client(handler) as client:
            with pytest.raises(PolymarketAPIError):
                await client.get_market_odds("1")

    asyncio.run(run())


def test_client_error_is_not_retried() -> None:
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(400, content=json.dumps({"error": "bad"}).encode())

    async def run() -> None:
        async with _client(handler) as client:
            with pytest.raises(PolymarketAPIError) as exc_info:
                await client.get_markets()
            assert exc_info.value.status_code == 400

    asyncio.run(run())
    assert calls == 1


def test_client_requires_context_manager() -> None:
    with pytest.raises(RuntimeError):
        GammaClient().client
