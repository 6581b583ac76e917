"""Tests for the market cache and resolution flow."""

import asyncio

import httpx
import pytest

from conftest import make_market, place
from polysentience.exceptions import MarketNotFoundError
from polysentience.ledger import AgentLedger
from polysentience.markets import (
    analyzable_markets,
    determine_market_outcome,
    manually_resolve_market,
    mark_market_analyzed,
    markets_by_category,
    refresh_markets,
    reset_analyzed_status,
    search_markets,
    should_update_market,
    upsert_markets,
)
from polysentience.services.polymarket import GammaClient, PolymarketConfig
from polysentience.storage.models import PositionStatus
from polysentience.storage.state import ArenaState, load_state, save_state


def test_small_changes_are_skipped() -> None:
    existing = make_market("m1", yes=0.4)
    assert not should_update_market(existing, make_market("m1", yes=0.4005, volume=50_050.0))
    assert should_update_market(existing, make_market("m1", yes=0.41))
    assert should_update_market(existing, make_market("m1", volume=60_000.0))
    assert should_update_market(existing, make_market("m1", resolved=True))
    assert should_update_market(existing, make_market("m1", question="Renamed?"))


def test_upsert_preserves_analysis_flag() -> None:
    state = ArenaState()
    upsert_markets(state, [make_market("m1"), make_market("m2")])
    state.markets["m1"].analyzed = True
    created = state.markets["m1"].created_at

    result = upsert_markets(state, [make_market("m1", yes=0.7), make_market("m2")])

    assert (result.added, result.updated, result.skipped) == (0, 1, 1)
    assert state.markets["m1"].yes_price == 0.7
    assert state.markets["m1"].analyzed is True
    assert state.markets["m1"].created_at == created


def test_upsert_reports_newly_resolved() -> None:
    state = ArenaState()
    upsert_markets(state, [make_market("m1")])

    result = upsert_markets(state, [make_market("m1", yes=0.98, resolved=True)])

    assert result.newly_resolved == ["m1"]


@pytest.mark.parametrize(
    "yes,no,expected",
    [(0.95, 0.05, "YES"), (0.03, 0.97, "NO"), (0.6, 0.4, "YES"), (0.3, 0.7, "NO"), (0.5, 0.5, None)],
)
def test_determine_market_outcome(yes: float, no: float, expected) -> None:
    assert determine_market_outcome(make_market("m1", yes=yes, no_price=no)) == expected


def test_manual_resolution_settles_open_positions(tmp_path) -> None:
    state = ArenaState()
    ledger = AgentLedger(state)
    state.markets["m1"] = make_market("m1")
    yes_agent = ledger.create_agent("Yes", "", "MOMENTUM", 100.0).id
    no_agent = ledger.create_agent("No", "", "CONTRARIAN", 100.0).id
    place(ledger, yes_agent, side="YES", bet=10.0, yes=0.4)
    place(ledger, no_agent, side="NO", bet=10.0, yes=0.5)
    save_state(state, tmp_path)

    assert manually_resolve_market("m1", "YES", tmp_path) == 2

    saved = load_state(tmp_path)
    assert saved.markets["m1"].resolved is True
    assert saved.markets["m1"].yes_price == 1.0
    assert saved.agents[yes_agent].current_balance == 115.0
    assert saved.agents[no_agent].current_balance == 90.0
    assert all(p.position_status == PositionStatus.CLOSED_RESOLVED for p in saved.predictions.values())


def test_manual_resolution_errors(tmp_path) -> None:
    with pytest.raises(MarketNotFoundError):
        manually_resolve_market("nope", "YES", tmp_path)
    with pytest.raises(ValueError):
        manually_resolve_market("nope", "MAYBE", tmp_path)


def test_refresh_markets_resolves_tracked_market(tmp_path) -> None:
    state = ArenaState()
    ledger = AgentLedger(state)
    state.markets["old"] = make_market("old", yes=0.5)
    agent = ledger.create_agent("Holder", "", "MOMENTUM", 100.0).id
    place(ledger, agent, market_id="old", side="YES", bet=10.0, yes=0.5)
    save_state(state, tmp_path)

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/markets":
            return httpx.Response(
                200,
                json=[{"id": "new", "question": "New?", "outcomePrices": ["0.3", "0.7"], "volume": 5000}],
            )
        assert request.url.path == "/markets/old"
        return httpx.Response(
            200,
            json={"id": "old", "question": "Will old happen?", "outcomePrices": ["1", "0"], "closed": True},
        )

    async def run():
        transport = httpx.MockTransport(handler)
        async with GammaClient(PolymarketConfig(), transport=transport) as client:
            return await refresh_markets(client, limit=10, data_dir=tmp_path)

    result = asyncio.run(run())

    assert result.fetched == 2
    assert result.upsert.added == 1
    assert result.upsert.newly_resolved == ["old"]
    assert result.predictions_resolved == 1
    saved = load_state(tmp_path)
    assert saved.agents[agent].current_balance == 110.0
    assert "new" in saved.markets


def test_refresh_markets_retries_undetermined_resolution(tmp_path) -> None:
    state = ArenaState()
    ledger = AgentLedger(state)
    state.markets["flat"] = make_market("flat", yes=0.5, resolved=True)
    agent = ledger.create_agent("Holder", "", "MOMENTUM", 100.0).id
    prediction = place(ledger, agent, market_id="flat", side="YES", bet=10.0, yes=0.5)
    save_state(state, tmp_path)
    prices = ["0.5", "0.5"]

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/markets":
            return httpx.Response(200, json=[])
        return httpx.Response(
            200,
            json={"id": "flat", "question": "Flat?", "outcomePrices": prices, "closed": True},
        )

    async def run():
        transport = httpx.MockTransport(handler)
        async with GammaClient(PolymarketConfig(), transport=transport) as client:
            return await refresh_markets(client, limit=10, data_dir=tmp_path)

    first = asyncio.run(run())

    assert first.undetermined == ["flat"]
    assert first.predictions_resolved == 0
    assert load_state(tmp_path).predictions[prediction.id].position_status == PositionStatus.OPEN

    prices[:] = ["1", "0"]
    second = asyncio.run(run())

    assert second.upsert.newly_resolved == []
    assert second.predictions_resolved == 1
    saved = load_state(tmp_path)
    assert saved.predictions[prediction.id].position_status == PositionStatus.CLOSED_RESOLVED
    assert saved.agents[agent].current_balance == 110.0


def test_market_queries() -> None:
    state = ArenaState()
    upsert_markets(
        state,
        [
            make_market("a", question="Will the Fed cut rates?", category="Economics", volume=10.0),
            make_market("b", question="Fed chair confirmed?", category="Politics", volume=20.0),
            make_market("c", question="Rain in Paris?", category="Weather", resolved=True),
        ],
    )

    assert [m.polymarket_id for m in search_markets(state, "fed")] == ["b", "a"]
    assert [m.polymarket_id for m in markets_by_category(state, "politics")] == ["b"]
    assert markets_by_category(state, "weather") == []

    mark_market_analyzed(state, "a")
    assert [m.polymarket_id for m in analyzable_markets(state)] == ["b"]
    assert reset_analyzed_status(state) == 1
    assert len(analyzable_markets(state)) == 2

    with pytest.raises(MarketNotFoundError):
        mark_market_analyzed(state, "zzz")
