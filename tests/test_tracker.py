"""Tests for the odds tracker cycle."""

import asyncio
import time
from datetime import datetime, timezone

from conftest import make_market, place
from polysentience.config import Settings
from polysentience.ledger import AgentLedger
from polysentience.services.polymarket import MarketOdds, PolymarketNotFoundError
from polysentience.storage.state import ArenaState, load_state, save_state
from polysentience.tracker import (
    OddsTracker,
    TrackerCycleResult,
    group_open_predictions_by_market,
    run_tracker_cycle,
)


class FakeOddsSource:
    def __init__(self, prices: dict[str, float]):
        self.prices = prices
        self.requested: list[str] = []

    async def get_market_odds(self, market_id: str) -> MarketOdds:
        self.requested.append(market_id)
        if market_id not in self.prices:
            raise PolymarketNotFoundError(f"Resource not found: {market_id}", status_code=404)
        yes = self.prices[market_id]
        return MarketOdds(market_id=market_id, yes_price=yes, no_price=round(1 - yes, 4))


def _seed(tmp_path) -> tuple[str, str]:
    state = ArenaState()
    ledger = AgentLedger(state)
    alice = ledger.create_agent("Alice", "", "MOMENTUM", 100.0).id
    bob = ledger.create_agent("Bob", "", "CONTRARIAN", 100.0).id
    place(ledger, alice, market_id="m1", side="YES", bet=10.0, yes=0.4)
    place(ledger, bob, market_id="m1", side="NO", bet=10.0, yes=0.4)
    place(ledger, bob, market_id="m2", side="YES", bet=5.0, yes=0.5)
    state.markets["m1"] = make_market("m1", yes=0.4)
    save_state(state, tmp_path)
    return alice, bob


def test_groups_open_positions_by_market(tmp_path) -> None:
    _seed(tmp_path)
    groups = group_open_predictions_by_market(load_state(tmp_path))
    assert {k: len(v) for k, v in groups.items()} == {"m1": 2, "m2": 1}


def test_cycle_marks_to_market_and_reconciles(tmp_path) -> None:
    alice, bob = _seed(tmp_path)
    source = FakeOddsSource({"m1": 0.6, "m2": 0.5})

    result = asyncio.run(run_tracker_cycle(source, data_dir=tmp_path))

    # One request per market, not per prediction
    assert sorted(source.requested) == ["m1", "m2"]
    assert result.predictions_updated == 3
    assert result.markets_fetched == 2
    assert result.agents_reconciled == 2
    assert result.completed_at is not None

    state = load_state(tmp_path)
    # YES 10 @ 0.4 marked at 0.6 -> +5; NO 10 @ 0.6 marked at 0.4 -> -3.33
    assert state.agents[alice].current_balance == 95.0
    assert state.agents[bob].current_balance == 81.67
    assert state.markets["m1"].yes_price == 0.6


def test_failed_market_keeps_previous_marks(tmp_path) -> None:
    alice, bob = _seed(tmp_path)
    source = FakeOddsSource({"m1": 0.6})

    result = asyncio.run(run_tracker_cycle(source, data_dir=tmp_path))

    assert result.markets_failed == 1
    assert result.predictions_updated == 2
    m2 = [p for p in load_state(tmp_path).predictions.values() if p.market_id == "m2"]
    assert m2[0].unrealized_pnl == 0.0


def test_settled_positions_are_not_tracked(tmp_path) -> None:
    state = ArenaState()
    ledger = AgentLedger(state)
    agent = ledger.create_agent("Done", "", "MOMENTUM", 100.0).id
    prediction = place(ledger, agent, market_id="m1", bet=10.0, yes=0.4)
    ledger.resolve_prediction(prediction.id, "YES")
    save_state(state, tmp_path)
    source = FakeOddsSource({"m1": 0.1})

    result = asyncio.run(run_tracker_cycle(source, data_dir=tmp_path))

    assert source.requested == []
    assert result.predictions_updated == 0
    assert load_state(tmp_path).agents[agent].current_balance == 115.0


def test_tracker_stats_without_running(tmp_path) -> None:
    _seed(tmp_path)
    tracker = OddsTracker(data_dir=tmp_path)

    stats = tracker.stats()

    assert stats.is_active is False
    assert stats.total_predictions == 3
    assert stats.unique_markets == 2
    assert stats.last_update is None
    assert tracker.stop() is False


def test_tracker_start_runs_immediately_and_stops(tmp_path, monkeypatch) -> None:
    async def fake_cycle(settings, data_dir):
        return TrackerCycleResult(completed_at=datetime.now(timezone.utc))

    monkeypatch.setattr("polysentience.tracker._run_with_gamma", fake_cycle)
    tracker = OddsTracker(settings=Settings(), data_dir=tmp_path)

    assert tracker.start(interval_seconds=60) is True
    try:
        deadline = time.monotonic() + 5
        while tracker.last_cycle is None and time.monotonic() < deadline:
            time.sleep(0.05)

        assert tracker.is_running
        assert tracker.last_cycle is not None
        assert tracker.stats().last_update == tracker.last_cycle.completed_at
        # Starting again is a no-op while the first schedule runs
        assert tracker.start(interval_seconds=1) is False
        assert tracker.stats().is_active is True
    finally:
        assert tracker.stop() is True

    assert tracker.is_running is False
    assert tracker.stop() is False
