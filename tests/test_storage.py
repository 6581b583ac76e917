"""Tests for YAML state persistence."""

import pytest

from conftest import make_market, place
from polysentience.ledger import AgentLedger
from polysentience.storage.state import (
    STATE_FILENAME,
    ArenaState,
    load_state,
    save_state,
    state_transaction,
)


def test_load_missing_state_returns_empty(tmp_path) -> None:
    state = load_state(tmp_path)
    assert state.agents == {}
    assert state.markets == {}


def test_load_empty_file_returns_empty(tmp_path) -> None:
    (tmp_path / STATE_FILENAME).write_text("", encoding="utf-8")
    assert load_state(tmp_path).predictions == {}


def test_save_and_load_roundtrip(tmp_path) -> None:
    state = ArenaState()
    ledger = AgentLedger(state)
    agent = ledger.create_agent("Saver", "", "CONSERVATIVE", 100.0)
    place(ledger, agent.id, bet=10.0)
    state.markets["m1"] = make_market("m1")

    save_state(state, tmp_path)
    loaded = load_state(tmp_path)

    assert loaded.last_updated is not None
    assert loaded.agents[agent.id].current_balance == 90.0
    prediction = next(iter(loaded.predictions.values()))
    assert prediction.max_payout == 25.0
    assert prediction.current_market_odds is not None
    assert loaded.markets["m1"].question == "Will m1 happen?"
    assert [p.name for p in tmp_path.iterdir()] == [STATE_FILENAME]


def test_state_transaction_saves_on_success(tmp_path) -> None:
    with state_transaction(tmp_path) as state:
        AgentLedger(state).create_agent("Kept", "", "MOMENTUM", 50.0)

    assert len(load_state(tmp_path).agents) == 1


def test_state_transaction_discards_on_error(tmp_path) -> None:
    with pytest.raises(RuntimeError):
        with state_transaction(tmp_path) as state:
            AgentLedger(state).create_agent("Lost", "", "MOMENTUM", 50.0)
            raise RuntimeError("boom")

    assert load_state(tmp_path).agents == {}
