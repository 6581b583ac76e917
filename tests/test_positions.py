"""Tests for position exits and reporting."""

from datetime import timedelta

from conftest import make_market, place
from polysentience.config import PositionConfig, Settings
from polysentience.ledger import AgentLedger
from polysentience.positions import (
    manage_positions,
    position_report,
    refresh_position_odds,
    run_position_management,
    should_close_position,
)
from polysentience.storage.models import CloseReason, Odds, PositionStatus
from polysentience.storage.state import ArenaState, load_state, save_state


class FixedRoll:
    def __init__(self, value: float):
        self.value = value

    def random(self) -> float:
        return self.value


def _position(ledger: AgentLedger, yes_now: float, entry_yes: float = 0.4):
    agent = ledger.create_agent("Trader", "", "MOMENTUM", 100.0)
    prediction = place(ledger, agent.id, bet=10.0, yes=entry_yes)
    ledger.mark_to_market(prediction.id, Odds(yes_price=yes_now, no_price=round(1 - yes_now, 4)))
    return prediction


def test_profit_taking(ledger) -> None:
    prediction = _position(ledger, yes_now=0.6)  # +50%
    config = PositionConfig()

    assert should_close_position(prediction, config, FixedRoll(0.1)) == CloseReason.PROFIT_TAKING
    # A failed profit-taking roll does not fall through to a random exit
    assert should_close_position(prediction, config, FixedRoll(0.01 + 0.15)) is None


def test_stop_loss(ledger) -> None:
    prediction = _position(ledger, yes_now=0.2, entry_yes=0.5)  # -60%
    config = PositionConfig()

    assert should_close_position(prediction, config, FixedRoll(0.05)) == CloseReason.STOP_LOSS
    assert should_close_position(prediction, config, FixedRoll(0.09)) is None


def test_random_exit_chance_grows_with_age(ledger) -> None:
    prediction = _position(ledger, yes_now=0.4)
    config = PositionConfig()
    fresh = prediction.created_at

    assert should_close_position(prediction, config, FixedRoll(0.01), now=fresh) == CloseReason.RANDOM_EXIT
    assert should_close_position(prediction, config, FixedRoll(0.03), now=fresh) is None

    later = prediction.created_at + timedelta(hours=100)
    assert should_close_position(prediction, config, FixedRoll(0.04), now=later) == CloseReason.RANDOM_EXIT
    # Capped at the maximum exit chance
    assert should_close_position(prediction, config, FixedRoll(0.06), now=later) is None


def test_manage_positions_closes_selected(ledger) -> None:
    prediction = _position(ledger, yes_now=0.6)

    closed = manage_positions(ledger, PositionConfig(), FixedRoll(0.1))

    assert closed == [prediction.id]
    assert ledger.get_prediction(prediction.id).position_status == PositionStatus.CLOSED_MANUAL
    assert manage_positions(ledger, PositionConfig(), FixedRoll(0.0)) == []


def test_refresh_position_odds_uses_cached_market(ledger) -> None:
    ledger.state.markets["m1"] = make_market("m1", yes=0.6)
    agent = ledger.create_agent("Trader", "", "MOMENTUM", 100.0)
    place(ledger, agent.id, market_id="m1", bet=10.0, yes=0.4)
    place(ledger, agent.id, market_id="uncached", bet=10.0, yes=0.4)

    assert refresh_position_odds(ledger) == 1
    assert ledger.get_agent(agent.id).current_balance == 85.0


def test_position_report(ledger) -> None:
    first = _position(ledger, yes_now=0.6)
    report = position_report(ledger, now=first.created_at + timedelta(hours=2))

    assert report.total_open == 1
    assert report.total_unrealized_pnl == 5.0
    assert report.by_agent["Trader"].total_bet == 10.0
    assert report.oldest_position.prediction_id == first.id
    assert report.oldest_position.age_hours == 2.0


def test_run_position_management(tmp_path) -> None:
    state = ArenaState()
    ledger = AgentLedger(state)
    state.markets["m1"] = make_market("m1", yes=0.6)
    agent = ledger.create_agent("Trader", "", "MOMENTUM", 100.0)
    prediction = place(ledger, agent.id, market_id="m1", bet=10.0, yes=0.4)
    save_state(state, tmp_path)

    result = run_position_management(Settings(), data_dir=tmp_path, rng=FixedRoll(0.1))

    assert result.refreshed == 1
    assert result.closed == [prediction.id]
    assert result.report.total_open == 0
    saved = load_state(tmp_path)
    assert saved.predictions[prediction.id].profit_loss == 5.0
    assert saved.agents[agent.id].current_balance == 105.0
