"""Tests for bankruptcy checks."""

from polysentience.bankruptcy import mark_bankrupt_agents, run_bankruptcy_check
from polysentience.ledger import AgentLedger
from polysentience.storage.state import ArenaState, load_state, save_state


def test_zero_balance_agents_are_retired(ledger) -> None:
    broke = ledger.create_agent("Broke", "", "SPEED_DEMON", 10.0)
    ledger.adjust_balance(broke.id, -10.0, "wiped out")
    solvent = ledger.create_agent("Solvent", "", "CONSERVATIVE", 10.0)

    assert mark_bankrupt_agents(ledger) == [broke.id]

    broke = ledger.get_agent(broke.id)
    assert broke.is_bankrupt and not broke.is_active
    assert broke.bankruptcy_date is not None
    assert ledger.get_agent(solvent.id).is_active
    # Already bankrupt agents are not reported again
    assert mark_bankrupt_agents(ledger) == []


def test_run_bankruptcy_check_persists(tmp_path) -> None:
    state = ArenaState()
    agent = AgentLedger(state).create_agent("Empty", "", "MOMENTUM", 0.0)
    save_state(state, tmp_path)

    assert run_bankruptcy_check(tmp_path) == [agent.id]
    assert load_state(tmp_path).agents[agent.id].is_bankrupt
