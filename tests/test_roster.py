"""Tests for the celebrity roster."""

import pytest

from conftest import place
from polysentience.roster import (
    CELEBRITY_AGENTS,
    get_celebrity_agent,
    reset_agent,
    seed_celebrity_agents,
)


def test_roster_ids_are_unique() -> None:
    ids = [c.id for c in CELEBRITY_AGENTS]
    assert len(ids) == 8
    assert len(set(ids)) == len(ids)
    assert get_celebrity_agent("grok-beta").personality == "edgy"
    assert get_celebrity_agent("nobody") is None


def test_seed_is_idempotent(ledger) -> None:
    created = seed_celebrity_agents(ledger, initial_balance=500.0)

    assert len(created) == 8
    assert all(a.kind == "celebrity" and a.current_balance == 500.0 for a in created)
    assert seed_celebrity_agents(ledger) == []


def test_reset_agent_drops_history(ledger) -> None:
    seed_celebrity_agents(ledger)
    place(ledger, "chatgpt-4", bet=10.0)

    agent = reset_agent(ledger, "chatgpt-4", initial_balance=250.0)

    assert agent.current_balance == 250.0
    assert ledger.agent_predictions("chatgpt-4") == []
    assert len(ledger.agent_transactions("chatgpt-4")) == 1


def test_reset_rejects_user_agents(ledger) -> None:
    agent = ledger.create_agent("Mine", "", "MOMENTUM", 100.0)
    with pytest.raises(ValueError):
        reset_agent(ledger, agent.id)
