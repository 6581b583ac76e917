"""Tests for analysis sessions, using a stubbed model."""

import asyncio
import random
from datetime import datetime, timedelta, timezone

from pydantic_ai import Agent as PydanticAgent
from pydantic_ai.models.test import TestModel

from conftest import make_market
from polysentience.agents.agent_factory import AgentFactory
from polysentience.agents.analyst import (
    distribute_markets,
    get_analyst_agent,
    run_analysis_session,
    select_markets_for_agent,
)
from polysentience.config import AnalysisConfig
from polysentience.ledger import AgentLedger
from polysentience.storage.models import Agent
from polysentience.storage.state import ArenaState, load_state, save_state


def _decision(prediction: str = "YES", confidence: float = 0.9) -> TestModel:
    return TestModel(
        custom_output_args={
            "prediction": prediction,
            "confidence": confidence,
            "reasoning": "Polling and price action both point the same way.",
        },
    )


def _seed_market(data_dir) -> None:
    state = ArenaState()
    state.markets["m1"] = make_market("m1", yes=0.4)
    save_state(state, data_dir)


def test_select_markets_filters_unsuitable() -> None:
    now = datetime.now(timezone.utc)
    markets = [
        make_market("ok"),
        make_market("thin", volume=10.0),
        make_market("soon", end_date=now + timedelta(hours=3)),
        make_market("done", resolved=True),
        make_market("undated", end_date=None),
    ]

    selected = select_markets_for_agent(markets, AnalysisConfig(), now=now)

    assert [m.polymarket_id for m in selected] == ["ok"]


def test_distribute_markets_avoids_duplicates() -> None:
    agents = [
        Agent(id=f"a{i}", name=f"A{i}", strategy="MOMENTUM", current_balance=1.0, initial_balance=1.0)
        for i in range(3)
    ]
    markets = [make_market(f"m{i}") for i in range(4)]

    pairs = distribute_markets(markets, agents, 2, random.Random(7))

    assert len(pairs) == 6
    for agent in agents:
        mine = [m.polymarket_id for a, m in pairs if a.id == agent.id]
        assert len(mine) == 2
        assert len(set(mine)) == 2
    assert distribute_markets([], agents, 2, random.Random(7)) == []


def test_session_places_bets_for_every_persona(data_dir) -> None:
    _seed_market(data_dir)

    with get_analyst_agent().override(model=_decision("YES", 0.9)):
        session = asyncio.run(run_analysis_session(data_dir=data_dir, rng=random.Random(1)))

    assert session.agents_seeded == 8
    assert session.markets_considered == 1
    assert session.bets_placed == 8
    assert session.errors == []

    state = load_state(data_dir)
    assert state.markets["m1"].analyzed is True
    ledger = AgentLedger(state)
    prediction = ledger.agent_predictions("chatgpt-4")[0]
    assert prediction.prediction == "YES"
    assert prediction.bet_amount == 4.0
    assert prediction.research_cost == 0.05
    assert prediction.research_sources == ["https://polymarket.com/market/m1-slug"]
    assert ledger.get_agent("chatgpt-4").current_balance == 995.95


def test_low_confidence_passes_without_charge(data_dir) -> None:
    _seed_market(data_dir)

    with get_analyst_agent().override(model=_decision("NO", 0.5)):
        session = asyncio.run(run_analysis_session(data_dir=data_dir, rng=random.Random(1)))

    assert session.bets_placed == 0
    assert {a.skipped_reason for a in session.analyses} == {"confidence below betting threshold"}
    state = load_state(data_dir)
    assert state.predictions == {}
    assert all(a.current_balance == 1000.0 for a in state.agents.values())


def test_session_without_markets(data_dir) -> None:
    with get_analyst_agent().override(model=_decision()):
        session = asyncio.run(run_analysis_session(data_dir=data_dir))

    assert session.markets_considered == 0
    assert session.analyses == []
    assert len(load_state(data_dir).agents) == 8


def test_factory_builds_once_until_reset(data_dir) -> None:
    built: list[PydanticAgent] = []

    def create() -> PydanticAgent:
        built.append(PydanticAgent(TestModel()))
        return built[-1]

    factory = AgentFactory(create_fn=create)

    assert factory.get_agent() is factory.get_agent()
    factory.reset()
    factory.get_agent()
    assert len(built) == 2
