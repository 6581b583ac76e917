"""Shared fixtures: isolated data directories and small arena builders."""

from datetime import datetime, timedelta, timezone

import pytest

from polysentience.config import get_settings
from polysentience.ledger import AgentLedger
from polysentience.storage.models import Market, Odds
from polysentience.storage.state import ArenaState

# Fixed per session so repeated make_market calls describe the same market
MARKET_END = datetime.now(timezone.utc) + timedelta(days=30)


@pytest.fixture
def data_dir(tmp_path, monkeypatch):
    monkeypatch.setenv("DATA_DIR", str(tmp_path))
    get_settings.cache_clear()
    yield tmp_path
    get_settings.cache_clear()


@pytest.fixture
def ledger() -> AgentLedger:
    return AgentLedger(ArenaState())


def make_market(market_id: str = "m1", yes: float = 0.4, **overrides) -> Market:
    fields = dict(
        polymarket_id=market_id,
        question=f"Will {market_id} happen?",
        yes_price=yes,
        no_price=round(1 - yes, 4),
        volume=50_000.0,
        volume_24hr=2_000.0,
        liquidity=10_000.0,
        end_date=MARKET_END,
        category="Politics",
        market_slug=f"{market_id}-slug",
    )
    fields.update(overrides)
    return Market(**fields)


def place(ledger: AgentLedger, agent_id: str, market_id: str = "m1", side="YES",
          bet: float = 10.0, yes: float = 0.4, research_cost: float = 0.0):
    return ledger.add_prediction(
        agent_id=agent_id,
        market_id=market_id,
        market_question=f"Will {market_id} happen?",
        side=side,
        confidence=0.8,
        bet_amount=bet,
        entry_odds=Odds(yes_price=yes, no_price=round(1 - yes, 4)),
        research_cost=research_cost,
    )
