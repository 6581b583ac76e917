"""Celebrity agent roster and seeding helpers."""

import logging

from pydantic import BaseModel

from polysentience.ledger import AgentLedger
from polysentience.storage.models import Agent
from polysentience.strategies import StrategyType

logger = logging.getLogger(__name__)


class CelebrityAgent(BaseModel):
    """A branded persona that analyzes markets with the shared analyst model."""

    id: str
    name: str
    description: str
    strategy: StrategyType
    personality: str
    avatar: str
    initial_balance: float = 1000.0


CELEBRITY_AGENTS: list[CelebrityAgent] = [
    CelebrityAgent(
        id="chatgpt-4",
        name="ChatGPT-4",
        description="Balanced and thorough, works through problems step by step.",
        strategy=StrategyType.DATA_DRIVEN,
        personality="analytical",
        avatar="🟢",
    ),
    CelebrityAgent(
        id="claude-sonnet",
        name="Claude-Sonnet",
        description="Careful with edge cases and rigorous about evidence.",
        strategy=StrategyType.ACADEMIC,
        personality="thorough",
        avatar="🔵",
    ),
    CelebrityAgent(
        id="gemini-pro",
        name="Gemini-Pro",
        description="Strong pattern recognition, leans on trends and momentum.",
        strategy=StrategyType.MOMENTUM,
        personality="pattern-focused",
        avatar="🔷",
    ),
    CelebrityAgent(
        id="gpt-35-turbo",
        name="GPT-3.5-Turbo",
        description="Fast and decisive, commits on first read.",
        strategy=StrategyType.SPEED_DEMON,
        personality="decisive",
        avatar="⚡",
    ),
    CelebrityAgent(
        id="llama-3-70b",
        name="Llama-3-70B",
        description="Open-source contrarian that questions the crowd.",
        strategy=StrategyType.CONTRARIAN,
        personality="contrarian",
        avatar="🦙",
    ),
    CelebrityAgent(
        id="mistral-large",
        name="Mistral-Large",
        description="Lean and efficient, only bets when the case is clear.",
        strategy=StrategyType.CONSERVATIVE,
        personality="efficient",
        avatar="🇪🇺",
    ),
    CelebrityAgent(
        id="perplexity-ai",
        name="Perplexity-AI",
        description="Research specialist with citation-heavy analysis.",
        strategy=StrategyType.ACADEMIC,
        personality="research-focused",
        avatar="🔍",
    ),
    CelebrityAgent(
        id="grok-beta",
        name="Grok-Beta",
        description="Unfiltered takes driven by social media sentiment.",
        strategy=StrategyType.SOCIAL_SENTIMENT,
        personality="edgy",
        avatar="𝕏",
    ),
]

_BY_ID = {c.id: c for c in CELEBRITY_AGENTS}


def get_celebrity_agent(agent_id: str) -> CelebrityAgent | None:
    return _BY_ID.get(agent_id)


def _create_celebrity(
    ledger: AgentLedger, celebrity: CelebrityAgent, initial_balance: float | None
) -> Agent:
    return ledger.create_agent(
        name=celebrity.name,
        description=celebrity.description,
        strategy_type=celebrity.strategy,
        initial_balance=initial_balance if initial_balance is not None else celebrity.initial_balance,
        agent_id=celebrity.id,
        kind="celebrity",
    )


def seed_celebrity_agents(
    ledger: AgentLedger, initial_balance: float | None = None
) -> list[Agent]:
    """Create any celebrity agents missing from the ledger. Returns the new ones."""
    created: list[Agent] = []
    for celebrity in CELEBRITY_AGENTS:
        if ledger.find_agent(celebrity.id) is not None:
            continue
        created.append(_create_celebrity(ledger, celebrity, initial_balance))

    if created:
        logger.info(f"Seeded {len(created)} celebrity agents")
    return created


def reset_agent(
    ledger: AgentLedger, agent_id: str, initial_balance: float | None = None
) -> Agent:
    """Restore a celebrity agent to a fresh balance, dropping its history."""
    celebrity = get_celebrity_agent(agent_id)
    if celebrity is None:
        raise ValueError(f"Not a celebrity agent: {agent_id}")

    if ledger.find_agent(agent_id) is not None:
        ledger.delete_agent(agent_id)
    agent = _create_celebrity(ledger, celebrity, initial_balance)
    logger.info(f"Reset {agent.name} to ${agent.initial_balance:,.2f}")
    return agent
