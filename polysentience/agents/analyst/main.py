"""Analyst Agent: celebrity personas analyze markets and place bets."""

from __future__ import annotations

import asyncio
import logging
import random
from datetime import datetime, timedelta
from pathlib import Path

from pydantic_ai import Agent, RunContext

from polysentience.agents.agent_factory import AgentFactory
from polysentience.betting import adjust_bet_for_psychology, calculate_bet_amount, can_make_bet
from polysentience.config import AnalysisConfig, Settings, get_settings
from polysentience.exceptions import ArenaError
from polysentience.ledger import AgentLedger
from polysentience.llm_providers import get_model_string
from polysentience.markets import analyzable_markets, mark_market_analyzed
from polysentience.roster import CelebrityAgent, get_celebrity_agent, seed_celebrity_agents
from polysentience.storage.models import Agent as ArenaAgent
from polysentience.storage.models import Market, utc_now
from polysentience.storage.state import state_transaction
from polysentience.strategies import get_strategy

from .models import AnalysisSession, AnalystDependencies, MarketAnalysis, PredictionDecision
from .prompts import build_analysis_prompt, build_system_prompt

logger = logging.getLogger(__name__)


def _create_analyst_agent() -> Agent[AnalystDependencies, PredictionDecision]:
    """Create the analyst agent; the persona prompt is supplied per run."""
    settings = get_settings()
    return Agent(
        model=get_model_string(settings.analysis.model),
        output_type=PredictionDecision,
        deps_type=AnalystDependencies,
        defer_model_check=True,
    )


def _register_tools(agent: Agent[AnalystDependencies, PredictionDecision]) -> None:
    """Register the persona system prompt and the market timing tool."""

    @agent.system_prompt
    def persona_prompt(ctx: RunContext[AnalystDependencies]) -> str:
        return build_system_prompt(ctx.deps.persona, ctx.deps.strategy)

    @agent.tool
    def get_market_timing(ctx: RunContext[AnalystDependencies]) -> str:
        """Current UTC time and how long until the market under analysis closes."""
        now = utc_now()
        end_date = ctx.deps.market.end_date
        if end_date is None:
            return f"Now: {now.isoformat()}. The market has no scheduled end date."
        days = (end_date - now).total_seconds() / 86400
        return f"Now: {now.isoformat()}. Market closes {end_date.isoformat()} ({days:.1f} days from now)."


_analyst_factory = AgentFactory(
    create_fn=_create_analyst_agent,
    register_tools_fn=_register_tools,
)


def get_analyst_agent() -> Agent[AnalystDependencies, PredictionDecision]:
    """Get the singleton analyst agent instance."""
    return _analyst_factory.get_agent()


def select_markets_for_agent(
    markets: list[Market],
    config: AnalysisConfig,
    now: datetime | None = None,
) -> list[Market]:
    """Filter to open, liquid markets that end far enough out to be worth a bet."""
    cutoff = (now or utc_now()) + timedelta(days=config.min_days_to_end)
    return [
        m
        for m in markets
        if m.active
        and not m.resolved
        and not m.archived
        and m.volume >= config.min_volume
        and m.end_date is not None
        and m.end_date > cutoff
    ]


def distribute_markets(
    markets: list[Market],
    agents: list[ArenaAgent],
    per_agent: int,
    rng: random.Random,
) -> list[tuple[ArenaAgent, Market]]:
    """Shuffle markets and deal them round-robin so agents cover different ground."""
    if not markets or not agents or per_agent <= 0:
        return []

    pool = list(markets)
    rng.shuffle(pool)
    assigned: dict[str, set[str]] = {a.id: set() for a in agents}
    pairs: list[tuple[ArenaAgent, Market]] = []
    cursor = 0

    for _ in range(min(per_agent, len(pool))):
        for agent in agents:
            for _ in range(len(pool)):
                market = pool[cursor % len(pool)]
                cursor += 1
                if market.polymarket_id not in assigned[agent.id]:
                    assigned[agent.id].add(market.polymarket_id)
                    pairs.append((agent, market))
                    break

    return pairs


async def analyze_market(persona: CelebrityAgent, market: Market) -> PredictionDecision:
    """Ask the analyst model for a persona's call on a market."""
    deps = AnalystDependencies(
        persona=persona,
        strategy=get_strategy(persona.strategy),
        market=market,
    )
    agent = get_analyst_agent()
    result = await agent.run(build_analysis_prompt(market), deps=deps)
    return result.output


def _place_bet(
    analysis: MarketAnalysis,
    decision: PredictionDecision,
    settings: Settings,
    data_dir: Path | None,
) -> None:
    with state_transaction(data_dir) as state:
        ledger = AgentLedger(state)
        agent = ledger.get_agent(analysis.agent_id)
        market = state.markets.get(analysis.market_id)
        if market is None:
            analysis.skipped_reason = "market no longer cached"
            return
        mark_market_analyzed(state, market.polymarket_id)

        if ledger.has_agent_predicted(agent.id, market.polymarket_id):
            analysis.skipped_reason = "already predicted"
            return

        bet = calculate_bet_amount(decision.confidence, agent.current_balance, settings.betting)
        bet = adjust_bet_for_psychology(bet, agent, settings.betting)
        if bet <= 0:
            analysis.skipped_reason = "confidence below betting threshold"
            return
        research_cost = settings.arena.research_cost
        if not can_make_bet(agent, bet + research_cost, settings.betting):
            analysis.skipped_reason = "insufficient balance"
            return

        prediction = ledger.add_prediction(
            agent_id=agent.id,
            market_id=market.polymarket_id,
            market_question=market.question,
            side=decision.prediction,
            confidence=decision.confidence,
            bet_amount=bet,
            entry_odds=market.odds,
            reasoning=decision.reasoning,
            research_cost=research_cost,
            research_sources=[f"https://polymarket.com/market/{market.market_slug}"]
            if market.market_slug
            else [],
        )
        analysis.bet_amount = bet
        analysis.prediction_id = prediction.id


async def run_analysis_session(
    settings: Settings | None = None,
    data_dir: Path | None = None,
    rng: random.Random | None = None,
    triggered_by: str = "manual",
) -> AnalysisSession:
    """Run one round of analysis: every active celebrity agent looks at a few markets."""
    settings = settings or get_settings()
    rng = rng or random.Random()
    session = AnalysisSession(triggered_by=triggered_by, started_at=utc_now())

    with state_transaction(data_dir) as state:
        ledger = AgentLedger(state)
        session.agents_seeded = len(seed_celebrity_agents(ledger, settings.arena.initial_balance))
        agents = [
            a.model_copy()
            for a in ledger.active_agents()
            if a.kind == "celebrity" and get_celebrity_agent(a.id) is not None
        ]
        candidates = select_markets_for_agent(
            analyzable_markets(state, settings.analysis.candidate_pool_size),
            settings.analysis,
        )
        predicted = {(p.agent_id, p.market_id) for p in state.predictions.values()}

    session.markets_considered = len(candidates)
    if not candidates:
        logger.warning("No markets available for analysis; run refresh-markets first")
    pairs = distribute_markets(candidates, agents, settings.analysis.max_markets_per_agent, rng)
    logger.info(
        f"Analysis session ({triggered_by}): {len(agents)} agents, "
        f"{len(candidates)} candidate markets, {len(pairs)} analyses"
    )

    for agent, market in pairs:
        analysis = MarketAnalysis(agent_id=agent.id, market_id=market.polymarket_id)
        session.analyses.append(analysis)

        if (agent.id, market.polymarket_id) in predicted:
            analysis.skipped_reason = "already predicted"
            continue

        persona = get_celebrity_agent(agent.id)
        try:
            decision = await analyze_market(persona, market)
        except Exception as e:
            logger.error(f"{agent.name} failed to analyze {market.polymarket_id}: {e}")
            analysis.error = str(e)
            continue
        analysis.decision = decision

        try:
            _place_bet(analysis, decision, settings, data_dir)
        except (ArenaError, ValueError) as e:
            logger.error(f"{agent.name} could not bet on {market.polymarket_id}: {e}")
            analysis.error = str(e)
            continue

        if analysis.prediction_id:
            logger.info(
                f"{agent.name}: {decision.prediction} @ {decision.confidence:.0%} "
                f"on '{market.question[:60]}' (${analysis.bet_amount:.2f})"
            )
        else:
            logger.info(f"{agent.name} passed on {market.polymarket_id}: {analysis.skipped_reason}")

    session.completed_at = utc_now()
    logger.info(
        f"✓ Analysis session complete: {session.bets_placed} bets, "
        f"{len(session.errors)} errors"
    )
    return session


def analysis_job() -> None:
    """Scheduler job wrapper for an analysis session."""
    try:
        asyncio.run(run_analysis_session(triggered_by="scheduler"))
    except Exception as e:
        logger.error(f"Analysis session failed: {e}", exc_info=True)
