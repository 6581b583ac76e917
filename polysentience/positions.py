"""Position management: cached-odds refresh, early exits and reporting."""

from __future__ import annotations

import logging
import random
from datetime import datetime
from pathlib import Path

from pydantic import BaseModel, Field

from polysentience.config import PositionConfig, Settings, get_settings
from polysentience.ledger import AgentLedger
from polysentience.storage.models import CloseReason, Prediction, utc_now
from polysentience.storage.state import state_transaction

logger = logging.getLogger(__name__)


class AgentPositionSummary(BaseModel):
    count: int = 0
    unrealized_pnl: float = 0.0
    total_bet: float = 0.0


class OldestPosition(BaseModel):
    prediction_id: str
    agent_name: str
    market_question: str
    age_hours: float


class PositionReport(BaseModel):
    total_open: int = 0
    total_unrealized_pnl: float = 0.0
    by_agent: dict[str, AgentPositionSummary] = Field(default_factory=dict)
    oldest_position: OldestPosition | None = None


class PositionCycleResult(BaseModel):
    refreshed: int = 0
    closed: list[str] = Field(default_factory=list)
    report: PositionReport = Field(default_factory=PositionReport)


def position_age_hours(prediction: Prediction, now: datetime | None = None) -> float:
    return ((now or utc_now()) - prediction.created_at).total_seconds() / 3600


def refresh_position_odds(ledger: AgentLedger) -> int:
    """Mark open positions to cached market prices. Returns positions updated."""
    updated = 0
    missing: set[str] = set()

    for prediction in ledger.open_positions():
        market = ledger.state.markets.get(prediction.market_id)
        if market is None:
            missing.add(prediction.market_id)
            continue
        ledger.mark_to_market(prediction.id, market.odds, timestamp=market.updated_at)
        updated += 1

    for market_id in sorted(missing):
        logger.warning(f"Market {market_id} not in cache, positions not refreshed")

    for agent_id in {p.agent_id for p in ledger.open_positions()}:
        ledger.reconcile_balance(agent_id)
    return updated


def should_close_position(
    prediction: Prediction,
    config: PositionConfig,
    rng: random.Random,
    now: datetime | None = None,
) -> CloseReason | None:
    """Decide whether an open position exits this round, and why."""
    pnl_pct = prediction.unrealized_pnl_pct

    if pnl_pct > config.profit_taking_pct:
        if rng.random() < config.profit_taking_probability:
            return CloseReason.PROFIT_TAKING
        return None

    if pnl_pct < config.stop_loss_pct:
        if rng.random() < config.stop_loss_probability:
            return CloseReason.STOP_LOSS
        return None

    exit_chance = min(
        config.random_exit_base + position_age_hours(prediction, now) * config.random_exit_per_hour,
        config.random_exit_max,
    )
    if rng.random() < exit_chance:
        return CloseReason.RANDOM_EXIT
    return None


def manage_positions(
    ledger: AgentLedger,
    config: PositionConfig,
    rng: random.Random | None = None,
    now: datetime | None = None,
) -> list[str]:
    """Apply exit rules to every open position. Returns closed prediction ids."""
    rng = rng or random.Random()
    closed: list[str] = []

    for prediction in ledger.open_positions():
        reason = should_close_position(prediction, config, rng, now)
        if reason is None:
            continue
        ledger.close_position(prediction.id, reason)
        closed.append(prediction.id)

    return closed


def position_report(ledger: AgentLedger, now: datetime | None = None) -> PositionReport:
    report = PositionReport()
    oldest: Prediction | None = None

    for prediction in ledger.open_positions():
        report.total_open += 1
        report.total_unrealized_pnl += prediction.unrealized_pnl

        summary = report.by_agent.setdefault(prediction.agent_name, AgentPositionSummary())
        summary.count += 1
        summary.unrealized_pnl = round(summary.unrealized_pnl + prediction.unrealized_pnl, 2)
        summary.total_bet = round(summary.total_bet + prediction.bet_amount, 2)

        if oldest is None or prediction.created_at < oldest.created_at:
            oldest = prediction

    report.total_unrealized_pnl = round(report.total_unrealized_pnl, 2)
    if oldest is not None:
        report.oldest_position = OldestPosition(
            prediction_id=oldest.id,
            agent_name=oldest.agent_name,
            market_question=oldest.market_question,
            age_hours=round(position_age_hours(oldest, now), 1),
        )
    return report


def _log_report(report: PositionReport) -> None:
    logger.info(
        f"Positions: {report.total_open} open, "
        f"unrealized P&L ${report.total_unrealized_pnl:+.2f}"
    )
    leaders = sorted(report.by_agent.items(), key=lambda kv: kv[1].unrealized_pnl, reverse=True)
    for name, summary in leaders[:3]:
        logger.info(
            f"  {name}: {summary.count} positions, ${summary.unrealized_pnl:+.2f} "
            f"on ${summary.total_bet:.2f} staked"
        )


def run_position_management(
    settings: Settings | None = None,
    data_dir: Path | None = None,
    rng: random.Random | None = None,
) -> PositionCycleResult:
    """Refresh marks from the market cache, apply exit rules and log a report."""
    settings = settings or get_settings()

    with state_transaction(data_dir) as state:
        ledger = AgentLedger(state)
        refreshed = refresh_position_odds(ledger)
        closed = manage_positions(ledger, settings.positions, rng)
        report = position_report(ledger)

    _log_report(report)
    return PositionCycleResult(refreshed=refreshed, closed=closed, report=report)


def position_management_job() -> None:
    """Scheduler job wrapper for position management."""
    try:
        result = run_position_management()
        logger.info(
            f"✓ Position management: {result.refreshed} refreshed, {len(result.closed)} closed"
        )
    except Exception as e:
        logger.error(f"Position management failed: {e}", exc_info=True)
