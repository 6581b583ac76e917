"""Market odds tracker: periodic mark-to-market of every open position.

Each cycle groups open positions by market, fetches current odds once per
market, revalues the positions and reconciles the owning agents' balances.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections import defaultdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from pydantic import BaseModel

from polysentience.config import Settings, get_settings
from polysentience.ledger import AgentLedger
from polysentience.services.polymarket import GammaClient, MarketOdds, PolymarketAPIError
from polysentience.storage.models import Odds, Prediction
from polysentience.storage.state import ArenaState, load_state, state_transaction

logger = logging.getLogger(__name__)


class OddsSource(Protocol):
    async def get_market_odds(self, market_id: str) -> MarketOdds: ...


class TrackerCycleResult(BaseModel):
    predictions_updated: int = 0
    markets_fetched: int = 0
    markets_failed: int = 0
    agents_reconciled: int = 0
    duration_ms: float = 0.0
    completed_at: datetime | None = None


class TrackerStats(BaseModel):
    is_active: bool
    total_predictions: int
    unique_markets: int
    last_update: datetime | None
    last_cycle: TrackerCycleResult | None = None


def group_open_predictions_by_market(state: ArenaState) -> dict[str, list[Prediction]]:
    groups: dict[str, list[Prediction]] = defaultdict(list)
    for prediction in AgentLedger(state).open_positions():
        groups[prediction.market_id].append(prediction)
    return dict(groups)


async def _fetch_all_odds(
    source: OddsSource,
    market_ids: list[str],
    request_delay: float,
) -> tuple[dict[str, MarketOdds], int]:
    fetched: dict[str, MarketOdds] = {}
    failed = 0

    for i, market_id in enumerate(market_ids):
        if i and request_delay > 0:
            await asyncio.sleep(request_delay)
        try:
            fetched[market_id] = await source.get_market_odds(market_id)
        except PolymarketAPIError as e:
            failed += 1
            logger.warning(f"Failed to fetch odds for market {market_id}: {e}")

    return fetched, failed


async def run_tracker_cycle(
    source: OddsSource,
    data_dir: Path | None = None,
    request_delay: float = 0.0,
) -> TrackerCycleResult:
    """Revalue all open positions against freshly fetched odds."""
    started = time.perf_counter()
    result = TrackerCycleResult()

    groups = group_open_predictions_by_market(load_state(data_dir))
    if not groups:
        logger.debug("No open predictions to track")
        result.completed_at = datetime.now(timezone.utc)
        return result

    odds_by_market, result.markets_failed = await _fetch_all_odds(
        source, sorted(groups), request_delay
    )
    result.markets_fetched = len(odds_by_market)

    # Re-read inside the transaction so writes made during the fetch survive
    with state_transaction(data_dir) as state:
        ledger = AgentLedger(state)

        for market_id, market_odds in odds_by_market.items():
            odds = Odds(yes_price=market_odds.yes_price, no_price=market_odds.no_price)
            for prediction in ledger.open_positions(market_id):
                ledger.mark_to_market(prediction.id, odds, timestamp=market_odds.timestamp)
                result.predictions_updated += 1

            cached = state.markets.get(market_id)
            if cached is not None:
                cached.yes_price = market_odds.yes_price
                cached.no_price = market_odds.no_price
                cached.updated_at = market_odds.timestamp

        agent_ids = {p.agent_id for p in ledger.open_positions()}
        for agent_id in sorted(agent_ids):
            if ledger.find_agent(agent_id) is None:
                continue
            ledger.reconcile_balance(agent_id)
            result.agents_reconciled += 1

    result.duration_ms = round((time.perf_counter() - started) * 1000, 1)
    result.completed_at = datetime.now(timezone.utc)
    logger.info(
        f"Tracker cycle: {result.predictions_updated} predictions across "
        f"{result.markets_fetched} markets ({result.markets_failed} failed), "
        f"{result.agents_reconciled} agents reconciled in {result.duration_ms}ms"
    )
    return result


async def _run_with_gamma(settings: Settings, data_dir: Path | None) -> TrackerCycleResult:
    async with GammaClient(settings.polymarket) as client:
        return await run_tracker_cycle(
            client,
            data_dir=data_dir,
            request_delay=settings.tracker.request_delay_seconds,
        )


class OddsTracker:
    """Runs tracker cycles on a background interval."""

    JOB_ID = "odds-tracker"

    def __init__(self, settings: Settings | None = None, data_dir: Path | None = None):
        self._settings = settings
        self._data_dir = data_dir
        self._scheduler: BackgroundScheduler | None = None
        self._lock = threading.Lock()
        self.last_cycle: TrackerCycleResult | None = None

    @property
    def settings(self) -> Settings:
        return self._settings or get_settings()

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def run_once(self) -> TrackerCycleResult:
        """Run a single cycle synchronously."""
        result = asyncio.run(_run_with_gamma(self.settings, self._data_dir))
        self.last_cycle = result
        return result

    def _job(self) -> None:
        try:
            self.run_once()
        except Exception as e:
            logger.error(f"Tracker cycle failed: {e}", exc_info=True)

    def start(self, interval_seconds: int | None = None) -> bool:
        """Start tracking. Returns False if already running."""
        with self._lock:
            if self.is_running:
                logger.info("Odds tracker already running")
                return False

            interval = interval_seconds or self.settings.tracker.interval_seconds
            scheduler = BackgroundScheduler()
            scheduler.add_job(
                self._job,
                IntervalTrigger(seconds=interval),
                id=self.JOB_ID,
                name="Odds Tracker",
                next_run_time=datetime.now(timezone.utc),
                max_instances=1,
                coalesce=True,
            )
            scheduler.start()
            self._scheduler = scheduler
            logger.info(f"✓ Odds tracker started (every {interval}s)")
            return True

    def stop(self) -> bool:
        """Stop tracking. Returns False if it was not running."""
        with self._lock:
            if not self.is_running:
                return False
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            logger.info("✓ Odds tracker stopped")
            return True

    def stats(self) -> TrackerStats:
        groups = group_open_predictions_by_market(load_state(self._data_dir))
        return TrackerStats(
            is_active=self.is_running,
            total_predictions=sum(len(g) for g in groups.values()),
            unique_markets=len(groups),
            last_update=self.last_cycle.completed_at if self.last_cycle else None,
            last_cycle=self.last_cycle,
        )


odds_tracker = OddsTracker()


def tracker_job() -> None:
    """Scheduler job wrapper for one tracker cycle."""
    try:
        result = asyncio.run(_run_with_gamma(get_settings(), None))
        logger.debug(f"Tracker: {result.predictions_updated} predictions updated")
    except Exception as e:
        logger.error(f"Tracker cycle failed: {e}", exc_info=True)
