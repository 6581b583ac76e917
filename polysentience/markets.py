"""Local cache of Polymarket markets and market resolution."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from pydantic import BaseModel, Field

from polysentience.config import Settings, get_settings
from polysentience.exceptions import MarketNotFoundError
from polysentience.ledger import AgentLedger
from polysentience.services.polymarket import (
    GammaClient,
    GammaMarket,
    PolymarketAPIError,
)
from polysentience.storage.models import Market, Side, utc_now
from polysentience.storage.state import ArenaState, load_state, state_transaction

logger = logging.getLogger(__name__)

PRICE_CHANGE_THRESHOLD = 0.001
RESOLUTION_HIGH = 0.9
RESOLUTION_LOW = 0.1

_CONTENT_FIELDS = ("question", "description", "category", "end_date", "market_slug", "image_url")
_STATUS_FIELDS = ("active", "resolved", "archived")


class UpsertResult(BaseModel):
    added: int = 0
    updated: int = 0
    skipped: int = 0
    total: int = 0
    newly_resolved: list[str] = Field(default_factory=list)


class RefreshResult(BaseModel):
    upsert: UpsertResult = Field(default_factory=UpsertResult)
    fetched: int = 0
    predictions_resolved: int = 0
    undetermined: list[str] = Field(default_factory=list)


def market_from_gamma(gamma: GammaMarket, source: str = "polymarket") -> Market:
    return Market(
        polymarket_id=gamma.id,
        question=gamma.question,
        description=gamma.description,
        market_slug=gamma.slug,
        yes_price=gamma.yes_price,
        no_price=gamma.no_price,
        volume=gamma.volume,
        volume_24hr=gamma.volume_24hr,
        liquidity=gamma.liquidity,
        end_date=gamma.end_date,
        start_date=gamma.start_date,
        category=gamma.category,
        image_url=gamma.image_url,
        active=gamma.active,
        resolved=gamma.closed,
        archived=gamma.archived,
        source=source,
    )


def _changed_beyond(old: float, new: float, pct: float, floor: float) -> bool:
    return abs(new - old) > max(abs(old) * pct, floor)


def should_update_market(existing: Market, fresh: Market) -> bool:
    """Whether ``fresh`` differs enough from the cached copy to be written."""
    if (
        abs(fresh.yes_price - existing.yes_price) > PRICE_CHANGE_THRESHOLD
        or abs(fresh.no_price - existing.no_price) > PRICE_CHANGE_THRESHOLD
    ):
        return True
    if _changed_beyond(existing.volume, fresh.volume, 0.01, 100):
        return True
    if _changed_beyond(existing.volume_24hr, fresh.volume_24hr, 0.01, 50):
        return True
    if _changed_beyond(existing.liquidity, fresh.liquidity, 0.05, 50):
        return True
    if any(getattr(existing, f) != getattr(fresh, f) for f in _STATUS_FIELDS):
        return True
    return any(getattr(existing, f) != getattr(fresh, f) for f in _CONTENT_FIELDS)


def upsert_markets(state: ArenaState, fresh_markets: list[Market]) -> UpsertResult:
    """Merge fetched markets into the cache, keeping local analysis flags."""
    result = UpsertResult(total=len(fresh_markets))
    now = utc_now()

    for fresh in fresh_markets:
        existing = state.markets.get(fresh.polymarket_id)
        if existing is None:
            fresh.analyzed = False
            fresh.created_at = now
            fresh.updated_at = now
            state.markets[fresh.polymarket_id] = fresh
            result.added += 1
            if fresh.resolved:
                result.newly_resolved.append(fresh.polymarket_id)
            continue

        if not should_update_market(existing, fresh):
            result.skipped += 1
            continue

        if fresh.resolved and not existing.resolved:
            result.newly_resolved.append(fresh.polymarket_id)

        state.markets[fresh.polymarket_id] = fresh.model_copy(
            update={
                "analyzed": existing.analyzed,
                "created_at": existing.created_at,
                "updated_at": now,
            }
        )
        result.updated += 1

    state.markets_updated_at = now
    logger.info(
        f"Market upsert: {result.added} added, {result.updated} updated, "
        f"{result.skipped} skipped of {result.total}"
    )
    return result


def determine_market_outcome(market: Market) -> Side | None:
    """Infer the winning side from final prices; None when undecidable."""
    if market.yes_price > RESOLUTION_HIGH and market.no_price < RESOLUTION_LOW:
        return "YES"
    if market.no_price > RESOLUTION_HIGH and market.yes_price < RESOLUTION_LOW:
        return "NO"
    if market.yes_price > market.no_price:
        return "YES"
    if market.no_price > market.yes_price:
        return "NO"
    return None


def resolve_market_predictions(ledger: AgentLedger, market_id: str, outcome: Side) -> int:
    """Settle every open position in a market. Returns the number settled."""
    positions = ledger.open_positions(market_id)
    for prediction in positions:
        ledger.resolve_prediction(prediction.id, outcome)

    if positions:
        logger.info(f"Resolved {len(positions)} predictions in market {market_id} as {outcome}")
    return len(positions)


async def refresh_markets(
    client: GammaClient,
    limit: int = 100,
    data_dir: Path | None = None,
) -> RefreshResult:
    """Pull open markets into the cache and settle markets that resolved.

    Markets holding open positions are also fetched individually, since the
    open-markets listing stops returning them once they close. A resolved market
    whose outcome could not be determined is retried on later refreshes.
    """
    fetched = await client.get_markets(limit=limit, closed=False)
    fresh = {m.id: m for m in fetched}

    tracked = {p.market_id for p in AgentLedger(load_state(data_dir)).open_positions()}
    for market_id in sorted(tracked - fresh.keys()):
        try:
            fresh[market_id] = await client.get_market(market_id)
        except PolymarketAPIError as e:
            logger.warning(f"Could not refresh tracked market {market_id}: {e}")

    result = RefreshResult(fetched=len(fresh))
    with state_transaction(data_dir) as state:
        ledger = AgentLedger(state)
        result.upsert = upsert_markets(state, [market_from_gamma(m) for m in fresh.values()])

        # Resolved markets still holding open positions are retried every refresh
        pending = {p.market_id for p in ledger.open_positions()}
        to_settle = list(result.upsert.newly_resolved) + sorted(
            market_id
            for market_id in pending - set(result.upsert.newly_resolved)
            if market_id in state.markets and state.markets[market_id].resolved
        )

        for market_id in to_settle:
            market = state.markets[market_id]
            outcome = determine_market_outcome(market)
            if outcome is None:
                logger.warning(f"Could not determine outcome for resolved market {market_id}")
                result.undetermined.append(market_id)
                continue
            result.predictions_resolved += resolve_market_predictions(ledger, market_id, outcome)

        for agent in ledger.all_agents():
            ledger.reconcile_balance(agent.id)

    return result


def manually_resolve_market(
    market_id: str,
    outcome: Side,
    data_dir: Path | None = None,
) -> int:
    """Resolve a cached market by hand and settle its open positions."""
    if outcome not in ("YES", "NO"):
        raise ValueError(f"Outcome must be YES or NO, got {outcome}")

    with state_transaction(data_dir) as state:
        market = state.markets.get(market_id)
        if market is None:
            raise MarketNotFoundError(market_id)

        market.resolved = True
        market.active = False
        market.yes_price, market.no_price = (1.0, 0.0) if outcome == "YES" else (0.0, 1.0)
        market.updated_at = utc_now()

        settled = resolve_market_predictions(AgentLedger(state), market_id, outcome)

    logger.info(f"Manually resolved market {market_id} as {outcome} ({settled} predictions)")
    return settled


# ============================================================================
# Queries
# ============================================================================


def search_markets(state: ArenaState, query: str, limit: int = 50) -> list[Market]:
    needle = query.strip().lower()
    matches = [
        m
        for m in state.markets.values()
        if needle in m.question.lower() or needle in m.description.lower()
    ]
    matches.sort(key=lambda m: m.volume, reverse=True)
    return matches[:limit]


def markets_by_category(state: ArenaState, category: str, limit: int = 50) -> list[Market]:
    matches = [
        m
        for m in state.markets.values()
        if m.category.lower() == category.lower() and m.active and not m.resolved
    ]
    matches.sort(key=lambda m: m.volume, reverse=True)
    return matches[:limit]


def analyzable_markets(state: ArenaState, limit: int = 100) -> list[Market]:
    """Open, unanalyzed markets ordered by volume."""
    matches = [
        m
        for m in state.markets.values()
        if m.active and not m.resolved and not m.archived and not m.analyzed
    ]
    matches.sort(key=lambda m: m.volume, reverse=True)
    return matches[:limit]


def mark_market_analyzed(state: ArenaState, market_id: str) -> None:
    market = state.markets.get(market_id)
    if market is None:
        raise MarketNotFoundError(market_id)
    market.analyzed = True
    market.updated_at = utc_now()


def reset_analyzed_status(state: ArenaState) -> int:
    """Clear the analyzed flag on every cached market. Returns how many changed."""
    count = 0
    for market in state.markets.values():
        if market.analyzed:
            market.analyzed = False
            count += 1
    logger.info(f"Reset analyzed status on {count} markets")
    return count


def refresh_job(settings: Settings | None = None) -> None:
    """Scheduler job wrapper for market cache refresh."""
    settings = settings or get_settings()

    async def _run() -> RefreshResult:
        async with GammaClient(settings.polymarket) as client:
            return await refresh_markets(client, limit=0)

    try:
        result = asyncio.run(_run())
        logger.info(
            f"✓ Market refresh: {result.upsert.added} added, {result.upsert.updated} updated, "
            f"{result.predictions_resolved} predictions resolved"
        )
    except Exception as e:
        logger.error(f"Market refresh failed: {e}", exc_info=True)
