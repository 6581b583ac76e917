"""Bet sizing rules for agents.

Pure functions: a confidence-tiered base stake, a psychology adjustment for
streaks and ROI, and an affordability check that keeps a cash reserve.
"""

from polysentience.config import BettingConfig
from polysentience.storage.models import Agent
from polysentience.valuation import round_money


def calculate_bet_amount(
    confidence: float,
    balance: float,
    config: BettingConfig | None = None,
) -> float:
    """Size a bet from model confidence and the agent's balance.

    Returns 0.0 when the agent is at or below its reserve or the confidence
    is below the lowest tier.
    """
    config = config or BettingConfig()
    if not (0 <= confidence <= 1):
        raise ValueError(f"Confidence must be between 0 and 1, got {confidence}")

    if balance <= config.reserve_balance:
        return 0.0

    max_bet = min(config.max_bet, balance * config.max_bet_pct)

    ratio = 0.0
    for threshold, fraction in sorted(config.confidence_tiers, reverse=True):
        if confidence >= threshold:
            ratio = fraction
            break
    if ratio <= 0:
        return 0.0

    bet = max(config.min_bet, max_bet * ratio)
    return round_money(max(0.0, min(bet, balance - config.reserve_balance)))


def adjust_bet_for_psychology(
    amount: float,
    agent: Agent,
    config: BettingConfig | None = None,
) -> float:
    """Scale a bet for the agent's streak and ROI, clamped to [min_bet, max_bet]."""
    config = config or BettingConfig()
    if amount <= 0:
        return 0.0

    adjusted = amount
    if agent.current_streak >= config.hot_streak:
        adjusted *= config.hot_streak_multiplier
    elif agent.current_streak <= config.cold_streak:
        adjusted *= config.cold_streak_multiplier

    if agent.roi < config.losing_roi_pct:
        adjusted *= config.losing_roi_multiplier
    elif agent.roi > config.winning_roi_pct:
        adjusted *= config.winning_roi_multiplier

    return round_money(max(config.min_bet, min(config.max_bet, adjusted)))


def can_make_bet(
    agent: Agent,
    amount: float,
    config: BettingConfig | None = None,
) -> bool:
    config = config or BettingConfig()
    if agent.is_bankrupt or not agent.is_active:
        return False
    return (
        amount > 0
        and agent.current_balance >= amount
        and agent.current_balance > config.reserve_balance
    )
