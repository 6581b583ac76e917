"""Mark-to-market valuation of open positions.

A position pays ``bet / entry_price`` if its side wins. Its value at any
moment is that payout weighted by the side's current implied probability.
"""

from polysentience.storage.models import Odds, Prediction, Side


def round_money(value: float) -> float:
    return round(value, 2)


def side_price(odds: Odds, side: Side) -> float:
    """Implied probability of ``side`` winning."""
    return odds.yes_price if side == "YES" else odds.no_price


def calculate_max_payout(bet_amount: float, entry_price: float) -> float:
    """Payout on a winning resolution; the stake itself when entry price is unknown."""
    if bet_amount < 0:
        raise ValueError(f"Bet amount must be non-negative, got {bet_amount}")
    if entry_price <= 0:
        return bet_amount
    return bet_amount / entry_price


def calculate_expected_payout(
    bet_amount: float, entry_price: float, current_price: float
) -> float:
    """Current probability times the winning payout, rounded to cents."""
    if not (0 <= current_price <= 1):
        raise ValueError(f"Current price must be between 0 and 1, got {current_price}")
    return round_money(current_price * calculate_max_payout(bet_amount, entry_price))


def calculate_unrealized_pnl(
    bet_amount: float, entry_price: float, current_price: float
) -> float:
    if not (0 <= current_price <= 1):
        raise ValueError(f"Current price must be between 0 and 1, got {current_price}")
    value = current_price * calculate_max_payout(bet_amount, entry_price)
    return round_money(value - bet_amount)


def value_position(prediction: Prediction, odds: Odds) -> tuple[float, float]:
    """Return (expected_payout, unrealized_pnl) for a position at ``odds``."""
    current_price = side_price(odds, prediction.prediction)
    entry_price = prediction.entry_price
    return (
        calculate_expected_payout(prediction.bet_amount, entry_price, current_price),
        calculate_unrealized_pnl(prediction.bet_amount, entry_price, current_price),
    )
