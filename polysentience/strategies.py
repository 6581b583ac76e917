"""Trading strategy catalogue shared by celebrity and user agents."""

from enum import StrEnum

from pydantic import BaseModel


class StrategyType(StrEnum):
    DATA_DRIVEN = "DATA_DRIVEN"
    ACADEMIC = "ACADEMIC"
    MOMENTUM = "MOMENTUM"
    SPEED_DEMON = "SPEED_DEMON"
    CONTRARIAN = "CONTRARIAN"
    CONSERVATIVE = "CONSERVATIVE"
    SOCIAL_SENTIMENT = "SOCIAL_SENTIMENT"


class Strategy(BaseModel):
    type: StrategyType
    name: str
    description: str
    risk_tolerance: str


STRATEGIES: dict[StrategyType, Strategy] = {
    StrategyType.DATA_DRIVEN: Strategy(
        type=StrategyType.DATA_DRIVEN,
        name="Data Driven",
        description="Weighs base rates, polling and hard statistics over narrative.",
        risk_tolerance="medium",
    ),
    StrategyType.ACADEMIC: Strategy(
        type=StrategyType.ACADEMIC,
        name="Academic",
        description="Builds a careful, sourced thesis before committing capital.",
        risk_tolerance="low",
    ),
    StrategyType.MOMENTUM: Strategy(
        type=StrategyType.MOMENTUM,
        name="Momentum",
        description="Follows recent price and volume moves.",
        risk_tolerance="high",
    ),
    StrategyType.SPEED_DEMON: Strategy(
        type=StrategyType.SPEED_DEMON,
        name="Speed Demon",
        description="Decides quickly on first impressions and breaking news.",
        risk_tolerance="high",
    ),
    StrategyType.CONTRARIAN: Strategy(
        type=StrategyType.CONTRARIAN,
        name="Contrarian",
        description="Bets against lopsided consensus.",
        risk_tolerance="high",
    ),
    StrategyType.CONSERVATIVE: Strategy(
        type=StrategyType.CONSERVATIVE,
        name="Conservative",
        description="Only bets when the edge is clear and downside is small.",
        risk_tolerance="low",
    ),
    StrategyType.SOCIAL_SENTIMENT: Strategy(
        type=StrategyType.SOCIAL_SENTIMENT,
        name="Social Sentiment",
        description="Reads the crowd on social media and news flow.",
        risk_tolerance="medium",
    ),
}


def get_strategy(strategy_type: str) -> Strategy:
    """Look up a strategy by type, raising ValueError for unknown types."""
    try:
        return STRATEGIES[StrategyType(strategy_type)]
    except ValueError:
        raise ValueError(f"Invalid strategy type: {strategy_type}") from None
