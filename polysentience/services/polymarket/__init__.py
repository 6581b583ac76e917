from .client import GammaClient
from .config import PolymarketConfig
from .exceptions import (
    PolymarketAPIError,
    PolymarketNotFoundError,
    PolymarketRateLimitError,
)
from .models import GammaMarket, MarketOdds, parse_market_prices

__all__ = [
    "GammaClient",
    "PolymarketConfig",
    "PolymarketAPIError",
    "PolymarketNotFoundError",
    "PolymarketRateLimitError",
    "GammaMarket",
    "MarketOdds",
    "parse_market_prices",
]
