from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

DEFAULT_PRICE = 0.5


def _to_float(value: Any, default: float | None = None) -> float | None:
    """Gamma returns numbers as either JSON numbers or numeric strings."""
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _load_list(value: Any) -> list[Any] | None:
    """Decode a field that may be a list or a JSON-encoded list."""
    if isinstance(value, list):
        return value
    if isinstance(value, str) and value:
        try:
            decoded = json.loads(value)
        except json.JSONDecodeError:
            return None
        return decoded if isinstance(decoded, list) else None
    return None


def _prices_from_outcomes(data: dict[str, Any]) -> tuple[float, float] | None:
    prices = _load_list(data.get("outcomePrices"))
    if not prices or len(prices) < 2:
        return None

    yes_idx, no_idx = 0, 1
    outcomes = _load_list(data.get("outcomes"))
    if outcomes and len(outcomes) == len(prices):
        labels = [str(o).strip().lower() for o in outcomes]
        if "yes" in labels and "no" in labels:
            yes_idx, no_idx = labels.index("yes"), labels.index("no")

    yes_price = _to_float(prices[yes_idx])
    no_price = _to_float(prices[no_idx])
    if yes_price is None or no_price is None:
        return None
    return yes_price, no_price


def _prices_from_tokens(data: dict[str, Any]) -> tuple[float, float] | None:
    tokens = data.get("tokens")
    if not isinstance(tokens, list):
        return None

    found: dict[str, float] = {}
    for token in tokens:
        if not isinstance(token, dict):
            continue
        outcome = str(token.get("outcome", "")).strip().lower()
        price = _to_float(token.get("price"))
        if outcome in ("yes", "no") and price is not None:
            found[outcome] = price

    if "yes" in found and "no" in found:
        return found["yes"], found["no"]
    return None


def _prices_from_direct_fields(data: dict[str, Any]) -> tuple[float, float] | None:
    yes_price = _to_float(data.get("yes_price"))
    no_price = _to_float(data.get("no_price"))
    if yes_price is None or no_price is None:
        return None
    return yes_price, no_price


def _prices_from_order_book(data: dict[str, Any]) -> tuple[float, float] | None:
    best_bid = _to_float(data.get("bestBid"))
    best_ask = _to_float(data.get("bestAsk"))
    if best_bid is not None and best_ask is not None:
        yes_price = (best_bid + best_ask) / 2
        return yes_price, 1 - yes_price

    last_trade = _to_float(data.get("lastTradePrice"))
    if last_trade is not None:
        return last_trade, 1 - last_trade
    return None


def parse_market_prices(data: dict[str, Any]) -> tuple[float, float]:
    """Extract (yes_price, no_price) from a Gamma market payload.

    Sources are tried in order: ``outcomePrices`` (list or JSON string,
    aligned with ``outcomes`` when present), legacy ``tokens``, direct
    ``yes_price``/``no_price`` fields, then the best bid/ask midpoint or the
    last trade price. Falls back to an even 0.5/0.5 market.
    """
    for extractor in (
        _prices_from_outcomes,
        _prices_from_tokens,
        _prices_from_direct_fields,
        _prices_from_order_book,
    ):
        prices = extractor(data)
        if prices is not None:
            yes_price, no_price = prices
            return _clamp(yes_price), _clamp(no_price)

    logger.debug(f"No price data for market {data.get('id')}, defaulting to 0.5/0.5")
    return DEFAULT_PRICE, DEFAULT_PRICE


def _clamp(price: float) -> float:
    return min(1.0, max(0.0, price))


def _first_float(data: dict[str, Any], *keys: str) -> float:
    for key in keys:
        value = _to_float(data.get(key))
        if value is not None:
            return value
    return 0.0


class MarketOdds(BaseModel):
    """Point-in-time implied probabilities for one market."""

    market_id: str
    yes_price: float
    no_price: float
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def price_for(self, side: Literal["YES", "NO"]) -> float:
        return self.yes_price if side == "YES" else self.no_price

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> MarketOdds:
        yes_price, no_price = parse_market_prices(data)
        return cls(
            market_id=str(data.get("id", "")),
            yes_price=yes_price,
            no_price=no_price,
        )


class GammaMarket(BaseModel):
    id: str
    question: str = ""
    description: str = ""
    slug: str = ""
    yes_price: float = DEFAULT_PRICE
    no_price: float = DEFAULT_PRICE
    volume: float = 0.0
    volume_24hr: float = 0.0
    liquidity: float = 0.0
    end_date: datetime | None = None
    start_date: datetime | None = None
    category: str = "Other"
    image_url: str | None = None
    active: bool = True
    closed: bool = False
    archived: bool = False

    @field_validator("end_date", "start_date", mode="before")
    @classmethod
    def parse_datetime(cls, v: Any) -> datetime | None:
        if v is None or v == "":
            return None
        if isinstance(v, datetime):
            return v
        try:
            parsed = datetime.fromisoformat(v.replace("Z", "+00:00"))
        except (ValueError, AttributeError):
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed

    @property
    def odds(self) -> MarketOdds:
        return MarketOdds(market_id=self.id, yes_price=self.yes_price, no_price=self.no_price)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> GammaMarket:
        yes_price, no_price = parse_market_prices(data)
        return cls(
            id=str(data.get("id", "")),
            question=data.get("question") or "",
            description=data.get("description") or "",
            slug=data.get("slug") or "",
            yes_price=yes_price,
            no_price=no_price,
            volume=_first_float(data, "volume", "volumeNum", "volumeAmm", "volumeClob"),
            volume_24hr=_first_float(data, "volume24hr", "volume24hrClob"),
            liquidity=_first_float(data, "liquidity", "liquidityNum"),
            end_date=data.get("endDate") or data.get("endDateIso"),
            start_date=data.get("startDate") or data.get("startDateIso"),
            category=data.get("categoryLabel") or data.get("category") or "Other",
            image_url=data.get("image") or data.get("icon"),
            active=bool(data.get("active", True)),
            closed=bool(data.get("closed", False)),
            archived=bool(data.get("archived", False)),
        )
