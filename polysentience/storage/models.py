"""Arena records: agents, predictions, transactions and cached markets."""

from datetime import datetime, timezone
from enum import StrEnum
from typing import Literal
from uuid import uuid4

from pydantic import BaseModel, Field

Side = Literal["YES", "NO"]
AgentKind = Literal["celebrity", "user"]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def generate_agent_id() -> str:
    return f"user_{uuid4().hex[:12]}"


def generate_prediction_id() -> str:
    return f"pred_{uuid4().hex[:12]}"


def generate_transaction_id() -> str:
    return f"txn_{uuid4().hex[:12]}"


class PositionStatus(StrEnum):
    OPEN = "OPEN"
    CLOSED_MANUAL = "CLOSED_MANUAL"
    CLOSED_RESOLVED = "CLOSED_RESOLVED"


class CloseReason(StrEnum):
    PROFIT_TAKING = "PROFIT_TAKING"
    STOP_LOSS = "STOP_LOSS"
    MARKET_RESOLVED = "MARKET_RESOLVED"
    RANDOM_EXIT = "RANDOM_EXIT"


class TransactionType(StrEnum):
    BET_PLACED = "BET_PLACED"
    WIN = "WIN"
    LOSS = "LOSS"
    RESEARCH_COST = "RESEARCH_COST"
    MANUAL_ADJUSTMENT = "MANUAL_ADJUSTMENT"


class Odds(BaseModel):
    """Implied probabilities for both sides of a binary market."""

    yes_price: float = Field(ge=0, le=1)
    no_price: float = Field(ge=0, le=1)

    def price_for(self, side: Side) -> float:
        return self.yes_price if side == "YES" else self.no_price


class OddsSnapshot(Odds):
    timestamp: datetime = Field(default_factory=utc_now)


class Agent(BaseModel):
    """An arena participant and its running balance sheet."""

    id: str
    name: str
    description: str = ""
    strategy: str
    kind: AgentKind = "user"
    model: str | None = None

    current_balance: float
    initial_balance: float
    total_wagered: float = 0.0
    total_winnings: float = 0.0
    total_losses: float = 0.0
    total_research_cost: float = 0.0
    total_adjustments: float = 0.0

    prediction_count: int = 0
    win_count: int = 0
    loss_count: int = 0
    win_rate: float = 0.0  # Percent of settled bets won
    roi: float = 0.0  # Percent, (winnings - wagered) / wagered
    biggest_win: float = 0.0
    biggest_loss: float = 0.0
    current_streak: int = 0  # >0 consecutive wins, <0 consecutive losses

    is_active: bool = True
    is_running: bool = False
    is_bankrupt: bool = False
    bankruptcy_date: datetime | None = None
    notes: str = ""

    created_at: datetime = Field(default_factory=utc_now)
    last_updated: datetime = Field(default_factory=utc_now)

    @property
    def net_profit(self) -> float:
        return round(self.current_balance - self.initial_balance, 2)

    @property
    def settled_count(self) -> int:
        return self.win_count + self.loss_count


class Prediction(BaseModel):
    """A bet placed by one agent on one side of one market."""

    id: str = Field(default_factory=generate_prediction_id)
    agent_id: str
    agent_name: str
    market_id: str
    market_question: str

    prediction: Side
    confidence: float = Field(ge=0, le=1)
    reasoning: str = ""
    research_cost: float = 0.0
    research_sources: list[str] = Field(default_factory=list)

    price_at_prediction: float
    bet_amount: float
    entry_odds: Odds
    max_payout: float  # Paid on a winning resolution
    expected_payout: float  # Mark-to-market value of the position

    position_status: PositionStatus = PositionStatus.OPEN
    current_market_odds: OddsSnapshot | None = None
    unrealized_pnl: float = 0.0
    close_price: float | None = None
    close_reason: CloseReason | None = None
    closed_at: datetime | None = None

    resolved: bool = False
    correct: bool | None = None
    profit_loss: float | None = None
    actual_payout: float | None = None
    outcome: Side | None = None
    resolved_at: datetime | None = None

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def is_open(self) -> bool:
        return self.position_status == PositionStatus.OPEN and not self.resolved

    @property
    def entry_price(self) -> float:
        return self.entry_odds.price_for(self.prediction)

    @property
    def unrealized_pnl_pct(self) -> float:
        if self.bet_amount <= 0:
            return 0.0
        return self.unrealized_pnl / self.bet_amount * 100


class Transaction(BaseModel):
    """Immutable entry in an agent's balance history."""

    id: str = Field(default_factory=generate_transaction_id)
    agent_id: str
    type: TransactionType
    amount: float
    balance_before: float
    balance_after: float
    description: str
    prediction_id: str | None = None
    created_at: datetime = Field(default_factory=utc_now)


class Market(BaseModel):
    """Cached mirror of a Polymarket market."""

    polymarket_id: str
    question: str
    description: str = ""
    market_slug: str = ""
    yes_price: float = 0.5
    no_price: float = 0.5
    volume: float = 0.0
    volume_24hr: float = 0.0
    liquidity: float = 0.0
    end_date: datetime | None = None
    start_date: datetime | None = None
    category: str = "Other"
    image_url: str | None = None
    active: bool = True
    resolved: bool = False
    archived: bool = False
    analyzed: bool = False
    source: str = "polymarket"
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def odds(self) -> Odds:
        return Odds(yes_price=self.yes_price, no_price=self.no_price)
