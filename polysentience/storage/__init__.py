from .models import (
    Agent,
    CloseReason,
    Market,
    Odds,
    OddsSnapshot,
    PositionStatus,
    Prediction,
    Side,
    Transaction,
    TransactionType,
)
from .state import ArenaState, get_data_dir, load_state, save_state, state_transaction

__all__ = [
    "Agent",
    "ArenaState",
    "CloseReason",
    "Market",
    "Odds",
    "OddsSnapshot",
    "PositionStatus",
    "Prediction",
    "Side",
    "Transaction",
    "TransactionType",
    "get_data_dir",
    "load_state",
    "save_state",
    "state_transaction",
]
