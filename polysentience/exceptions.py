"""Domain errors raised by the arena ledger and engines."""


class ArenaError(Exception):
    """Base exception for arena operations."""

    pass


class AgentNotFoundError(ArenaError, KeyError):
    """No agent with the given id."""

    def __init__(self, agent_id: str):
        super().__init__(f"Agent not found: {agent_id}")
        self.agent_id = agent_id

    def __str__(self) -> str:
        return self.args[0]


class PredictionNotFoundError(ArenaError, KeyError):
    """No prediction with the given id."""

    def __init__(self, prediction_id: str):
        super().__init__(f"Prediction not found: {prediction_id}")
        self.prediction_id = prediction_id

    def __str__(self) -> str:
        return self.args[0]


class MarketNotFoundError(ArenaError, KeyError):
    """Market is not in the local cache."""

    def __init__(self, market_id: str):
        super().__init__(f"Market not found: {market_id}")
        self.market_id = market_id

    def __str__(self) -> str:
        return self.args[0]


class InsufficientBalanceError(ArenaError):
    """Agent cannot cover a bet and its research cost."""

    def __init__(self, agent_id: str, required: float, available: float):
        super().__init__(
            f"Agent {agent_id} has insufficient balance: "
            f"requires ${required:.2f}, has ${available:.2f}"
        )
        self.agent_id = agent_id
        self.required = required
        self.available = available
