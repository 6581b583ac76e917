class PolymarketAPIError(Exception):
    """Base exception for Polymarket API errors."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class PolymarketRateLimitError(PolymarketAPIError):
    """Rate limit exceeded."""

    pass


class PolymarketNotFoundError(PolymarketAPIError):
    """Market not found."""

    pass
