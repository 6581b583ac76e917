from pydantic import BaseModel


class PolymarketConfig(BaseModel):
    """Configuration for the Polymarket Gamma API client."""

    base_url: str = "https://gamma-api.polymarket.com"
    timeout_seconds: float = 45.0
    max_connections: int = 20
    max_keepalive_connections: int = 10
    default_page_size: int = 100
    max_page_size: int = 1000  # A limit of 0 means "as many as allowed"
    max_retries: int = 3
