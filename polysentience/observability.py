"""Logfire observability initialization and instrumentation."""

import logging

import logfire

from polysentience import __version__
from polysentience.config import Settings

logger = logging.getLogger(__name__)


def initialize_logfire(settings: Settings) -> None:
    """Initialize Logfire tracing for the arena.

    Must be called once at startup, before any jobs run. Instruments:
    - PydanticAI agents (market analyst)
    - HTTPX clients (Polymarket Gamma API)
    - Python logging (bridged to Logfire)

    Observability is optional: a missing token or a failure here is logged
    and the process keeps running.
    """
    if not settings.logfire_token:
        logger.warning("Logfire token not set - observability disabled")
        return

    try:
        logfire.configure(
            token=settings.logfire_token,
            service_name="polysentience",
            service_version=__version__,
            environment=settings.environment,
        )

        logfire.instrument_pydantic_ai()
        logfire.instrument_httpx()

        root_logger = logging.getLogger()
        root_logger.addHandler(logfire.LogfireLoggingHandler())

        logger.info("✓ Logfire cloud tracking initialized")

    except Exception as e:
        logger.warning(f"Failed to initialize Logfire: {e}")
