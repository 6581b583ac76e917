"""Bankruptcy checks: retire agents whose balance is exhausted."""

import logging
from pathlib import Path

from polysentience.ledger import AgentLedger
from polysentience.storage.models import utc_now
from polysentience.storage.state import state_transaction

logger = logging.getLogger(__name__)


def mark_bankrupt_agents(ledger: AgentLedger) -> list[str]:
    """Flag agents at or below zero balance as bankrupt and inactive."""
    bankrupted: list[str] = []
    now = utc_now()

    for agent in ledger.all_agents():
        if agent.is_bankrupt or agent.current_balance > 0:
            continue
        agent.is_bankrupt = True
        agent.is_active = False
        agent.is_running = False
        agent.bankruptcy_date = now
        agent.last_updated = now
        bankrupted.append(agent.id)
        logger.warning(f"💀 {agent.name} is bankrupt (balance ${agent.current_balance:.2f})")

    return bankrupted


def run_bankruptcy_check(data_dir: Path | None = None) -> list[str]:
    with state_transaction(data_dir) as state:
        return mark_bankrupt_agents(AgentLedger(state))


def bankruptcy_job() -> None:
    """Scheduler job wrapper for bankruptcy checks."""
    try:
        bankrupted = run_bankruptcy_check()
        if bankrupted:
            logger.info(f"Bankruptcy check: {len(bankrupted)} agents retired")
    except Exception as e:
        logger.error(f"Bankruptcy check failed: {e}", exc_info=True)
