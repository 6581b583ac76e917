"""Job scheduler using APScheduler."""

import logging

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.interval import IntervalTrigger

from polysentience.agents.analyst import analysis_job
from polysentience.bankruptcy import bankruptcy_job
from polysentience.config import Settings
from polysentience.markets import refresh_job
from polysentience.positions import position_management_job
from polysentience.tracker import tracker_job

logger = logging.getLogger(__name__)


def build_scheduler(settings: Settings) -> BlockingScheduler:
    """Create a scheduler with every arena job registered."""
    scheduler = BlockingScheduler(job_defaults={"coalesce": True, "max_instances": 1})
    cfg = settings.scheduler

    scheduler.add_job(
        tracker_job,
        IntervalTrigger(seconds=cfg.tracker_interval_seconds),
        id="odds-tracker",
        name="Odds Tracker",
    )
    logger.info(f"Registered job: Odds Tracker (every {cfg.tracker_interval_seconds}s)")

    scheduler.add_job(
        position_management_job,
        IntervalTrigger(minutes=cfg.position_management_minutes),
        id="position-management",
        name="Position Management",
    )
    logger.info(
        f"Registered job: Position Management (every {cfg.position_management_minutes} min)"
    )

    scheduler.add_job(
        refresh_job,
        IntervalTrigger(minutes=cfg.market_refresh_minutes),
        id="market-refresh",
        name="Market Cache Refresh",
    )
    logger.info(f"Registered job: Market Refresh (every {cfg.market_refresh_minutes} min)")

    scheduler.add_job(
        bankruptcy_job,
        IntervalTrigger(minutes=cfg.bankruptcy_check_minutes),
        id="bankruptcy-check",
        name="Bankruptcy Check",
    )
    logger.info(f"Registered job: Bankruptcy Check (every {cfg.bankruptcy_check_minutes} min)")

    if cfg.analysis_enabled:
        scheduler.add_job(
            analysis_job,
            IntervalTrigger(minutes=cfg.analysis_minutes),
            id="analysis-session",
            name="Analysis Session",
        )
        logger.info(f"Registered job: Analysis Session (every {cfg.analysis_minutes} min)")

    return scheduler


def start_scheduler(settings: Settings) -> None:
    """Start the blocking scheduler until interrupted."""
    scheduler = build_scheduler(settings)

    try:
        logger.info("✓ Scheduler starting...")
        logger.info(f"✓ {len(scheduler.get_jobs())} jobs registered")
        logger.info("Press Ctrl+C to stop\n")

        scheduler.start()

    except (KeyboardInterrupt, SystemExit):
        logger.info("\nReceived interrupt signal")
        scheduler.shutdown()
        logger.info("✓ Scheduler stopped cleanly")
