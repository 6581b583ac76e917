"""Tests for scheduler job registration."""

from polysentience.config import SchedulerConfig, Settings
from polysentience.scheduler import build_scheduler


def test_core_jobs_registered() -> None:
    scheduler = build_scheduler(Settings())

    assert {job.id for job in scheduler.get_jobs()} == {
        "odds-tracker",
        "position-management",
        "market-refresh",
        "bankruptcy-check",
    }


def test_analysis_job_is_opt_in() -> None:
    settings = Settings(scheduler=SchedulerConfig(analysis_enabled=True))

    ids = {job.id for job in build_scheduler(settings).get_jobs()}

    assert "analysis-session" in ids
