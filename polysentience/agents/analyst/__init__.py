"""Analyst Agent package: persona-driven market analysis and betting."""

from polysentience.agents.analyst.main import (
    analysis_job,
    analyze_market,
    distribute_markets,
    get_analyst_agent,
    run_analysis_session,
    select_markets_for_agent,
)
from polysentience.agents.analyst.models import (
    AnalysisSession,
    MarketAnalysis,
    PredictionDecision,
)

__all__ = [
    "analysis_job",
    "analyze_market",
    "distribute_markets",
    "get_analyst_agent",
    "run_analysis_session",
    "select_markets_for_agent",
    "AnalysisSession",
    "MarketAnalysis",
    "PredictionDecision",
]
