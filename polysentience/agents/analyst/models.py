"""Pydantic models for the market analyst."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from polysentience.roster import CelebrityAgent
from polysentience.storage.models import Market
from polysentience.strategies import Strategy


class AnalystDependencies(BaseModel):
    """Persona and market injected into an analyst run."""

    persona: CelebrityAgent
    strategy: Strategy
    market: Market


class PredictionDecision(BaseModel):
    """Structured verdict returned by the analyst model."""

    prediction: Literal["YES", "NO"]
    confidence: float = Field(ge=0.5, le=1.0, description="Probability the chosen side wins")
    reasoning: str = Field(description="Two to four sentences explaining the call")


class MarketAnalysis(BaseModel):
    """Outcome of one agent analyzing one market."""

    agent_id: str
    market_id: str
    decision: PredictionDecision | None = None
    bet_amount: float = 0.0
    prediction_id: str | None = None
    skipped_reason: str | None = None
    error: str | None = None


class AnalysisSession(BaseModel):
    """Summary of an analysis session across all agents."""

    triggered_by: str = "manual"
    started_at: datetime
    completed_at: datetime | None = None
    agents_seeded: int = 0
    markets_considered: int = 0
    analyses: list[MarketAnalysis] = Field(default_factory=list)

    @property
    def bets_placed(self) -> int:
        return sum(1 for a in self.analyses if a.prediction_id)

    @property
    def errors(self) -> list[MarketAnalysis]:
        return [a for a in self.analyses if a.error]
