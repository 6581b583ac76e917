"""FastAPI dashboard server for the Polysentience arena."""

import logging
from pathlib import Path
from typing import Literal

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from polysentience import __version__
from polysentience.config import get_settings
from polysentience.exceptions import AgentNotFoundError, MarketNotFoundError
from polysentience.ledger import AgentLedger, AgentStats, LeaderboardSort
from polysentience.markets import manually_resolve_market, markets_by_category, search_markets
from polysentience.positions import PositionReport, position_report
from polysentience.storage.models import Agent, Market, Prediction, Transaction
from polysentience.storage.state import ArenaState, load_state
from polysentience.tracker import TrackerStats, odds_tracker

logger = logging.getLogger(__name__)

app = FastAPI(title="Polysentience Arena API", version=__version__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:3001"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class AgentDetail(BaseModel):
    agent: Agent
    stats: AgentStats


class ResolveRequest(BaseModel):
    outcome: Literal["YES", "NO"]


class ResolveResponse(BaseModel):
    market_id: str
    outcome: Literal["YES", "NO"]
    predictions_resolved: int


def get_data_dir() -> Path:
    return get_settings().data_dir


def get_state(data_dir: Path = Depends(get_data_dir)) -> ArenaState:
    return load_state(data_dir)


def get_ledger(state: ArenaState = Depends(get_state)) -> AgentLedger:
    return AgentLedger(state)


@app.get("/health")
async def health():
    return {"status": "ok", "version": __version__}


@app.get("/api/agents", response_model=list[Agent])
async def list_agents(
    active_only: bool = False,
    ledger: AgentLedger = Depends(get_ledger),
):
    return ledger.active_agents() if active_only else ledger.all_agents()


@app.get("/api/agents/{agent_id}", response_model=AgentDetail)
async def get_agent(agent_id: str, ledger: AgentLedger = Depends(get_ledger)):
    try:
        return AgentDetail(agent=ledger.get_agent(agent_id), stats=ledger.agent_stats(agent_id))
    except AgentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@app.get("/api/agents/{agent_id}/predictions", response_model=list[Prediction])
async def get_agent_predictions(agent_id: str, ledger: AgentLedger = Depends(get_ledger)):
    if ledger.find_agent(agent_id) is None:
        raise HTTPException(status_code=404, detail=f"Agent not found: {agent_id}")
    return ledger.agent_predictions(agent_id)


@app.get("/api/agents/{agent_id}/transactions", response_model=list[Transaction])
async def get_agent_transactions(agent_id: str, ledger: AgentLedger = Depends(get_ledger)):
    if ledger.find_agent(agent_id) is None:
        raise HTTPException(status_code=404, detail=f"Agent not found: {agent_id}")
    return ledger.agent_transactions(agent_id)


@app.get("/api/leaderboard", response_model=list[Agent])
async def leaderboard(
    sort_by: LeaderboardSort = "balance",
    ledger: AgentLedger = Depends(get_ledger),
):
    return ledger.leaderboard(sort_by)


@app.get("/api/predictions", response_model=list[Prediction])
async def recent_predictions(
    limit: int = Query(default=50, ge=1, le=500),
    ledger: AgentLedger = Depends(get_ledger),
):
    return ledger.recent_predictions(limit)


@app.get("/api/markets", response_model=list[Market])
async def list_markets(
    query: str | None = None,
    category: str | None = None,
    limit: int = Query(default=50, ge=1, le=500),
    state: ArenaState = Depends(get_state),
):
    if query:
        return search_markets(state, query, limit)
    if category:
        return markets_by_category(state, category, limit)
    markets = sorted(state.markets.values(), key=lambda m: m.volume, reverse=True)
    return markets[:limit]


@app.get("/api/markets/{market_id}/predictions", response_model=list[Prediction])
async def market_predictions(market_id: str, state: ArenaState = Depends(get_state)):
    return sorted(
        (p for p in state.predictions.values() if p.market_id == market_id),
        key=lambda p: p.created_at,
        reverse=True,
    )


@app.post("/api/markets/{market_id}/resolve", response_model=ResolveResponse)
def resolve_market(
    market_id: str,
    request: ResolveRequest,
    data_dir: Path = Depends(get_data_dir),
):
    try:
        resolved = manually_resolve_market(market_id, request.outcome, data_dir)
    except MarketNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return ResolveResponse(
        market_id=market_id, outcome=request.outcome, predictions_resolved=resolved
    )


@app.get("/api/positions/report", response_model=PositionReport)
async def get_position_report(ledger: AgentLedger = Depends(get_ledger)):
    return position_report(ledger)


@app.get("/api/tracker", response_model=TrackerStats)
def tracker_status():
    return odds_tracker.stats()


@app.post("/api/tracker/start", response_model=TrackerStats)
def start_tracker(interval_seconds: int | None = Query(default=None, ge=1)):
    odds_tracker.start(interval_seconds)
    return odds_tracker.stats()


@app.post("/api/tracker/stop", response_model=TrackerStats)
def stop_tracker():
    odds_tracker.stop()
    return odds_tracker.stats()
