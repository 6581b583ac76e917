"""Agent ledger: balances, bets, settlement and standings.

Every mutation of agents, predictions and transactions goes through
``AgentLedger``. The ledger operates on an in-memory ``ArenaState``;
callers persist it, usually inside ``state_transaction``.

An agent's ``current_balance`` is always derived, never accumulated:

    initial - wagered - research + adjustments + winnings + sum(open unrealized P&L)

so it is free cash plus the mark-to-market gain or loss on open positions.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ValidationError

from polysentience.exceptions import (
    AgentNotFoundError,
    InsufficientBalanceError,
    PredictionNotFoundError,
)
from polysentience.storage.models import (
    Agent,
    AgentKind,
    CloseReason,
    Odds,
    OddsSnapshot,
    PositionStatus,
    Prediction,
    Side,
    Transaction,
    TransactionType,
    generate_agent_id,
    utc_now,
)
from polysentience.storage.state import ArenaState
from polysentience.strategies import get_strategy
from polysentience.valuation import (
    calculate_expected_payout,
    calculate_max_payout,
    calculate_unrealized_pnl,
    round_money,
    value_position,
)

logger = logging.getLogger(__name__)

LeaderboardSort = Literal["balance", "roi", "accuracy", "profit", "winnings"]

# Balance sheet fields only the ledger itself may change
_LEDGER_MANAGED_FIELDS = frozenset(
    {
        "id",
        "created_at",
        "current_balance",
        "initial_balance",
        "total_wagered",
        "total_winnings",
        "total_losses",
        "total_research_cost",
        "total_adjustments",
        "win_count",
        "loss_count",
        "win_rate",
        "roi",
    }
)

# Set at entry or written only by marking and settlement
_PREDICTION_IMMUTABLE_FIELDS = frozenset(
    {
        "id",
        "agent_id",
        "market_id",
        "prediction",
        "bet_amount",
        "entry_odds",
        "max_payout",
        "expected_payout",
        "unrealized_pnl",
        "current_market_odds",
        "position_status",
        "close_price",
        "close_reason",
        "closed_at",
        "resolved",
        "correct",
        "profit_loss",
        "actual_payout",
        "outcome",
        "resolved_at",
    }
)


class AgentStats(BaseModel):
    """Summary statistics for a single agent."""

    total_predictions: int
    open_positions: int
    correct_predictions: int
    accuracy: float
    total_profit_loss: float
    unrealized_pnl: float
    roi: float
    current_streak: int
    biggest_win: float
    biggest_loss: float
    average_bet_size: float
    total_research_cost: float
    net_profit: float


class AgentLedger:
    """Mutations and queries over the agents of an ``ArenaState``."""

    def __init__(self, state: ArenaState):
        self.state = state

    # ------------------------------------------------------------------
    # Agents
    # ------------------------------------------------------------------

    def create_agent(
        self,
        name: str,
        description: str,
        strategy_type: str,
        initial_balance: float,
        *,
        agent_id: str | None = None,
        kind: AgentKind = "user",
        model: str | None = None,
        notes: str = "",
    ) -> Agent:
        strategy = get_strategy(strategy_type)
        name = name.strip()
        if not name:
            raise ValueError("Agent name must not be empty")
        if initial_balance < 0:
            raise ValueError(f"Initial balance must be non-negative, got {initial_balance}")

        agent_id = agent_id or generate_agent_id()
        if agent_id in self.state.agents:
            raise ValueError(f"Agent already exists: {agent_id}")

        balance = round_money(initial_balance)
        agent = Agent(
            id=agent_id,
            name=name,
            description=description.strip(),
            strategy=strategy.type.value,
            kind=kind,
            model=model,
            current_balance=balance,
            initial_balance=balance,
            notes=notes.strip(),
        )
        self.state.agents[agent.id] = agent

        self._record(
            agent,
            TransactionType.MANUAL_ADJUSTMENT,
            amount=balance,
            balance_before=0.0,
            balance_after=balance,
            description="Initial balance set",
        )
        logger.info(f"Created agent {agent.name} ({agent.id}) with ${balance:,.2f}")
        return agent

    def find_agent(self, agent_id: str) -> Agent | None:
        return self.state.agents.get(agent_id)

    def get_agent(self, agent_id: str) -> Agent:
        agent = self.state.agents.get(agent_id)
        if agent is None:
            raise AgentNotFoundError(agent_id)
        return agent

    def all_agents(self) -> list[Agent]:
        return sorted(self.state.agents.values(), key=lambda a: a.created_at)

    def active_agents(self) -> list[Agent]:
        return [a for a in self.all_agents() if a.is_active]

    def update_agent(self, agent_id: str, **updates: Any) -> Agent:
        """Update descriptive fields of an agent.

        Balance sheet fields are rejected; use ``adjust_balance`` instead.
        """
        agent = self.get_agent(agent_id)
        forbidden = _LEDGER_MANAGED_FIELDS.intersection(updates)
        if forbidden:
            raise ValueError(f"Fields managed by the ledger: {', '.join(sorted(forbidden))}")
        if "strategy" in updates:
            updates["strategy"] = get_strategy(updates["strategy"]).type.value

        data = agent.model_dump()
        data.update(updates)
        data["last_updated"] = utc_now()
        updated = Agent.model_validate(data)
        self.state.agents[agent_id] = updated
        return updated

    def delete_agent(self, agent_id: str) -> None:
        """Delete an agent together with its predictions and transactions."""
        agent = self.get_agent(agent_id)
        del self.state.agents[agent_id]

        prediction_ids = [
            pid for pid, p in self.state.predictions.items() if p.agent_id == agent_id
        ]
        for pid in prediction_ids:
            del self.state.predictions[pid]

        before = len(self.state.transactions)
        self.state.transactions = [
            t for t in self.state.transactions if t.agent_id != agent_id
        ]
        logger.info(
            f"Deleted agent {agent.name} ({agent_id}): {len(prediction_ids)} predictions, "
            f"{before - len(self.state.transactions)} transactions"
        )

    def pause_agent(self, agent_id: str) -> Agent:
        return self.update_agent(agent_id, is_active=False, is_running=False)

    def resume_agent(self, agent_id: str) -> Agent:
        agent = self.get_agent(agent_id)
        if agent.is_bankrupt:
            raise ValueError(f"Agent {agent_id} is bankrupt and cannot be resumed")
        return self.update_agent(agent_id, is_active=True)

    def adjust_balance(self, agent_id: str, amount: float, reason: str) -> Transaction:
        """Credit or debit an agent. The balance never goes below zero."""
        agent = self.get_agent(agent_id)
        before = agent.current_balance
        target = max(0.0, round_money(before + amount))

        agent.total_adjustments = round_money(agent.total_adjustments + (target - before))
        after = self.reconcile_balance(agent_id)

        return self._record(
            agent,
            TransactionType.MANUAL_ADJUSTMENT,
            amount=round_money(amount),
            balance_before=before,
            balance_after=after,
            description=reason or "Manual balance adjustment",
        )

    # ------------------------------------------------------------------
    # Predictions
    # ------------------------------------------------------------------

    def add_prediction(
        self,
        agent_id: str,
        market_id: str,
        market_question: str,
        side: Side,
        confidence: float,
        bet_amount: float,
        entry_odds: Odds,
        *,
        reasoning: str = "",
        research_cost: float = 0.0,
        research_sources: list[str] | None = None,
    ) -> Prediction:
        """Open a position for an agent, debiting the stake and research cost."""
        agent = self.get_agent(agent_id)
        bet_amount = round_money(bet_amount)
        research_cost = round_money(research_cost)
        if bet_amount <= 0:
            raise ValueError(f"Bet amount must be positive, got {bet_amount}")
        if research_cost < 0:
            raise ValueError(f"Research cost must be non-negative, got {research_cost}")

        entry_price = entry_odds.price_for(side)
        if entry_price <= 0:
            raise ValueError(f"Cannot bet {side} on market {market_id}: side is priced at zero")

        required = round_money(bet_amount + research_cost)
        if agent.current_balance < required:
            raise InsufficientBalanceError(agent_id, required, agent.current_balance)

        now = utc_now()
        prediction = Prediction(
            agent_id=agent.id,
            agent_name=agent.name,
            market_id=market_id,
            market_question=market_question,
            prediction=side,
            confidence=confidence,
            reasoning=reasoning,
            research_cost=research_cost,
            research_sources=research_sources or [],
            price_at_prediction=entry_price,
            bet_amount=bet_amount,
            entry_odds=Odds(yes_price=entry_odds.yes_price, no_price=entry_odds.no_price),
            max_payout=round_money(calculate_max_payout(bet_amount, entry_price)),
            expected_payout=calculate_expected_payout(bet_amount, entry_price, entry_price),
            unrealized_pnl=calculate_unrealized_pnl(bet_amount, entry_price, entry_price),
            current_market_odds=OddsSnapshot(
                yes_price=entry_odds.yes_price,
                no_price=entry_odds.no_price,
                timestamp=now,
            ),
            created_at=now,
            updated_at=now,
        )
        self.state.predictions[prediction.id] = prediction

        before = agent.current_balance
        agent.total_wagered = round_money(agent.total_wagered + bet_amount)
        agent.prediction_count += 1
        after_bet = self.reconcile_balance(agent.id)
        self._record(
            agent,
            TransactionType.BET_PLACED,
            amount=bet_amount,
            balance_before=before,
            balance_after=after_bet,
            description=f"Bet {side} on: {market_question}",
            prediction_id=prediction.id,
        )

        if research_cost > 0:
            agent.total_research_cost = round_money(agent.total_research_cost + research_cost)
            after_research = self.reconcile_balance(agent.id)
            self._record(
                agent,
                TransactionType.RESEARCH_COST,
                amount=research_cost,
                balance_before=after_bet,
                balance_after=after_research,
                description=f"Research cost for: {market_question}",
                prediction_id=prediction.id,
            )

        logger.info(
            f"{agent.name} bet ${bet_amount:.2f} on {side} @ {entry_price:.3f} "
            f"in market {market_id} (pays ${prediction.max_payout:.2f})"
        )
        return prediction

    def get_prediction(self, prediction_id: str) -> Prediction:
        prediction = self.state.predictions.get(prediction_id)
        if prediction is None:
            raise PredictionNotFoundError(prediction_id)
        return prediction

    def update_prediction(self, prediction_id: str, **updates: Any) -> Prediction:
        """Update descriptive fields such as reasoning or research sources.

        Valuation and settlement go through ``mark_to_market``,
        ``resolve_prediction`` and ``close_position``.
        """
        prediction = self.get_prediction(prediction_id)
        forbidden = _PREDICTION_IMMUTABLE_FIELDS.intersection(updates)
        if forbidden:
            raise ValueError(f"Immutable prediction fields: {', '.join(sorted(forbidden))}")

        data = prediction.model_dump()
        data.update(updates)
        data["updated_at"] = utc_now()
        updated = Prediction.model_validate(data)
        self.state.predictions[prediction_id] = updated
        return updated

    def mark_to_market(
        self,
        prediction_id: str,
        odds: Odds,
        timestamp: datetime | None = None,
    ) -> Prediction:
        """Revalue an open position at ``odds``. Closed positions are left untouched.

        Does not reconcile the agent's balance; callers batch that.
        """
        prediction = self.get_prediction(prediction_id)
        if not prediction.is_open:
            return prediction

        expected_payout, unrealized_pnl = value_position(prediction, odds)
        now = utc_now()
        prediction.current_market_odds = OddsSnapshot(
            yes_price=odds.yes_price,
            no_price=odds.no_price,
            timestamp=timestamp or now,
        )
        prediction.expected_payout = expected_payout
        prediction.unrealized_pnl = unrealized_pnl
        prediction.updated_at = now
        return prediction

    def resolve_prediction(
        self,
        prediction_id: str,
        outcome: Side,
        final_price: float | None = None,
    ) -> Prediction:
        """Settle an open position against the market's outcome.

        A winning position pays its ``max_payout``; a losing one pays nothing.
        Already resolved or closed positions are returned unchanged.
        """
        prediction = self.get_prediction(prediction_id)
        if not prediction.is_open:
            logger.debug(f"Prediction {prediction_id} already settled, skipping")
            return prediction

        correct = prediction.prediction == outcome
        payout = prediction.max_payout if correct else 0.0
        now = utc_now()

        prediction.resolved = True
        prediction.correct = correct
        prediction.outcome = outcome
        prediction.actual_payout = payout
        prediction.profit_loss = round_money(payout - prediction.bet_amount)
        prediction.resolved_at = now
        prediction.position_status = PositionStatus.CLOSED_RESOLVED
        prediction.close_reason = CloseReason.MARKET_RESOLVED
        prediction.close_price = (
            final_price if final_price is not None else (1.0 if correct else 0.0)
        )
        prediction.closed_at = now
        prediction.expected_payout = payout
        prediction.unrealized_pnl = 0.0
        prediction.updated_at = now

        verb = "Won" if correct else "Lost"
        self._settle(prediction, payout, won=correct, description=f"{verb} bet: {prediction.market_question}")
        return prediction

    def close_position(self, prediction_id: str, reason: CloseReason) -> Prediction:
        """Exit an open position early at its current mark-to-market value."""
        prediction = self.get_prediction(prediction_id)
        if not prediction.is_open:
            raise ValueError(f"Prediction {prediction_id} is not open")

        realized = prediction.unrealized_pnl
        payout = max(0.0, round_money(prediction.bet_amount + realized))
        now = utc_now()

        close_odds = prediction.current_market_odds or prediction.entry_odds
        prediction.position_status = (
            PositionStatus.CLOSED_RESOLVED
            if reason == CloseReason.MARKET_RESOLVED
            else PositionStatus.CLOSED_MANUAL
        )
        prediction.close_reason = reason
        prediction.close_price = close_odds.price_for(prediction.prediction)
        prediction.closed_at = now
        prediction.actual_payout = payout
        prediction.profit_loss = round_money(payout - prediction.bet_amount)
        prediction.expected_payout = payout
        prediction.unrealized_pnl = 0.0
        prediction.updated_at = now

        won = realized > 0
        pct = realized / prediction.bet_amount * 100 if prediction.bet_amount else 0.0
        self._settle(
            prediction,
            payout,
            won=won,
            description=f"Closed position ({reason.value}): {prediction.market_question}",
        )
        logger.info(
            f"Closed {prediction.agent_name} position {prediction_id} ({reason.value}): "
            f"P&L ${prediction.profit_loss:+.2f} ({pct:+.1f}%)"
        )
        return prediction

    def _settle(
        self,
        prediction: Prediction,
        payout: float,
        *,
        won: bool,
        description: str,
    ) -> None:
        agent = self.get_agent(prediction.agent_id)
        before = agent.current_balance
        net = round_money(payout - prediction.bet_amount)

        agent.total_winnings = round_money(agent.total_winnings + payout)
        if won:
            agent.win_count += 1
            agent.current_streak = agent.current_streak + 1 if agent.current_streak > 0 else 1
            agent.biggest_win = max(agent.biggest_win, net)
        else:
            agent.loss_count += 1
            agent.total_losses = round_money(agent.total_losses + prediction.bet_amount - payout)
            agent.current_streak = agent.current_streak - 1 if agent.current_streak < 0 else -1
            agent.biggest_loss = max(agent.biggest_loss, abs(net))

        settled = agent.win_count + agent.loss_count
        agent.win_rate = round(agent.win_count / settled * 100, 2) if settled else 0.0
        agent.roi = (
            round((agent.total_winnings - agent.total_wagered) / agent.total_wagered * 100, 2)
            if agent.total_wagered > 0
            else 0.0
        )

        after = self.reconcile_balance(agent.id)
        self._record(
            agent,
            TransactionType.WIN if won else TransactionType.LOSS,
            amount=payout,
            balance_before=before,
            balance_after=after,
            description=description,
            prediction_id=prediction.id,
        )

    def reconcile_balance(self, agent_id: str) -> float:
        """Recompute ``current_balance`` from the balance sheet and open marks."""
        agent = self.get_agent(agent_id)
        unrealized = sum(p.unrealized_pnl for p in self.open_positions() if p.agent_id == agent_id)
        balance = round_money(
            agent.initial_balance
            - agent.total_wagered
            - agent.total_research_cost
            + agent.total_adjustments
            + agent.total_winnings
            + unrealized
        )

        if abs(balance - agent.current_balance) > 0.01:
            logger.debug(
                f"{agent.name} balance ${agent.current_balance:.2f} -> ${balance:.2f} "
                f"(unrealized ${unrealized:+.2f})"
            )
        agent.current_balance = balance
        agent.last_updated = utc_now()
        return balance

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def agent_predictions(self, agent_id: str) -> list[Prediction]:
        """Predictions of an agent, newest first."""
        return sorted(
            (p for p in self.state.predictions.values() if p.agent_id == agent_id),
            key=lambda p: p.created_at,
            reverse=True,
        )

    def agent_transactions(self, agent_id: str) -> list[Transaction]:
        """Transactions of an agent, newest first."""
        indexed = [
            (i, t) for i, t in enumerate(self.state.transactions) if t.agent_id == agent_id
        ]
        # Ties on created_at fall back to insertion order
        indexed.sort(key=lambda it: (it[1].created_at, it[0]), reverse=True)
        return [t for _, t in indexed]

    def open_positions(self, market_id: str | None = None) -> list[Prediction]:
        return [
            p
            for p in self.state.predictions.values()
            if p.is_open and (market_id is None or p.market_id == market_id)
        ]

    def unresolved_predictions(self, market_id: str | None = None) -> list[Prediction]:
        return [
            p
            for p in self.state.predictions.values()
            if not p.resolved and (market_id is None or p.market_id == market_id)
        ]

    def has_agent_predicted(self, agent_id: str, market_id: str) -> bool:
        return any(
            p.agent_id == agent_id and p.market_id == market_id
            for p in self.state.predictions.values()
        )

    def recent_predictions(self, limit: int = 50) -> list[Prediction]:
        ordered = sorted(
            self.state.predictions.values(), key=lambda p: p.created_at, reverse=True
        )
        return ordered[:limit]

    # ------------------------------------------------------------------
    # Standings
    # ------------------------------------------------------------------

    def agent_stats(self, agent_id: str) -> AgentStats:
        agent = self.get_agent(agent_id)
        predictions = self.agent_predictions(agent_id)
        open_positions = [p for p in predictions if p.is_open]
        average_bet = (
            sum(p.bet_amount for p in predictions) / len(predictions) if predictions else 0.0
        )

        return AgentStats(
            total_predictions=len(predictions),
            open_positions=len(open_positions),
            correct_predictions=agent.win_count,
            accuracy=agent.win_rate,
            total_profit_loss=round_money(
                sum(p.profit_loss or 0.0 for p in predictions if not p.is_open)
            ),
            unrealized_pnl=round_money(sum(p.unrealized_pnl for p in open_positions)),
            roi=agent.roi,
            current_streak=agent.current_streak,
            biggest_win=agent.biggest_win,
            biggest_loss=agent.biggest_loss,
            average_bet_size=round_money(average_bet),
            total_research_cost=agent.total_research_cost,
            net_profit=agent.net_profit,
        )

    def leaderboard(self, sort_by: LeaderboardSort = "balance") -> list[Agent]:
        keys = {
            "balance": lambda a: a.current_balance,
            "roi": lambda a: a.roi,
            "accuracy": lambda a: a.win_rate,
            "profit": lambda a: a.current_balance - a.initial_balance,
            "winnings": lambda a: a.total_winnings,
        }
        if sort_by not in keys:
            raise ValueError(f"Unknown leaderboard sort: {sort_by}")
        return sorted(self.state.agents.values(), key=keys[sort_by], reverse=True)

    # ------------------------------------------------------------------
    # Bulk data
    # ------------------------------------------------------------------

    def clear_all(self) -> None:
        """Remove every agent, prediction and transaction. The market cache is kept."""
        self.state.agents.clear()
        self.state.predictions.clear()
        self.state.transactions.clear()
        logger.warning("Cleared all agents, predictions and transactions")

    def export_json(self) -> str:
        payload = {
            "version": self.state.version,
            "exported_at": utc_now().isoformat(),
            "agents": [a.model_dump(mode="json") for a in self.all_agents()],
            "predictions": [
                p.model_dump(mode="json")
                for p in sorted(self.state.predictions.values(), key=lambda p: p.created_at)
            ],
            "transactions": [t.model_dump(mode="json") for t in self.state.transactions],
        }
        return json.dumps(payload, indent=2)

    def import_json(self, payload: str) -> None:
        """Replace agents, predictions and transactions from an export.

        Raises ValueError if the payload is malformed; the state is left as it was.
        """
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON: {e}") from e

        if not isinstance(data, dict) or not isinstance(data.get("agents"), list):
            raise ValueError("Import payload must contain an 'agents' list")
        for key in ("predictions", "transactions"):
            if not isinstance(data.get(key, []), list):
                raise ValueError(f"Import payload field '{key}' must be a list")

        try:
            agents = [Agent.model_validate(a) for a in data["agents"]]
            predictions = [Prediction.model_validate(p) for p in data.get("predictions", [])]
            transactions = [Transaction.model_validate(t) for t in data.get("transactions", [])]
        except ValidationError as e:
            raise ValueError(f"Invalid import payload: {e}") from e

        agent_ids = {a.id for a in agents}
        orphans = [p.id for p in predictions if p.agent_id not in agent_ids]
        if orphans:
            raise ValueError(f"Predictions reference unknown agents: {', '.join(orphans[:5])}")

        self.state.agents = {a.id: a for a in agents}
        self.state.predictions = {p.id: p for p in predictions}
        self.state.transactions = transactions
        logger.info(
            f"Imported {len(agents)} agents, {len(predictions)} predictions, "
            f"{len(transactions)} transactions"
        )

    # ------------------------------------------------------------------

    def _record(
        self,
        agent: Agent,
        tx_type: TransactionType,
        *,
        amount: float,
        balance_before: float,
        balance_after: float,
        description: str,
        prediction_id: str | None = None,
    ) -> Transaction:
        transaction = Transaction(
            agent_id=agent.id,
            type=tx_type,
            amount=amount,
            balance_before=balance_before,
            balance_after=balance_after,
            description=description,
            prediction_id=prediction_id,
        )
        self.state.transactions.append(transaction)
        return transaction
