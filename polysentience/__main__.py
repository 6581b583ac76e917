"""Polysentience CLI entry point."""

import argparse
import asyncio
import logging
import sys
import time
from pathlib import Path

from dotenv import load_dotenv
from pydantic import ValidationError

env_file = Path(__file__).parent.parent / ".env"
load_dotenv(env_file)

from polysentience import __version__
from polysentience.agents.analyst import run_analysis_session
from polysentience.bankruptcy import run_bankruptcy_check
from polysentience.config import get_settings
from polysentience.exceptions import ArenaError
from polysentience.ledger import AgentLedger
from polysentience.llm_providers import get_provider_for_model
from polysentience.markets import manually_resolve_market, refresh_markets
from polysentience.positions import run_position_management
from polysentience.roster import seed_celebrity_agents
from polysentience.scheduler import start_scheduler
from polysentience.services.polymarket import GammaClient
from polysentience.storage.state import load_state, state_transaction
from polysentience.strategies import StrategyType
from polysentience.tracker import OddsTracker

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

logger = logging.getLogger(__name__)

CONFIG_TEMPLATE = """# Polysentience Configuration
# Operational parameters for the agent arena.
# API keys and secrets belong in .env, not here.

arena:
  initial_balance: 1000.00
  research_cost: 0.05

betting:
  max_bet: 5.00
  max_bet_pct: 0.05
  min_bet: 1.00
  reserve_balance: 10.00

tracker:
  interval_seconds: 5
  request_delay_seconds: 0.1

positions:
  profit_taking_pct: 30
  profit_taking_probability: 0.15
  stop_loss_pct: -50
  stop_loss_probability: 0.08

analysis:
  max_markets_per_agent: 2
  min_volume: 1000
  min_days_to_end: 1

scheduler:
  tracker_interval_seconds: 5
  position_management_minutes: 5
  market_refresh_minutes: 30
  bankruptcy_check_minutes: 15
  analysis_minutes: 360
  analysis_enabled: false
"""


def _init_logfire() -> None:
    """Initialize Logfire if available, without failing commands."""
    try:
        from polysentience.observability import initialize_logfire

        initialize_logfire(get_settings())
    except Exception as e:
        logger.warning(f"Failed to initialize Logfire: {e}")


def cmd_init(args: argparse.Namespace) -> int:
    """Initialize data directory and configuration file."""
    data_dir = Path("data").resolve()

    try:
        data_dir.mkdir(exist_ok=True)
        logger.info(f"Created data directory: {data_dir}")

        config_path = data_dir / "config.yaml"
        if not config_path.exists():
            config_path.write_text(CONFIG_TEMPLATE)
            logger.info(f"Created config template: {config_path}")
        else:
            logger.info(f"Config file already exists: {config_path}")

        print(f"\n✓ Data directory initialized at {data_dir}")
        print("\nNext steps:")
        print("1. Add OPENAI_API_KEY or ANTHROPIC_API_KEY (and optionally LOGFIRE_TOKEN) to .env")
        print("2. Run 'python -m polysentience seed' to create the celebrity agents")
        print("3. Run 'python -m polysentience refresh-markets' to fill the market cache")
        print("4. Run 'python -m polysentience run' to start the arena\n")
        return 0

    except OSError as e:
        logger.error(f"Failed to initialize: {e}")
        print(f"\n❌ Initialization failed: {e}\n")
        return 1


def cmd_config(args: argparse.Namespace) -> int:
    """Display merged configuration."""
    try:
        settings = get_settings()

        print("\n=== Polysentience Configuration ===\n")
        print(f"Data Directory: {settings.data_dir}\n")

        print("Arena:")
        print(f"  Initial Balance: ${settings.arena.initial_balance:,.2f}")
        print(f"  Research Cost: ${settings.arena.research_cost:.2f}\n")

        print("Betting:")
        print(f"  Max Bet: ${settings.betting.max_bet:.2f} ({settings.betting.max_bet_pct:.0%} of balance)")
        print(f"  Min Bet: ${settings.betting.min_bet:.2f}")
        print(f"  Reserve: ${settings.betting.reserve_balance:.2f}\n")

        print("Tracker:")
        print(f"  Interval: {settings.tracker.interval_seconds}s")
        print(f"  Request Delay: {settings.tracker.request_delay_seconds}s\n")

        print("Analysis:")
        model = settings.analysis.model
        print(f"  Model: {model} ({get_provider_for_model(model)})")
        print(f"  Markets Per Agent: {settings.analysis.max_markets_per_agent}")
        print(f"  Min Volume: ${settings.analysis.min_volume:,.0f}\n")

        print("API Keys:")
        print(f"  OpenAI: {'✓ Set' if settings.openai_api_key else '✗ Not set'}")
        print(f"  Anthropic: {'✓ Set' if settings.anthropic_api_key else '✗ Not set'}")
        print(f"  Logfire: {'✓ Set' if settings.logfire_token else '✗ Not set'}\n")
        return 0

    except ValidationError as e:
        print("\n❌ Configuration Error:\n")
        for error in e.errors():
            print(f"  • {'.'.join(str(x) for x in error['loc'])}: {error['msg']}")
        print()
        return 1


def cmd_status(args: argparse.Namespace) -> int:
    """Display arena status."""
    try:
        state = load_state()
    except FileNotFoundError as e:
        print(f"\n❌ {e}\n")
        return 1

    ledger = AgentLedger(state)
    open_positions = ledger.open_positions()
    unrealized = sum(p.unrealized_pnl for p in open_positions)

    print("\n=== Polysentience Arena Status ===\n")
    print(f"Last Updated: {state.last_updated or 'never'}")
    print(f"Agents: {len(state.agents)} ({len(ledger.active_agents())} active)")
    print(f"Predictions: {len(state.predictions)} ({len(open_positions)} open)")
    print(f"Unrealized P&L: ${unrealized:+,.2f}")
    print(f"Cached Markets: {len(state.markets)}\n")
    return 0


def cmd_seed(args: argparse.Namespace) -> int:
    """Create missing celebrity agents."""
    settings = get_settings()
    with state_transaction() as state:
        created = seed_celebrity_agents(AgentLedger(state), settings.arena.initial_balance)

    print(f"\n✓ Seeded {len(created)} celebrity agents")
    for agent in created:
        print(f"  • {agent.name} ({agent.strategy})")
    print()
    return 0


def cmd_create_agent(args: argparse.Namespace) -> int:
    """Create a user agent."""
    settings = get_settings()
    balance = args.balance if args.balance is not None else settings.arena.initial_balance
    try:
        with state_transaction() as state:
            agent = AgentLedger(state).create_agent(
                name=args.name,
                description=args.description,
                strategy_type=args.strategy,
                initial_balance=balance,
            )
    except ValueError as e:
        print(f"\n❌ {e}\n")
        return 1

    print(f"\n✓ Created agent {agent.name} ({agent.id}) with ${agent.current_balance:,.2f}\n")
    return 0


def cmd_adjust(args: argparse.Namespace) -> int:
    """Manually credit or debit an agent."""
    try:
        with state_transaction() as state:
            tx = AgentLedger(state).adjust_balance(args.agent_id, args.amount, args.reason)
    except ArenaError as e:
        print(f"\n❌ {e}\n")
        return 1

    print(f"\n✓ Balance ${tx.balance_before:,.2f} -> ${tx.balance_after:,.2f}\n")
    return 0


def cmd_agents(args: argparse.Namespace) -> int:
    """List agents."""
    ledger = AgentLedger(load_state())
    agents = ledger.all_agents()
    if not agents:
        print("\nNo agents. Run 'python -m polysentience seed'.\n")
        return 0

    print()
    for agent in agents:
        flag = "💀" if agent.is_bankrupt else ("✓" if agent.is_active else "⏸")
        print(
            f"{flag} {agent.name:<16} {agent.id:<20} {agent.strategy:<16} "
            f"${agent.current_balance:>10,.2f}  {agent.prediction_count} bets"
        )
    print()
    return 0


def cmd_leaderboard(args: argparse.Namespace) -> int:
    """Show the leaderboard."""
    ledger = AgentLedger(load_state())

    print(f"\n=== Leaderboard (by {args.sort_by}) ===\n")
    for rank, agent in enumerate(ledger.leaderboard(args.sort_by), 1):
        print(
            f"{rank:>2}. {agent.name:<16} ${agent.current_balance:>10,.2f}  "
            f"ROI {agent.roi:+6.1f}%  Win {agent.win_rate:5.1f}%  "
            f"Streak {agent.current_streak:+d}"
        )
    print()
    return 0


def cmd_track(args: argparse.Namespace) -> int:
    """Run the odds tracker."""
    _init_logfire()
    tracker = OddsTracker()

    if args.once:
        result = tracker.run_once()
        print(
            f"\n✓ Tracker cycle: {result.predictions_updated} predictions, "
            f"{result.markets_fetched} markets ({result.markets_failed} failed)\n"
        )
        return 0

    tracker.start(args.interval)
    print("Tracking odds. Press Ctrl+C to stop.\n")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        tracker.stop()
        print("\nTracker stopped.\n")
    return 0


def cmd_positions(args: argparse.Namespace) -> int:
    """Run one round of position management."""
    result = run_position_management()
    report = result.report

    print("\n=== Position Management ===\n")
    print(f"Refreshed: {result.refreshed}")
    print(f"Closed: {len(result.closed)}")
    print(f"Open: {report.total_open}  Unrealized: ${report.total_unrealized_pnl:+,.2f}")
    if report.oldest_position:
        oldest = report.oldest_position
        print(f"Oldest: {oldest.agent_name} - {oldest.market_question[:60]} ({oldest.age_hours}h)")
    print()
    return 0


def cmd_refresh_markets(args: argparse.Namespace) -> int:
    """Refresh the market cache from Polymarket."""
    _init_logfire()
    settings = get_settings()

    async def _run():
        async with GammaClient(settings.polymarket) as client:
            return await refresh_markets(client, limit=args.limit)

    try:
        result = asyncio.run(_run())
    except Exception as e:
        logger.error(f"Market refresh failed: {e}", exc_info=True)
        print(f"\n❌ Market refresh failed: {e}\n")
        return 1

    print("\n✓ Market refresh complete\n")
    print(f"Fetched: {result.fetched}")
    print(f"Added: {result.upsert.added}  Updated: {result.upsert.updated}  Skipped: {result.upsert.skipped}")
    print(f"Predictions Resolved: {result.predictions_resolved}\n")
    return 0


def cmd_resolve(args: argparse.Namespace) -> int:
    """Manually resolve a market."""
    try:
        settled = manually_resolve_market(args.market_id, args.outcome)
    except ArenaError as e:
        print(f"\n❌ {e}\n")
        return 1

    print(f"\n✓ Market {args.market_id} resolved {args.outcome}: {settled} predictions settled\n")
    return 0


def cmd_bankruptcy(args: argparse.Namespace) -> int:
    """Run a bankruptcy check."""
    bankrupted = run_bankruptcy_check()
    print(f"\n✓ Bankruptcy check: {len(bankrupted)} agents retired\n")
    for agent_id in bankrupted:
        print(f"  • {agent_id}")
    return 0


def cmd_analyze(args: argparse.Namespace) -> int:
    """Run an analysis session."""
    _init_logfire()

    try:
        session = asyncio.run(run_analysis_session(triggered_by="cli"))
    except Exception as e:
        logger.error(f"Analysis failed: {e}", exc_info=True)
        print(f"\n❌ Analysis failed: {e}\n")
        return 1

    print("\n✓ Analysis session complete\n")
    print(f"Markets Considered: {session.markets_considered}")
    print(f"Analyses: {len(session.analyses)}")
    print(f"Bets Placed: {session.bets_placed}")
    print(f"Errors: {len(session.errors)}\n")
    return 0


def cmd_export(args: argparse.Namespace) -> int:
    """Export agents, predictions and transactions as JSON."""
    payload = AgentLedger(load_state()).export_json()
    if args.output:
        Path(args.output).write_text(payload, encoding="utf-8")
        print(f"\n✓ Exported to {args.output}\n")
    else:
        print(payload)
    return 0


def cmd_import(args: argparse.Namespace) -> int:
    """Replace agents, predictions and transactions from a JSON export."""
    try:
        payload = Path(args.input).read_text(encoding="utf-8")
        with state_transaction() as state:
            AgentLedger(state).import_json(payload)
    except (OSError, ValueError) as e:
        print(f"\n❌ Import failed: {e}\n")
        return 1

    print(f"\n✓ Imported {args.input}\n")
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    """Serve the dashboard API."""
    import uvicorn

    _init_logfire()
    uvicorn.run("polysentience.api.server:app", host=args.host, port=args.port)
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    """Start the arena scheduler."""
    try:
        _init_logfire()

        if args.debug:
            logging.getLogger().setLevel(logging.DEBUG)

        settings = get_settings()

        print("\n=== Polysentience Arena ===\n")
        print(f"Version: {__version__}")
        print(f"Data Directory: {settings.data_dir}\n")

        print("Starting scheduler...\n")
        start_scheduler(settings)
        return 0

    except KeyboardInterrupt:
        print("\n\nReceived interrupt signal. Shutting down...\n")
        return 0
    except Exception as e:
        logger.error(f"Failed to start arena: {e}", exc_info=True)
        print(f"\nFailed to start: {e}\n")
        return 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Polysentience: AI agents competing on Polymarket prediction markets",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"Polysentience {__version__}")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("init", help="Initialize data directory and config").set_defaults(func=cmd_init)
    subparsers.add_parser("config", help="Display merged configuration").set_defaults(func=cmd_config)
    subparsers.add_parser("status", help="Display arena status").set_defaults(func=cmd_status)
    subparsers.add_parser("seed", help="Create missing celebrity agents").set_defaults(func=cmd_seed)
    subparsers.add_parser("agents", help="List agents").set_defaults(func=cmd_agents)

    parser_create = subparsers.add_parser("create-agent", help="Create a user agent")
    parser_create.add_argument("--name", required=True)
    parser_create.add_argument("--description", default="")
    parser_create.add_argument(
        "--strategy",
        required=True,
        choices=[s.value for s in StrategyType],
    )
    parser_create.add_argument("--balance", type=float, default=None)
    parser_create.set_defaults(func=cmd_create_agent)

    parser_adjust = subparsers.add_parser("adjust", help="Credit or debit an agent")
    parser_adjust.add_argument("--agent-id", required=True)
    parser_adjust.add_argument("--amount", type=float, required=True)
    parser_adjust.add_argument("--reason", default="Manual balance adjustment")
    parser_adjust.set_defaults(func=cmd_adjust)

    parser_board = subparsers.add_parser("leaderboard", help="Show the leaderboard")
    parser_board.add_argument(
        "--sort-by",
        default="balance",
        choices=["balance", "roi", "accuracy", "profit", "winnings"],
    )
    parser_board.set_defaults(func=cmd_leaderboard)

    parser_track = subparsers.add_parser("track", help="Run the odds tracker")
    parser_track.add_argument("--once", action="store_true", help="Run a single cycle then exit")
    parser_track.add_argument("--interval", type=int, default=None, help="Seconds between cycles")
    parser_track.set_defaults(func=cmd_track)

    subparsers.add_parser(
        "positions", help="Run one round of position management"
    ).set_defaults(func=cmd_positions)

    parser_refresh = subparsers.add_parser("refresh-markets", help="Refresh the market cache")
    parser_refresh.add_argument("--limit", type=int, default=0, help="Markets to fetch (0 = max)")
    parser_refresh.set_defaults(func=cmd_refresh_markets)

    parser_resolve = subparsers.add_parser("resolve", help="Manually resolve a market")
    parser_resolve.add_argument("--market-id", required=True)
    parser_resolve.add_argument("--outcome", required=True, choices=["YES", "NO"])
    parser_resolve.set_defaults(func=cmd_resolve)

    subparsers.add_parser("bankruptcy", help="Run a bankruptcy check").set_defaults(func=cmd_bankruptcy)
    subparsers.add_parser("analyze", help="Run an analysis session").set_defaults(func=cmd_analyze)

    parser_export = subparsers.add_parser("export", help="Export ledger data as JSON")
    parser_export.add_argument("--output", default=None)
    parser_export.set_defaults(func=cmd_export)

    parser_import = subparsers.add_parser("import", help="Import ledger data from JSON")
    parser_import.add_argument("--input", required=True)
    parser_import.set_defaults(func=cmd_import)

    parser_serve = subparsers.add_parser("serve", help="Serve the dashboard API")
    parser_serve.add_argument("--host", default="127.0.0.1")
    parser_serve.add_argument("--port", type=int, default=8000)
    parser_serve.set_defaults(func=cmd_serve)

    parser_run = subparsers.add_parser("run", help="Start the arena scheduler")
    parser_run.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser_run.set_defaults(func=cmd_run)

    return parser


def main() -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
