"""Arena state management with atomic writes to data/state.yaml."""

import logging
import shutil
import tempfile
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

from polysentience.config import get_settings
from polysentience.storage.models import Agent, Market, Prediction, Transaction

logger = logging.getLogger(__name__)

STATE_FILENAME = "state.yaml"

# Serializes load -> mutate -> save cycles between scheduler jobs and API calls
_state_lock = threading.RLock()


# ============================================================================
# Pydantic Models
# ============================================================================


class ArenaState(BaseModel):
    """Complete arena state - matches data/state.yaml schema."""

    version: int = 1
    last_updated: datetime | None = None
    agents: dict[str, Agent] = Field(default_factory=dict)
    predictions: dict[str, Prediction] = Field(default_factory=dict)
    transactions: list[Transaction] = Field(default_factory=list)
    markets: dict[str, Market] = Field(default_factory=dict)
    markets_updated_at: datetime | None = None


# ============================================================================
# Helper Functions
# ============================================================================


def get_data_dir() -> Path:
    """Get the data directory path from settings."""
    settings = get_settings()
    data_dir = settings.data_dir

    if not data_dir.exists():
        raise FileNotFoundError(
            f"Data directory not found: {data_dir}. "
            "Run 'python -m polysentience init' to create it."
        )

    return data_dir


def _get_state_path(data_dir: Path | None = None) -> Path:
    return (data_dir or get_data_dir()) / STATE_FILENAME


# ============================================================================
# Public API
# ============================================================================


def load_state(data_dir: Path | None = None) -> ArenaState:
    """Load arena state from data/state.yaml."""
    state_path = _get_state_path(data_dir)

    if not state_path.exists():
        logger.info(f"State file not found: {state_path}. Returning empty state.")
        return ArenaState()

    try:
        with open(state_path, "r", encoding="utf-8") as f:
            raw_data = yaml.safe_load(f)

        if not raw_data:
            logger.warning(f"Empty state file: {state_path}. Returning empty state.")
            return ArenaState()

        state = ArenaState(**raw_data)
        logger.debug(f"Loaded state from {state_path}")
        return state

    except yaml.YAMLError as e:
        logger.error(f"Corrupted YAML in state file: {e}")
        raise


def save_state(state: ArenaState, data_dir: Path | None = None) -> None:
    """Atomically save arena state to data/state.yaml.

    Writes to a temporary file in the same directory and renames it over the
    target, so a crash mid-write leaves the previous state.yaml intact.
    """
    state_path = _get_state_path(data_dir)
    state.last_updated = datetime.now(timezone.utc)
    state_dict = state.model_dump(mode="json")

    temp_path: Path | None = None
    try:
        with tempfile.NamedTemporaryFile(
            mode="w",
            dir=state_path.parent,
            delete=False,
            suffix=".yaml",
            encoding="utf-8",
        ) as temp_file:
            yaml.dump(
                state_dict,
                temp_file,
                default_flow_style=False,
                allow_unicode=True,
                sort_keys=False,
            )
            temp_path = Path(temp_file.name)

        shutil.move(str(temp_path), str(state_path))
        logger.debug(f"Saved state to {state_path}")

    except Exception as e:
        if temp_path is not None:
            temp_path.unlink(missing_ok=True)
        logger.error(f"Failed to save state: {e}")
        raise


@contextmanager
def state_transaction(data_dir: Path | None = None) -> Iterator[ArenaState]:
    """Load state, yield it for mutation, and save it if the block succeeds.

    Nothing is written when the block raises.
    """
    with _state_lock:
        state = load_state(data_dir)
        yield state
        save_state(state, data_dir)
