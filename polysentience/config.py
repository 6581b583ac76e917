"""Configuration management using Pydantic Settings."""

import logging
from functools import lru_cache
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from polysentience.llm_providers import AnthropicModel, OpenAIModel
from polysentience.services.polymarket.config import PolymarketConfig

logger = logging.getLogger(__name__)


class ArenaConfig(BaseModel):
    """Arena-wide economic parameters."""

    initial_balance: float = 1000.0
    research_cost: float = 0.05  # Charged per analyzed market


class BettingConfig(BaseModel):
    """Bet sizing limits and psychology multipliers."""

    max_bet: float = 5.0
    max_bet_pct: float = 0.05  # Of current balance
    min_bet: float = 1.0
    reserve_balance: float = 10.0  # Never bet below this balance

    # Confidence tiers (confidence >= threshold -> fraction of max bet)
    confidence_tiers: list[tuple[float, float]] = Field(
        default_factory=lambda: [(0.85, 0.8), (0.75, 0.6), (0.65, 0.4), (0.55, 0.2)]
    )

    hot_streak: int = 3
    hot_streak_multiplier: float = 1.2
    cold_streak: int = -3
    cold_streak_multiplier: float = 0.8
    losing_roi_pct: float = -20.0
    losing_roi_multiplier: float = 0.7
    winning_roi_pct: float = 20.0
    winning_roi_multiplier: float = 1.1


class TrackerConfig(BaseModel):
    """Odds tracker polling parameters."""

    interval_seconds: int = 5
    request_delay_seconds: float = 0.1  # Between market fetches


class PositionConfig(BaseModel):
    """Position management rules."""

    profit_taking_pct: float = 30.0
    profit_taking_probability: float = 0.15
    stop_loss_pct: float = -50.0
    stop_loss_probability: float = 0.08
    random_exit_base: float = 0.02
    random_exit_per_hour: float = 0.001
    random_exit_max: float = 0.05


class AnalysisConfig(BaseModel):
    """Market analysis session parameters."""

    model: OpenAIModel | AnthropicModel = OpenAIModel.GPT_5_MINI
    max_markets_per_agent: int = 2
    min_volume: float = 1000.0
    min_days_to_end: float = 1.0
    candidate_pool_size: int = 100  # Markets pulled from the cache per session


class SchedulerConfig(BaseModel):
    """Job scheduling intervals."""

    tracker_interval_seconds: int = 5
    position_management_minutes: int = 5
    market_refresh_minutes: int = 30
    bankruptcy_check_minutes: int = 15
    analysis_minutes: int = 360
    analysis_enabled: bool = False


class Settings(BaseSettings):
    """Main configuration class."""

    # Paths
    data_dir: Path = Path("data")

    # API Keys
    openai_api_key: str = ""
    anthropic_api_key: str = ""
    logfire_token: str = ""

    environment: str = "development"

    # Nested configuration sections
    arena: ArenaConfig = Field(default_factory=ArenaConfig)
    betting: BettingConfig = Field(default_factory=BettingConfig)
    tracker: TrackerConfig = Field(default_factory=TrackerConfig)
    positions: PositionConfig = Field(default_factory=PositionConfig)
    analysis: AnalysisConfig = Field(default_factory=AnalysisConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    polymarket: PolymarketConfig = Field(default_factory=PolymarketConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("data_dir", mode="after")
    @classmethod
    def resolve_data_dir(cls, v: Path) -> Path:
        """Resolve data directory to absolute path."""
        return v.resolve()

    def load_yaml_config(self) -> None:
        """Load and merge YAML configuration."""
        config_path = self.data_dir / "config.yaml"

        if not config_path.exists():
            logger.warning(
                f"Config file not found: {config_path}. "
                "Using defaults. Run 'python -m polysentience init' to create it."
            )
            return

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                yaml_config = yaml.safe_load(f)

            if not yaml_config:
                logger.warning(f"Empty config file: {config_path}")
                return

            for section_name in [
                "arena",
                "betting",
                "tracker",
                "positions",
                "analysis",
                "scheduler",
                "polymarket",
            ]:
                if section_name in yaml_config:
                    section = getattr(self, section_name)
                    yaml_section = yaml_config[section_name] or {}

                    section_dict = section.model_dump()
                    section_dict.update(yaml_section)

                    new_section = section.__class__(**section_dict)
                    setattr(self, section_name, new_section)

            logger.info(f"Loaded configuration from {config_path}")

        except yaml.YAMLError as e:
            logger.error(f"Failed to parse YAML config: {e}")
            raise


@lru_cache()
def get_settings() -> Settings:
    """Get singleton Settings instance."""
    settings = Settings()
    settings.load_yaml_config()
    return settings
