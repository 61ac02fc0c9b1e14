"""Settings loader for Rollsmith."""

from enum import Enum
from pathlib import Path
from typing import Any

import tomllib
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class CritBehavior(str, Enum):
    """What a critical hit adds to damage and other formulas."""

    NONE = "none"  # no extra dice
    BONUS_DICE = "bonus_dice"  # roll the formula's dice again
    MAXIMIZE_CRIT_DICE = "maximize_crit_dice"  # extra dice at their maximum
    MAXIMIZE_ALL = "maximize_all"  # extra dice maximized and base raised to its maximum


class HideDC(str, Enum):
    NEVER = "never"
    NPC_ONLY = "npc_only"
    ALWAYS = "always"


class RollConfig(BaseModel):
    """Every option the roll pipeline reads, fixed for the lifetime of a run.

    Placement options select a label slot (1-3) for damage results; 0 hides
    the label.
    """

    d20_mode: int = Field(default=1, ge=1, le=4)
    crit_behavior: CritBehavior = CritBehavior.BONUS_DICE
    crit_string: str = "Crit"
    roll_title_placement: int = Field(default=1, ge=0, le=3)
    damage_title_placement: int = Field(default=1, ge=0, le=3)
    damage_roll_placement: int = Field(default=1, ge=0, le=3)
    damage_context_placement: int = Field(default=1, ge=0, le=3)
    context_replaces_title: bool = False
    context_replaces_damage: bool = False
    hide_dc: HideDC = HideDC.NEVER
    query_advantage: bool = False

    model_config = dict(extra="forbid", frozen=True)


def _toml_settings_source() -> dict[str, Any]:
    """Load settings from config.toml with keys mapped to Settings fields.

    This source has LOWER priority than env/.env so those can override TOML.
    """
    cfg_path = Path("config.toml")
    if not cfg_path.exists():
        return {}
    with cfg_path.open("rb") as f:
        t = tomllib.load(f)
    out: dict[str, Any] = {
        "env": t.get("app", {}).get("env", "dev"),
        "logging_level": t.get("logging", {}).get("level", "INFO"),
        "logging_file_path": t.get("logging", {}).get("file_path", "logs/rollsmith.jsonl"),
        "logging_max_bytes": t.get("logging", {}).get("max_bytes", 5_000_000),
        "logging_backup_count": t.get("logging", {}).get("backup_count", 5),
    }

    log_cfg = t.get("logging", {}) or {}
    overall = out["logging_level"]

    # Per-handler levels: strings INFO|DEBUG|WARNING|ERROR|CRITICAL|NONE, or bools
    def _norm_level(v, default):
        if isinstance(v, str):
            return v.upper()
        if isinstance(v, bool):
            return default if v else "NONE"
        return default

    out["logging_console"] = _norm_level(log_cfg.get("console"), overall)
    out["logging_file"] = _norm_level(log_cfg.get("to_file"), overall)

    rolls_cfg = t.get("rolls", {}) or {}
    if rolls_cfg:
        out["rolls"] = dict(rolls_cfg)

    return out


class Settings(BaseSettings):
    env: str = Field(default="dev")

    # --- Rolls ---
    rolls: RollConfig = RollConfig()
    dice_seed: int | None = None

    # --- Logging ---
    logging_level: str = "INFO"
    logging_console: str = "INFO"
    logging_file: str = "NONE"
    logging_file_path: str = "logs/rollsmith.jsonl"
    logging_max_bytes: int = 5_000_000
    logging_backup_count: int = 5

    model_config = SettingsConfigDict(
        env_prefix="ROLLSMITH_",
        env_nested_delimiter="__",
        case_sensitive=False,
        env_file=".env",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # Precedence (highest to lowest):
        # 1) init_settings (explicit overrides in code/tests)
        # 2) dotenv (.env in cwd)
        # 3) env_settings (OS env)
        # 4) TOML (config.toml)
        # 5) file_secret_settings
        return (
            init_settings,
            dotenv_settings,
            env_settings,
            _toml_settings_source,
            file_secret_settings,
        )


def load_settings() -> Settings:
    return Settings()
