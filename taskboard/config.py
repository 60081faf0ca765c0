# Task board — configuration
# Override defaults via taskboard.yaml, TASKBOARD_CONFIG or --config.

import os
import yaml
from pathlib import Path
from dataclasses import dataclass, field
from typing import List, Optional

from .schema import ColumnSet, ContactRole, DEFAULT_COLUMNS

CONFIG_ENV = "TASKBOARD_CONFIG"
CONFIG_PATH = Path("taskboard.yaml")


class ConfigError(Exception):
    """Raised when configuration is invalid or incomplete."""
    pass


@dataclass
class Config:
    """Runtime configuration for the task board."""

    # Board
    columns: List[str] = field(default_factory=lambda: list(DEFAULT_COLUMNS))
    assignable_roles: List[str] = field(default_factory=lambda: ["committee", "volunteer"])
    seed_categories: bool = True

    # Reminders
    reminder_interval_ms: int = 60_000
    reminder_fallback_title: str = "Reminder"
    notification_title: str = "Task Reminder"

    # Telegram host
    telegram_token_env: str = "TASKBOARD_BOT_TOKEN"
    telegram_chat_id: Optional[str] = None

    log_level: str = "INFO"

    def validate(self):
        """Raise ConfigError on values the engine can't run with."""
        try:
            ColumnSet(self.columns)
        except ValueError as e:
            raise ConfigError(f"Invalid columns: {e}") from e
        if not isinstance(self.reminder_interval_ms, int) or self.reminder_interval_ms <= 0:
            raise ConfigError(
                f"reminder_interval_ms must be a positive integer, got {self.reminder_interval_ms!r}"
            )
        known_roles = {r.value for r in ContactRole}
        unknown = [r for r in self.assignable_roles if r not in known_roles]
        if unknown:
            raise ConfigError(f"Unknown assignable roles: {unknown}. Known: {sorted(known_roles)}")
        if self.telegram_chat_id is not None:
            self.telegram_chat_id = str(self.telegram_chat_id)

    @property
    def column_set(self) -> ColumnSet:
        return ColumnSet(self.columns)

    @property
    def roles(self) -> List[ContactRole]:
        return [ContactRole(r) for r in self.assignable_roles]

    def telegram_token(self) -> str:
        """Resolve the bot token from the environment."""
        token = os.environ.get(self.telegram_token_env)
        if not token:
            raise ConfigError(
                f"Environment variable {self.telegram_token_env} is not set.\n"
                f"Set it:  export {self.telegram_token_env}=your_bot_token\n"
                f"Get a token from @BotFather on Telegram."
            )
        return token

    @classmethod
    def load(cls, path: Optional[str] = None) -> "Config":
        """Load config from YAML file, falling back to defaults."""
        if path:
            cfg_path = Path(path)
            if not cfg_path.exists():
                raise ConfigError(f"Config file not found: {cfg_path}")
        else:
            cfg_path = Path(os.environ.get(CONFIG_ENV) or CONFIG_PATH)

        if cfg_path.exists():
            try:
                with open(cfg_path, "r") as f:
                    data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Cannot parse {cfg_path}: {e}") from e
            if not isinstance(data, dict):
                raise ConfigError(f"{cfg_path} must contain a mapping, got {type(data).__name__}")
            cfg = cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})
        else:
            cfg = cls()
        cfg.validate()
        return cfg
