"""Application configuration.

Two layers live here: process settings read from the environment, and the
routing config document that chat directives can change at runtime.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from ideabot.jsonstore import read_json, write_json_atomic

LOGGER = logging.getLogger(__name__)

CONFIG_FILENAME = "configs.json"
AUTOREPLY_FILENAME = "auto.json"
PROCESS_FILENAME = "process.json"
DATABASE_FILENAME = "data.db"


class ConfigError(RuntimeError):
    """Raised when the bot cannot be started with the current configuration."""


class Settings(BaseSettings):
    """Environment-driven settings validated at startup."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_dir: Path = Field(default=Path.home() / ".ideasbglobe", alias="IDEABOT_HOME")
    telegram_bot_token: str = Field(default="", alias="TELEGRAM_BOT_TOKEN")
    telegram_base_url: str = Field(default="https://api.telegram.org", alias="TELEGRAM_BASE_URL")
    telegram_poll_timeout_seconds: int = Field(default=60, alias="TELEGRAM_POLL_TIMEOUT_SECONDS")
    # Without it the username reported by getMe is used for mention detection.
    bot_username: str = Field(default="", alias="BOT_USERNAME")
    ollama_base_url: str = Field(default="http://localhost:11434", alias="OLLAMA_BASE_URL")
    request_timeout_seconds: float = Field(default=120.0, alias="REQUEST_TIMEOUT_SECONDS")
    shell_timeout_seconds: float = Field(default=60.0, alias="SHELL_TIMEOUT_SECONDS")
    # Comma-separated Telegram user ids allowed to use /run. Empty means anyone.
    run_allowed_users: str = Field(default="", alias="RUN_ALLOWED_USERS")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    @property
    def config_path(self) -> Path:
        return self.app_dir / CONFIG_FILENAME

    @property
    def autoreply_path(self) -> Path:
        return self.app_dir / AUTOREPLY_FILENAME

    @property
    def process_path(self) -> Path:
        return self.app_dir / PROCESS_FILENAME

    @property
    def database_path(self) -> Path:
        return self.app_dir / DATABASE_FILENAME


def load_settings() -> Settings:
    """Load and validate settings."""

    return Settings()


def run_allowed_users(settings: Settings) -> frozenset[int]:
    """Return the Telegram user ids permitted to use /run.

    An empty set leaves /run open to every user.
    """
    users: set[int] = set()
    for raw in settings.run_allowed_users.split(","):
        raw = raw.strip()
        if not raw:
            continue
        try:
            users.add(int(raw))
        except ValueError:
            LOGGER.warning("Ignoring non-numeric RUN_ALLOWED_USERS entry %r", raw)
    return frozenset(users)


class BotConfig(BaseModel):
    id: str
    token: str = ""


class RoutingConfig(BaseModel):
    """Persisted routing document (``configs.json``)."""

    default_bot_id: str = ""
    bots: dict[str, BotConfig] = Field(default_factory=dict)
    default_ai_model: str = ""
    default_ai_prompt: str = ""


class ConfigStore:
    """Lock-guarded owner of the only mutable RoutingConfig.

    Readers take snapshots; writers go through methods that hold the lock for
    the whole mutate-and-persist cycle.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock = threading.Lock()
        self._config = RoutingConfig()

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> RoutingConfig:
        """Read the config file, creating a default one when absent."""

        with self._lock:
            try:
                raw = read_json(self._path)
            except FileNotFoundError:
                self._config = RoutingConfig()
                self._save_locked()
                LOGGER.info("Created default config at %s", self._path)
                return self._config.model_copy(deep=True)
            except (OSError, ValueError) as exc:
                LOGGER.warning("Config %s is unreadable, using defaults: %s", self._path, exc)
                self._config = RoutingConfig()
                return self._config.model_copy(deep=True)

            # Older files lack the bots map; fill it in and write it back.
            missing_bots = isinstance(raw, dict) and raw.get("bots") is None
            if missing_bots:
                raw = {**raw, "bots": {}}
            try:
                self._config = RoutingConfig.model_validate(raw)
            except ValidationError as exc:
                LOGGER.warning("Config %s is invalid, using defaults: %s", self._path, exc)
                self._config = RoutingConfig()
                return self._config.model_copy(deep=True)

            if missing_bots:
                self._save_locked()
            return self._config.model_copy(deep=True)

    def snapshot(self) -> RoutingConfig:
        with self._lock:
            return self._config.model_copy(deep=True)

    def save(self) -> bool:
        with self._lock:
            return self._save_locked()

    def set_default_ai_model(self, model: str) -> bool:
        """Switch the default model and persist it.

        The in-memory value changes even when the write fails; the return
        value tells the caller whether the change will survive a restart.
        """
        with self._lock:
            previous = self._config.default_ai_model
            self._config.default_ai_model = model
            LOGGER.info("Default AI model changed from %r to %r", previous, model)
            return self._save_locked()

    def resolve_bot_token(self, override: str = "") -> str:
        """Return the token of the bot to run."""

        if override:
            return override
        config = self.snapshot()
        if not config.default_bot_id:
            raise ConfigError(
                f"No default bot configured. Add a bot to {self._path} and set default_bot_id."
            )
        bot = config.bots.get(config.default_bot_id)
        if bot is None:
            raise ConfigError(f"Default bot id {config.default_bot_id!r} not found in {self._path}.")
        if not bot.token:
            raise ConfigError(f"Bot {bot.id!r} has an empty token; cannot start.")
        return bot.token

    def _save_locked(self) -> bool:
        try:
            write_json_atomic(self._path, self._config.model_dump(mode="json"))
        except OSError:
            LOGGER.exception("Failed to save config to %s", self._path)
            return False
        return True
