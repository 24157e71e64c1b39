"""Configuration for threadwatch.

Two layers:
    MonitorConfig: runtime engine configuration (sources, filters, channel),
        stored as JSON wrapped in ``{"config": {...}}`` and editable through
        the admin API. Instances are frozen; changing configuration means
        building a new instance and handing it to ``ForumMonitor.reconfigure``.
    ProcessSettings: process-level settings read from the environment
        (optionally seeded from ``data/.env``): store backend, paths, admin
        token, listen address.

Usage:
    >>> manager = ConfigManager("data/config.json")
    >>> config = manager.load()
    >>> config.frequency
    300
"""

import json
import os
import shutil
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from threadwatch.backend.utils.errors import ConfigError
from threadwatch.backend.utils.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG_PATH = "data/config.json"
DEFAULT_EXAMPLE_PATH = "config.example.json"
DEFAULT_ENV_FILE = "data/.env"

MIN_FREQUENCY_SECONDS = 10
DEFAULT_FREQUENCY_SECONDS = 300

DEFAULT_THREAD_PROMPT = (
    "You screen new forum threads from hosting deal sites. If the thread is a "
    "concrete server, VPS or hosting offer, reply with a one-sentence summary "
    "of the offer (specs, price, location) followed by END. Otherwise reply "
    "with exactly FALSE."
)
DEFAULT_COMMENT_PROMPT = (
    "You screen replies in hosting deal threads. If the reply announces a "
    "restock, a new plan, a price change or a flash sale, reply with a "
    "one-sentence summary followed by END. Otherwise reply with exactly FALSE."
)


class MonitorConfig(BaseModel):
    """Engine configuration snapshot.

    Unknown keys are ignored so config files written by newer versions still
    load. Empty strings for the enum-like fields fall back to their defaults.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    urls: List[str] = Field(default_factory=list)
    extra_urls: List[str] = Field(default_factory=list)
    only_extra: bool = False
    frequency: int = Field(DEFAULT_FREQUENCY_SECONDS, ge=MIN_FREQUENCY_SECONDS)
    comment_filter: Literal["by_role", "by_author", "all"] = "by_role"
    max_pages_per_cycle: int = Field(0, ge=0)

    use_keywords_filter: bool = False
    keywords_rule: str = ""

    use_ai_filter: bool = False
    ai_provider: Literal["cloudflare", "openai"] = "cloudflare"
    cf_account_id: str = ""
    cf_token: str = ""
    model: str = ""
    openai_api_url: str = ""
    openai_api_key: str = ""
    openai_model: str = ""
    thread_prompt: str = DEFAULT_THREAD_PROMPT
    comment_prompt: str = DEFAULT_COMMENT_PROMPT

    notice_type: Literal["telegram", "wechat", "custom"] = "telegram"
    telegrambot: str = ""
    chat_id: str = ""
    wechat_key: str = ""
    custom_url: str = ""

    @field_validator("frequency", mode="before")
    @classmethod
    def _default_frequency(cls, value):
        if value in (None, 0, ""):
            return DEFAULT_FREQUENCY_SECONDS
        return value

    @field_validator("comment_filter", "ai_provider", "notice_type", mode="before")
    @classmethod
    def _blank_means_default(cls, value, info):
        if value is None or (isinstance(value, str) and not value.strip()):
            return cls.model_fields[info.field_name].default
        return value.strip() if isinstance(value, str) else value

    @field_validator("urls", "extra_urls", mode="before")
    @classmethod
    def _drop_blank_urls(cls, value):
        if value is None:
            return []
        if isinstance(value, list):
            return [url.strip() for url in value if isinstance(url, str) and url.strip()]
        return value

    def missing_backend_fields(self) -> List[str]:
        """Names of fields required by the selected channel/classifier but empty."""
        required = {
            "telegram": ["telegrambot", "chat_id"],
            "wechat": ["wechat_key"],
            "custom": ["custom_url"],
        }[self.notice_type]

        if self.use_ai_filter:
            if self.ai_provider == "cloudflare":
                required = required + ["cf_account_id", "cf_token", "model"]
            else:
                required = required + ["openai_api_key", "openai_model"]

        return [name for name in required if not str(getattr(self, name)).strip()]

    def validate_backends(self) -> None:
        """Raise ConfigError when the selected backends are missing credentials."""
        missing = self.missing_backend_fields()
        if missing:
            raise ConfigError(
                f"Incomplete configuration for notice_type '{self.notice_type}'"
                + (f" with ai_provider '{self.ai_provider}'" if self.use_ai_filter else "")
                + f": missing {', '.join(missing)}"
            )


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error["loc"]) or "config"
        parts.append(f"{location}: {error['msg']}")
    return "; ".join(parts)


class ConfigManager:
    """Loads, validates and persists the engine configuration file.

    The file format is ``{"config": {...}}``. If the file does not exist it
    is created from ``config.example.json``.

    Attributes:
        config_path: Location of the JSON configuration file
        example_path: Template copied when config_path is missing
    """

    def __init__(self, config_path: str = None, example_path: str = None):
        self.config_path = Path(config_path or os.environ.get("CONFIG_PATH", DEFAULT_CONFIG_PATH))
        self.example_path = Path(example_path or DEFAULT_EXAMPLE_PATH)
        self._config: Optional[MonitorConfig] = None
        self._lock = threading.Lock()

    @staticmethod
    def parse(data: Dict[str, Any]) -> MonitorConfig:
        """Build a MonitorConfig from a plain dict (no backend checks).

        Raises:
            ConfigError: Unknown enum values, bad types or out-of-range numbers
        """
        try:
            return MonitorConfig.model_validate(data)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration: {_format_validation_error(e)}") from e

    @classmethod
    def validate(cls, data: Dict[str, Any]) -> MonitorConfig:
        """Parse and require the selected backends to be fully configured.

        Raises:
            ConfigError: Any validation failure
        """
        config = cls.parse(data)
        config.validate_backends()
        return config

    def load(self) -> MonitorConfig:
        """Read the configuration file and make it current.

        Raises:
            ConfigError: File missing with no example to copy, invalid JSON,
                missing ``config`` key or invalid values
        """
        with self._lock:
            if not self.config_path.exists():
                if not self.example_path.exists():
                    raise ConfigError(
                        f"Config file {self.config_path} not found and no "
                        f"{self.example_path} to create it from"
                    )
                self.config_path.parent.mkdir(parents=True, exist_ok=True)
                shutil.copyfile(self.example_path, self.config_path)
                logger.info("config_created_from_example", config_path=str(self.config_path),
                            example_path=str(self.example_path))

            try:
                raw = json.loads(self.config_path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as e:
                raise ConfigError(f"Cannot read config file {self.config_path}: {e}") from e

            if not isinstance(raw, dict) or not isinstance(raw.get("config"), dict):
                raise ConfigError(f"Config file {self.config_path} has no 'config' object")

            self._config = self.parse(raw["config"])

        logger.info("config_loaded", config_path=str(self.config_path))
        return self._config

    def reload(self) -> MonitorConfig:
        logger.info("config_reloading", config_path=str(self.config_path))
        return self.load()

    def get(self) -> MonitorConfig:
        """Return the current configuration, loading it on first use."""
        if self._config is None:
            return self.load()
        return self._config

    def save(self, config: MonitorConfig) -> None:
        """Write ``config`` to disk and make it current.

        The file is written to a temporary sibling and renamed into place so
        a crash never leaves a half-written config.
        """
        payload = json.dumps({"config": config.model_dump()}, indent=4, ensure_ascii=False)
        with self._lock:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.config_path.with_suffix(self.config_path.suffix + ".tmp")
            try:
                tmp_path.write_text(payload, encoding="utf-8")
                os.replace(tmp_path, self.config_path)
            except OSError as e:
                raise ConfigError(f"Cannot write config file {self.config_path}: {e}") from e
            self._config = config
        logger.info("config_saved", config_path=str(self.config_path))


def load_env_file(path: str = DEFAULT_ENV_FILE) -> None:
    """Export KEY=VALUE lines from a .env file without overriding the environment."""
    env_path = Path(path)
    if not env_path.exists():
        return

    with open(env_path, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if line and not line.startswith("#") and "=" in line:
                key, value = line.split("=", 1)
                key = key.strip()
                value = value.strip().strip('"').strip("'")
                if key and key not in os.environ:
                    os.environ[key] = value


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("true", "1", "yes", "on")


@dataclass(frozen=True)
class ProcessSettings:
    """Settings taken from the environment at process start."""

    db_type: str = "sqlite"
    sqlite_path: str = "data/forum_monitor.db"
    config_path: str = DEFAULT_CONFIG_PATH
    access_token: str = "default_token"
    host: str = "0.0.0.0"
    port: int = 5556
    log_dir: str = "logs"
    log_level: str = "INFO"
    monitor_autostart: bool = True

    @classmethod
    def from_env(cls) -> "ProcessSettings":
        """Read settings from os.environ.

        Raises:
            ConfigError: PORT is not an integer
        """
        port = os.environ.get("PORT", str(cls.port))
        try:
            port_number = int(port)
        except ValueError as e:
            raise ConfigError(f"PORT must be an integer, got {port!r}") from e

        return cls(
            db_type=os.environ.get("DB_TYPE", cls.db_type),
            sqlite_path=os.environ.get("SQLITE_PATH", cls.sqlite_path),
            config_path=os.environ.get("CONFIG_PATH", cls.config_path),
            access_token=os.environ.get("ACCESS_TOKEN", cls.access_token),
            host=os.environ.get("HOST", cls.host),
            port=port_number,
            log_dir=os.environ.get("LOG_DIR", cls.log_dir),
            log_level=os.environ.get("LOG_LEVEL", cls.log_level),
            monitor_autostart=_env_bool("MONITOR_AUTOSTART", cls.monitor_autostart),
        )
