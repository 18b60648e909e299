"""
Configuration management for QuietWatch.
"""

from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from ruamel.yaml import YAML


class ConfigError(Exception):
    """Configuration error. Fatal at startup."""

    pass


def _split_csv(value: Any) -> Any:
    """Accept either a list or a comma separated string."""
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        # A lone numeric chat id arrives JSON-decoded from the environment
        return [str(value)]
    if isinstance(value, (list, tuple)):
        return [str(part).strip() for part in value if str(part).strip()]
    return value


class MonitoringConfig(BaseModel):
    """Watch-list and quiet window configuration."""

    localities: Union[List[str], str] = Field(default_factory=list, description="Monitored localities (base city names)")
    quiet_window_minutes: int = Field(10, gt=0, description="Minutes a locality must stay alert-free")
    replay_on_start: bool = Field(False, description="Replay recent channel history on startup")
    replay_window_minutes: Optional[int] = Field(None, gt=0, description="History window (defaults to the quiet window)")
    status_interval: int = Field(15, gt=0, description="Seconds between pending-timer status logs")

    @field_validator("localities", mode="before")
    @classmethod
    def _parse_localities(cls, value):
        return _split_csv(value)

    @model_validator(mode="after")
    def _default_replay_window(self) -> "MonitoringConfig":
        if self.replay_window_minutes is None:
            self.replay_window_minutes = self.quiet_window_minutes
        return self

    @property
    def quiet_window(self) -> timedelta:
        return timedelta(minutes=self.quiet_window_minutes)

    @property
    def replay_window(self) -> timedelta:
        return timedelta(minutes=self.replay_window_minutes or self.quiet_window_minutes)


class ChannelConfig(BaseModel):
    """Source channel configuration."""

    source: str = Field("", description="Source channel (@username, t.me link or numeric id)")
    diff_interval: float = Field(5.0, gt=0, description="Seconds between differential pulls")
    pull_timeout: float = Field(30.0, gt=0, description="Upper bound for one pull call in seconds")
    transport_factory: Optional[str] = Field(
        None,
        description="Dotted 'module:callable' returning a ChannelTransport for the configured source",
    )
    transport_options: Dict[str, Any] = Field(default_factory=dict, description="Keyword arguments for the transport factory")


class NotificationsConfig(BaseModel):
    """Outbound notification configuration."""

    destinations: Union[List[str], str] = Field(default_factory=list, description="Destination chat ids")
    bot_token: Optional[str] = Field(None, description="Telegram Bot API token; sends through the bot when set")
    bot_api_url: str = Field("https://api.telegram.org", description="Telegram Bot API base URL")
    timeout_seconds: int = Field(30, gt=0, description="Send timeout in seconds")
    stand_down_template: Optional[str] = Field(None, description="Override for the quiet-window message template")
    override_template: Optional[str] = Field(None, description="Override for the official stand-down message template")

    @field_validator("destinations", mode="before")
    @classmethod
    def _parse_destinations(cls, value):
        return _split_csv(value)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field("INFO", description="Log level")
    file: Optional[Path] = Field(None, description="Log file path")
    format: str = Field("text", description="Log format: 'json' or 'text'")


class StatusServerConfig(BaseModel):
    """Status HTTP server configuration."""

    enabled: bool = Field(False, description="Enable the status HTTP server")
    host: str = Field("127.0.0.1", description="Server host")
    port: int = Field(8110, description="Server port")


class DevConfig(BaseModel):
    """Development and testing configuration."""

    inject_enabled: bool = Field(False, description="Feed injected bulletins through an in-memory channel")
    inject_bulletins: List[Dict[str, Any]] = Field(
        default_factory=list,
        description="Bulletins to inject: {'id': int, 'text': str, 'minutes_ago': float}",
    )


class AppConfig(BaseSettings):
    """Application configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="QUIETWATCH_",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
    )

    config_file: Path = Field(Path("config.yaml"), description="Configuration file path")

    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)
    channel: ChannelConfig = Field(default_factory=ChannelConfig)
    notifications: NotificationsConfig = Field(default_factory=NotificationsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    status_server: StatusServerConfig = Field(default_factory=StatusServerConfig)
    dev: DevConfig = Field(default_factory=DevConfig)

    @classmethod
    def from_yaml(cls, config_path=None) -> "AppConfig":
        """Load configuration from YAML file, falling back to environment only."""
        if config_path is None:
            config_path = Path("config/default.yaml")
        elif isinstance(config_path, str):
            config_path = Path(config_path)

        try:
            if not config_path.exists():
                return cls()

            yaml = YAML(typ='safe')
            with open(config_path, 'r', encoding='utf-8') as f:
                yaml_data = yaml.load(f) or {}

            return cls(config_file=config_path, **yaml_data)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

    def validate_for_run(self) -> None:
        """Check the settings a live run cannot start without."""
        if not self.monitoring.localities:
            raise ConfigError("monitoring.localities must contain at least one locality name")
        if not self.notifications.destinations:
            raise ConfigError("notifications.destinations must contain at least one destination id")
        if not self.dev.inject_enabled and not self.channel.source:
            raise ConfigError("channel.source is required")
        if not self.dev.inject_enabled and not self.channel.transport_factory:
            raise ConfigError("channel.transport_factory is required to connect to the source channel")
