"""
Timeline Agent Configuration
============================

This module handles configuration loading for the timeline agent.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    TIMELINE_STREAM_URL                -> stream.url
    TIMELINE_STREAM_END_MARGIN_MINUTES -> stream.end_margin_minutes
    TIMELINE_AI_API_KEY                -> completion.api_key
    OPENAI_API_KEY                     -> completion.api_key (fallback)
    TIMELINE_AI_URL                    -> completion.base_url
    TIMELINE_AI_MODEL                  -> completion.model
    TIMELINE_DEFAULT_AGENT             -> agents.default_agent
    TIMELINE_TIMEZONE                  -> clock.timezone
    TIMELINE_AGENT_PORT                -> server.port
    TIMELINE_LOG_LEVEL                 -> logging.level
    PORT                               -> server.port (container platforms)

Example:
    from timeline_agent.config import settings

    print(settings.stream.url)
    print(settings.completion.model)
"""

import os
import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field


logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Models
# =============================================================================

class ServiceConfig(BaseModel):
    """Service identification configuration."""

    name: str = Field(default="timeline-query-agent", description="Service name")
    version: str = Field(default="v0.1.0", description="Service version")


class StreamConfig(BaseModel):
    """Frame streaming endpoint configuration."""

    url: str = Field(
        default="http://localhost:3030/stream/frames",
        description="Streaming endpoint: http(s) for SSE, ws(s) for WebSocket",
    )
    end_margin_minutes: float = Field(
        default=2.0,
        ge=0,
        description="Minutes kept before 'now' when refreshing, skips partially written data",
    )
    order: str = Field(
        default="descending",
        description="Ordering hint sent to the server (never trusted)",
    )
    keep_alive_sentinel: str = Field(
        default="keep-alive-text",
        description="Event payload that carries no frame",
    )
    connect_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Timeout for establishing the stream connection",
    )
    autostart: bool = Field(
        default=True,
        description="Start ingesting today's window when the service starts",
    )


class CompletionConfig(BaseModel):
    """OpenAI-compatible completion service configuration."""

    api_key: str = Field(default="", description="API key for the completion service")
    base_url: Optional[str] = Field(
        default=None,
        description="Base URL override (None = OpenAI)",
    )
    model: str = Field(default="gpt-4o", description="Model identifier")


class AgentsConfig(BaseModel):
    """Context agent configuration."""

    default_agent: str = Field(
        default="context-master",
        description="Agent used when a query names none (or an unknown one)",
    )


class ClockConfig(BaseModel):
    """Viewer clock configuration."""

    timezone: Optional[str] = Field(
        default=None,
        description="IANA timezone of the viewer (None = host local timezone)",
    )


class ServerConfig(BaseModel):
    """Server configuration."""

    host: str = Field(default="127.0.0.1", description="Bind host")
    port: int = Field(default=8011, ge=1, le=65535, description="Bind port")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="text", description="Log format: json or text")


class Settings(BaseModel):
    """
    Main settings class for the timeline agent.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    service: ServiceConfig = Field(default_factory=ServiceConfig)
    stream: StreamConfig = Field(default_factory=StreamConfig)
    completion: CompletionConfig = Field(default_factory=CompletionConfig)
    agents: AgentsConfig = Field(default_factory=AgentsConfig)
    clock: ClockConfig = Field(default_factory=ClockConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# =============================================================================
# Configuration Loading
# =============================================================================

def load_config(config_path: Optional[str] = None) -> Settings:
    """
    Load configuration from YAML file and environment variables.

    Priority (highest to lowest):
        1. Environment variables
        2. YAML config file
        3. Default values

    Args:
        config_path: Path to config.yaml. If None, searches common locations.

    Returns:
        Settings: Loaded configuration
    """
    # Find config file
    if config_path is None:
        search_paths = [
            Path(os.environ.get("TIMELINE_CONFIG", "config.yaml")),
            Path("config.yml"),
            Path(__file__).parent.parent.parent / "config.yaml",
        ]
        for path in search_paths:
            if path.exists():
                config_path = str(path)
                break

    # Load from YAML if exists
    config_data = {}
    if config_path and Path(config_path).exists():
        logger.info(f"Loading config from: {config_path}")
        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}
    else:
        logger.debug("No config file found, using defaults and environment variables")

    # Apply environment variable overrides
    _apply_env_overrides(config_data)

    # Build settings object
    settings = Settings.model_validate(config_data)

    return settings


def _apply_env_overrides(config_data: dict) -> None:
    """Apply environment variable overrides to config data."""

    # Stream settings
    if env_url := os.environ.get("TIMELINE_STREAM_URL"):
        config_data.setdefault("stream", {})["url"] = env_url
    if env_margin := os.environ.get("TIMELINE_STREAM_END_MARGIN_MINUTES"):
        config_data.setdefault("stream", {})["end_margin_minutes"] = float(env_margin)

    # Completion settings
    if env_key := os.environ.get("TIMELINE_AI_API_KEY"):
        config_data.setdefault("completion", {})["api_key"] = env_key
    elif env_key := os.environ.get("OPENAI_API_KEY"):
        config_data.setdefault("completion", {}).setdefault("api_key", env_key)
    if env_ai_url := os.environ.get("TIMELINE_AI_URL"):
        config_data.setdefault("completion", {})["base_url"] = env_ai_url
    if env_model := os.environ.get("TIMELINE_AI_MODEL"):
        config_data.setdefault("completion", {})["model"] = env_model

    # Agent settings
    if env_agent := os.environ.get("TIMELINE_DEFAULT_AGENT"):
        config_data.setdefault("agents", {})["default_agent"] = env_agent

    # Clock settings
    if env_tz := os.environ.get("TIMELINE_TIMEZONE"):
        config_data.setdefault("clock", {})["timezone"] = env_tz

    # Server settings (container platforms use PORT)
    if env_port := os.environ.get("PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)
    elif env_port := os.environ.get("TIMELINE_AGENT_PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)

    # Logging settings
    if env_log := os.environ.get("TIMELINE_LOG_LEVEL"):
        config_data.setdefault("logging", {})["level"] = env_log


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings."""
    log_level = getattr(logging, settings.logging.level.upper(), logging.INFO)

    if settings.logging.format == "json":
        log_format = '{"time": "%(asctime)s", "level": "%(levelname)s", "module": "%(name)s", "message": "%(message)s"}'
    else:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
        datefmt="%Y-%m-%dT%H:%M:%S",
    )


# =============================================================================
# Global Settings Instance
# =============================================================================

# Global settings instance - loaded on import
settings = load_config()
setup_logging(settings)
