"""Configuration management for the digestctl control surface.

This module provides centralized configuration for the run orchestrator,
the schedule controller and the local state store. All settings are loaded
from environment variables with sensible defaults.

Environment Variables:
    Agent Service:
        AGENT_API_URL: Endpoint that invokes a remote agent workflow
        AGENT_API_KEY: Optional bearer token sent with agent calls
        MANAGER_AGENT_ID: Routing key of the orchestrating (manager) agent
        SEARCH_AGENT_ID: Routing key of the paper search sub-agent
        DELIVERY_AGENT_ID: Routing key of the email delivery sub-agent

    Scheduler Service:
        SCHEDULER_API_URL: Base URL of the remote scheduler service
        SCHEDULER_API_KEY: Optional bearer token sent with scheduler calls
        SCHEDULE_ID: Identifier of the recurring digest schedule
        SCHEDULER_TIMEOUT_SECONDS: Total timeout for scheduler requests
        EXECUTION_LOG_LIMIT: Number of recent executions to fetch

    Local State:
        STORE_PATH: SQLite file holding topics, recipient and history
        DATE_WINDOW_DAYS: Default preferred search window in days

    Optional Features:
        ENABLE_LOGFIRE: Enable Logfire/OpenTelemetry tracing

    Logging:
        LOG_DIR: Directory for log files
        LOG_LEVEL: Logging verbosity (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        LOG_BACKUP_COUNT: Number of rotated log files to keep
        LOG_MAX_BYTES: Max log file size in bytes (0 = time-based rotation)
        LOG_FORMAT: Log format ('text' or 'json' for structured logging)
"""

import os
from dataclasses import dataclass, field
from pathlib import Path


def _env(key: str, default: str = "") -> str:
    """Get string environment variable with optional default.

    Args:
        key: Environment variable name
        default: Value to return if not set

    Returns:
        Environment variable value or default
    """
    return os.environ.get(key, default)


def _env_int(key: str, default: int) -> int:
    """Get integer environment variable with default.

    Raises:
        ValueError: If value is set but cannot be parsed as integer
    """
    val = os.environ.get(key)
    if not val:
        return default
    try:
        return int(val)
    except ValueError:
        raise ValueError(f"Invalid integer value for {key}: '{val}'")


def _env_float(key: str, default: float) -> float:
    """Get float environment variable with default.

    Raises:
        ValueError: If value is set but cannot be parsed as float
    """
    val = os.environ.get(key)
    if not val:
        return default
    try:
        return float(val)
    except ValueError:
        raise ValueError(f"Invalid float value for {key}: '{val}'")


def _env_bool(key: str, default: bool = False) -> bool:
    """Get boolean environment variable with default.

    Recognizes truthy values: '1', 'true', 'yes', 'on'
    Recognizes falsy values: '0', 'false', 'no', 'off'
    """
    val = os.environ.get(key, "").lower()
    if val in ("1", "true", "yes", "on"):
        return True
    if val in ("0", "false", "no", "off"):
        return False
    return default


# Requirement groups checked by Config.validate()
REQUIRE_AGENT = "agent"
REQUIRE_SCHEDULER = "scheduler"


@dataclass
class Config:
    """Application configuration loaded from environment variables.

    Use Config.load() to create an instance with values from the environment.

    Example:
        >>> config = Config.load()
        >>> if error := config.validate(require=("agent",)):
        ...     print(f"Config error: {error}")
    """

    # === Agent Service ===
    agent_api_url: str = ""  # AGENT_API_URL - POST endpoint for agent calls
    agent_api_key: str = ""  # AGENT_API_KEY - Optional bearer token
    manager_agent_id: str = ""  # MANAGER_AGENT_ID - Orchestrating agent
    search_agent_id: str = ""  # SEARCH_AGENT_ID - Paper search sub-agent
    delivery_agent_id: str = ""  # DELIVERY_AGENT_ID - Email delivery sub-agent

    # === Scheduler Service ===
    scheduler_api_url: str = ""  # SCHEDULER_API_URL - Scheduler base URL
    scheduler_api_key: str = ""  # SCHEDULER_API_KEY - Optional bearer token
    schedule_id: str = ""  # SCHEDULE_ID - Recurring digest schedule
    request_timeout_seconds: float = 30.0  # SCHEDULER_TIMEOUT_SECONDS
    log_limit: int = 10  # EXECUTION_LOG_LIMIT - Recent executions to show

    # === Local State ===
    store_path: Path = field(default_factory=lambda: Path("digest.db"))  # STORE_PATH
    date_window_days: int = 7  # DATE_WINDOW_DAYS - Default preferred window

    # === Logging Configuration ===
    log_dir: Path = field(default_factory=lambda: Path("log"))  # LOG_DIR
    log_level: str = "INFO"  # LOG_LEVEL - DEBUG, INFO, WARNING, ERROR
    log_backup_count: int = 30  # LOG_BACKUP_COUNT - Number of rotated logs to keep
    log_max_bytes: int = 0  # LOG_MAX_BYTES - Max file size (0 = time-based rotation)
    log_format: str = "text"  # LOG_FORMAT - 'text' or 'json' for structured logging

    # === Optional: Observability ===
    # Requires: pip install logfire
    enable_logfire: bool = False  # ENABLE_LOGFIRE - Enable distributed tracing
    logfire_token: str = ""  # LOGFIRE_TOKEN - Authentication token

    @classmethod
    def load(cls) -> "Config":
        """Load configuration from environment variables."""
        return cls(
            agent_api_url=_env("AGENT_API_URL"),
            agent_api_key=_env("AGENT_API_KEY"),
            manager_agent_id=_env("MANAGER_AGENT_ID"),
            search_agent_id=_env("SEARCH_AGENT_ID"),
            delivery_agent_id=_env("DELIVERY_AGENT_ID"),
            scheduler_api_url=_env("SCHEDULER_API_URL"),
            scheduler_api_key=_env("SCHEDULER_API_KEY"),
            schedule_id=_env("SCHEDULE_ID"),
            request_timeout_seconds=_env_float("SCHEDULER_TIMEOUT_SECONDS", 30.0),
            log_limit=_env_int("EXECUTION_LOG_LIMIT", 10),
            store_path=Path(_env("STORE_PATH", "digest.db")),
            date_window_days=_env_int("DATE_WINDOW_DAYS", 7),
            log_dir=Path(_env("LOG_DIR", "log")),
            log_level=_env("LOG_LEVEL", "INFO").upper(),
            log_backup_count=_env_int("LOG_BACKUP_COUNT", 30),
            log_max_bytes=_env_int("LOG_MAX_BYTES", 0),
            log_format=_env("LOG_FORMAT", "text").lower(),
            enable_logfire=_env_bool("ENABLE_LOGFIRE", False),
            logfire_token=_env("LOGFIRE_TOKEN"),
        )

    def validate(self, require: tuple[str, ...] = ()) -> str | None:
        """Validate configuration for required fields and valid values.

        Service settings are only checked for the groups named in
        ``require`` so that local-only commands (topics, history) work
        without any remote endpoint configured.

        Args:
            require: Requirement groups ("agent", "scheduler") to enforce

        Returns:
            Error message string if invalid, None if valid.
        """
        if REQUIRE_AGENT in require:
            if not self.agent_api_url:
                return "AGENT_API_URL environment variable is required"
            if not self.manager_agent_id:
                return "MANAGER_AGENT_ID environment variable is required"
        if REQUIRE_SCHEDULER in require:
            if not self.scheduler_api_url:
                return "SCHEDULER_API_URL environment variable is required"
            if not self.schedule_id:
                return "SCHEDULE_ID environment variable is required"
        if self.request_timeout_seconds <= 0:
            return "SCHEDULER_TIMEOUT_SECONDS must be positive"
        if self.log_limit <= 0:
            return "EXECUTION_LOG_LIMIT must be positive"
        if self.date_window_days <= 0:
            return "DATE_WINDOW_DAYS must be positive"
        if self.log_level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            return f"Invalid LOG_LEVEL '{self.log_level}' - must be DEBUG, INFO, WARNING, ERROR, or CRITICAL"
        if self.log_format not in ("text", "json"):
            return f"Invalid LOG_FORMAT '{self.log_format}' - must be 'text' or 'json'"
        if self.log_backup_count < 0:
            return "LOG_BACKUP_COUNT must be non-negative"
        if self.log_max_bytes < 0:
            return "LOG_MAX_BYTES must be non-negative"
        return None
