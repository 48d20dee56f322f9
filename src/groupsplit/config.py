"""
Configuration management for GroupSplit.

Defaults suitable for local development, optionally overridden by a JSON
config file and then by GROUPSPLIT_* environment variables.
"""

import json
import logging
import os
import secrets
import sys
from dataclasses import dataclass, asdict, field
from pathlib import Path
from typing import Dict, Any, Optional, List, TYPE_CHECKING

if TYPE_CHECKING:
    from .auth.rate_limiter import RateLimitConfig

ENV_PREFIX = "GROUPSPLIT_"

# Secrets that must never sign session or magic-link tokens
WEAK_SECRET_KEYS = {
    "your-secret-key-change-in-production",
    "secret",
    "key",
    "password",
    "jwt-secret",
    "secret-key",
    "change-me",
    "changeme",
    "default",
    "test",
    "development",
    "dev",
    "demo",
    "example",
    "sample",
}


def _validate_secret_key(secret_key: str) -> None:
    """Reject weak or default signing keys.

    Args:
        secret_key: The key used to sign magic-link tokens

    Raises:
        SystemExit: If the key is empty, short, known-weak or low-entropy
    """
    if not secret_key:
        logging.critical("Secret key is empty - magic links could be forged")
        sys.exit(1)

    if len(secret_key) < 32:
        logging.critical(
            f"Secret key is too short ({len(secret_key)} chars). "
            f"Minimum 32 characters required."
        )
        sys.exit(1)

    if secret_key.lower() in WEAK_SECRET_KEYS:
        logging.critical(
            f"Secret key '{secret_key}' is a known weak/default value. "
            f"Set {ENV_PREFIX}SECRET_KEY to a random value."
        )
        sys.exit(1)

    unique_chars = len(set(secret_key))
    if unique_chars < 8:
        logging.critical(
            f"Secret key has insufficient entropy ({unique_chars} unique characters)."
        )
        sys.exit(1)

    logging.debug(
        f"Secret key validation passed ({len(secret_key)} chars, {unique_chars} unique)"
    )


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        logging.warning(f"Ignoring non-integer value for {name}: {value!r}")
        return default


@dataclass
class DatabaseConfig:
    """Database configuration."""

    url: str = "sqlite:///./data/groupsplit.db"
    echo: bool = False
    log_queries: bool = False


@dataclass
class ServerConfig:
    """Server configuration."""

    host: str = "127.0.0.1"
    port: int = 8787
    debug: bool = False


@dataclass
class SmtpConfig:
    """Outgoing mail configuration. An empty host keeps mail in memory."""

    host: str = ""
    port: int = 587
    username: str = ""
    password: str = ""
    sender: str = "GroupSplit <noreply@groupsplit.local>"
    use_tls: bool = True


@dataclass
class AppConfig:
    """Main application configuration."""

    app_name: str = "GroupSplit"
    description: str = "Shared expense tracking for groups"

    # Public URLs
    frontend_url: str = "http://localhost:5173"
    app_url: str = "http://localhost:8787"
    locale: str = "fr_FR"

    # Security
    secret_key: str = ""
    session_ttl_days: int = 7
    magic_link_ttl_minutes: int = 15
    invitation_ttl_days: int = 7
    cookie_secure: bool = False

    # Rate limiting for the magic-link endpoints
    rate_limit_auth_requests: int = 10
    rate_limit_window_seconds: int = 60
    rate_limit_failure_penalty_minutes: int = 15
    rate_limit_max_failures: int = 5
    rate_limit_bypass_ips: List[str] = field(default_factory=list)
    rate_limit_trust_proxy_headers: bool = False

    # Logging
    log_level: str = "INFO"
    log_to_file: bool = True
    log_dir: str = "logs"


@dataclass
class GroupSplitConfig:
    """Complete configuration for GroupSplit."""

    app: AppConfig
    server: ServerConfig
    database: DatabaseConfig
    smtp: SmtpConfig

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "app": asdict(self.app),
            "server": asdict(self.server),
            "database": asdict(self.database),
            "smtp": asdict(self.smtp),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GroupSplitConfig":
        """Create from dictionary."""
        return cls(
            app=AppConfig(**data.get("app", {})),
            server=ServerConfig(**data.get("server", {})),
            database=DatabaseConfig(**data.get("database", {})),
            smtp=SmtpConfig(**data.get("smtp", {})),
        )


class ConfigManager:
    """Loads configuration from defaults, an optional file and the environment."""

    def __init__(self):
        self.config_file: Optional[Path] = None
        self.config: Optional[GroupSplitConfig] = None

    def get_config_file_path(self) -> Optional[Path]:
        """Path of the JSON config file, if one is configured."""
        path = os.getenv(f"{ENV_PREFIX}CONFIG_FILE")
        return Path(path) if path else None

    def _read_file(self) -> Dict[str, Any]:
        self.config_file = self.get_config_file_path()
        if self.config_file is None:
            return {}
        if not self.config_file.exists():
            logging.warning(f"Config file not found: {self.config_file}")
            return {}
        try:
            with open(self.config_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logging.warning(f"Failed to load config from {self.config_file}: {e}")
            return {}
        logging.info(f"Loaded configuration from {self.config_file}")
        return data

    def _apply_environment(self, config: GroupSplitConfig) -> None:
        """Apply GROUPSPLIT_* overrides on top of file and defaults."""
        p = ENV_PREFIX
        app, server, database, smtp = (
            config.app,
            config.server,
            config.database,
            config.smtp,
        )

        database.url = os.getenv(f"{p}DATABASE_URL") or database.url
        database.log_queries = _env_bool(f"{p}LOG_QUERIES", database.log_queries)
        database.echo = _env_bool(f"{p}SQL_ECHO", database.echo)

        server.host = os.getenv(f"{p}HOST") or server.host
        server.port = _env_int(f"{p}PORT", server.port)
        server.debug = _env_bool(f"{p}DEBUG", server.debug)

        # Unprefixed FRONTEND_URL is also accepted
        app.frontend_url = (
            os.getenv(f"{p}FRONTEND_URL")
            or os.getenv("FRONTEND_URL")
            or app.frontend_url
        ).rstrip("/")
        app.app_url = (os.getenv(f"{p}APP_URL") or app.app_url).rstrip("/")
        app.app_name = os.getenv(f"{p}APP_NAME") or app.app_name
        app.locale = os.getenv(f"{p}LOCALE") or app.locale
        app.secret_key = os.getenv(f"{p}SECRET_KEY") or app.secret_key
        app.cookie_secure = _env_bool(f"{p}COOKIE_SECURE", app.cookie_secure)
        app.log_to_file = _env_bool(f"{p}LOG_TO_FILE", app.log_to_file)
        app.log_dir = os.getenv(f"{p}LOG_DIR") or app.log_dir
        app.log_level = "DEBUG" if server.debug else app.log_level
        app.rate_limit_auth_requests = _env_int(
            f"{p}RATE_LIMIT_AUTH_REQUESTS", app.rate_limit_auth_requests
        )
        app.rate_limit_trust_proxy_headers = _env_bool(
            f"{p}TRUST_PROXY_HEADERS", app.rate_limit_trust_proxy_headers
        )

        smtp.host = os.getenv(f"{p}SMTP_HOST") or smtp.host
        smtp.port = _env_int(f"{p}SMTP_PORT", smtp.port)
        smtp.username = os.getenv(f"{p}SMTP_USER") or smtp.username
        smtp.password = os.getenv(f"{p}SMTP_PASSWORD") or smtp.password
        smtp.sender = os.getenv(f"{p}SMTP_FROM") or smtp.sender
        smtp.use_tls = _env_bool(f"{p}SMTP_TLS", smtp.use_tls)

    def load_config(self) -> GroupSplitConfig:
        """Load configuration, caching the result."""
        if self.config is not None:
            return self.config

        config = GroupSplitConfig.from_dict(self._read_file())
        self._apply_environment(config)

        if not config.app.secret_key:
            config.app.secret_key = secrets.token_urlsafe(64)
            logging.info("Generated new secret key (not from environment)")

        self.config = config
        return self.config

    def reset(self) -> None:
        """Forget the cached configuration so the next load re-reads the environment."""
        self.config = None

    def get_database_url(self) -> str:
        """Get the database URL."""
        return self.load_config().database.url

    def validate_security_config(self) -> None:
        """Validate security-critical configuration at startup.

        Raises:
            SystemExit: If critical security issues are found
        """
        config = self.load_config()
        _validate_secret_key(config.app.secret_key)

        if config.app.frontend_url == "*":
            logging.critical("FRONTEND_URL must be a single origin, not '*'")
            sys.exit(1)

        logging.info("Security configuration validation passed")


# Global config manager instance
config_manager = ConfigManager()


def get_config() -> GroupSplitConfig:
    """Get the current configuration."""
    return config_manager.load_config()


def reset_config() -> None:
    """Drop the cached configuration."""
    config_manager.reset()


def get_database_url() -> str:
    """Get the database URL."""
    return config_manager.get_database_url()


def get_rate_limit_config() -> "RateLimitConfig":
    """Create a RateLimitConfig from the current app configuration."""
    from .auth.rate_limiter import RateLimitConfig

    app_config = get_config().app

    return RateLimitConfig(
        max_requests=app_config.rate_limit_auth_requests,
        window_seconds=app_config.rate_limit_window_seconds,
        failure_penalty_minutes=app_config.rate_limit_failure_penalty_minutes,
        max_failures_before_block=app_config.rate_limit_max_failures,
        bypass_ips=set(app_config.rate_limit_bypass_ips),
        trust_proxy_headers=app_config.rate_limit_trust_proxy_headers,
    )


def validate_startup_security() -> None:
    """Validate security configuration at application startup.

    Raises:
        SystemExit: If critical security problems are detected
    """
    try:
        config_manager.validate_security_config()
    except SystemExit:
        raise
    except Exception as e:
        logging.critical(f"Unexpected error during security validation: {e}")
        sys.exit(1)
