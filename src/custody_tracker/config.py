"""
Configuration management for Custody Tracker.

Loads an optional JSON config file and applies environment overrides on top
of dataclass defaults.
"""

import json
import logging
import os
from dataclasses import dataclass, asdict, field
from pathlib import Path
from typing import Dict, Any, Optional, List


@dataclass
class DatabaseConfig:
    """Database configuration."""

    url: str = "sqlite:///custody_tracker.db"
    echo: bool = False
    pool_pre_ping: bool = True
    log_queries: bool = False  # Enable query logging for performance analysis


@dataclass
class ServerConfig:
    """Server configuration."""

    host: str = "127.0.0.1"
    port: int = 8000
    debug: bool = False
    auto_reload: bool = False
    workers: int = 1


@dataclass
class LedgerConfig:
    """Movement ledger behaviour."""

    default_lang_code: str = "en-US"
    default_page_size: int = 10
    max_page_size: int = 100
    annotation_max_length: int = 2000
    statistics_top_n: int = 10
    statistics_recent_size: int = 10
    statistics_trend_days: int = 30


@dataclass
class AppConfig:
    """Main application configuration."""

    app_name: str = "Custody Tracker"
    version: str = "1.0.0"
    description: str = "Append-only custody ledger for inventory asset movements"

    # Features
    enable_cors: bool = True
    allowed_origins: List[str] = field(
        default_factory=lambda: ["http://127.0.0.1:8000", "http://localhost:8000"]
    )
    max_request_bytes: int = 64 * 1024

    # Logging
    log_level: str = "INFO"
    log_to_file: bool = True
    log_dir: str = "logs"  # Directory for log files

    # Environment
    is_development: bool = False


@dataclass
class CustodyConfig:
    """Complete configuration for Custody Tracker."""

    app: AppConfig
    server: ServerConfig
    database: DatabaseConfig
    ledger: LedgerConfig

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "app": asdict(self.app),
            "server": asdict(self.server),
            "database": asdict(self.database),
            "ledger": asdict(self.ledger),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CustodyConfig":
        """Create from dictionary."""
        return cls(
            app=AppConfig(**data.get("app", {})),
            server=ServerConfig(**data.get("server", {})),
            database=DatabaseConfig(**data.get("database", {})),
            ledger=LedgerConfig(**data.get("ledger", {})),
        )


def _env_flag(name: str) -> Optional[bool]:
    """Read a boolean environment flag, None when unset."""
    value = os.getenv(name)
    if value is None:
        return None
    return value.strip().lower() in ("1", "true", "yes", "on")


class ConfigManager:
    """Manages configuration loading, saving, and environment overrides."""

    def __init__(self):
        self.config_file: Optional[Path] = None
        self.config: Optional[CustodyConfig] = None

    def get_config_file_path(self) -> Optional[Path]:
        """Get the path for the config file, if one is configured."""
        config_file = os.getenv("CUSTODY_CONFIG_FILE")
        return Path(config_file) if config_file else None

    def apply_environment(self, config: CustodyConfig) -> CustodyConfig:
        """Apply CUSTODY_* environment overrides to a configuration."""
        db_url = os.getenv("CUSTODY_DATABASE_URL")
        if db_url:
            config.database.url = db_url

        default_lang = os.getenv("CUSTODY_DEFAULT_LANG")
        if default_lang:
            config.ledger.default_lang_code = default_lang

        log_dir = os.getenv("CUSTODY_LOG_DIR")
        if log_dir:
            config.app.log_dir = log_dir

        debug = _env_flag("CUSTODY_DEBUG")
        if debug is not None:
            config.server.debug = debug
            config.app.log_level = "DEBUG" if debug else "INFO"

        log_to_file = _env_flag("CUSTODY_LOG_TO_FILE")
        if log_to_file is not None:
            config.app.log_to_file = log_to_file

        log_queries = _env_flag("CUSTODY_LOG_QUERIES")
        if log_queries is not None:
            config.database.log_queries = log_queries

        dev_mode = _env_flag("CUSTODY_DEV_MODE")
        if dev_mode is not None:
            config.app.is_development = dev_mode
            config.server.auto_reload = dev_mode

        return config

    def load_config(self) -> CustodyConfig:
        """Load configuration from file or create default."""
        self.config_file = self.get_config_file_path()

        if self.config_file and self.config_file.exists():
            try:
                with open(self.config_file, "r", encoding="utf-8") as f:
                    data = json.load(f)
                config = CustodyConfig.from_dict(data)
                logging.info(f"Loaded configuration from {self.config_file}")
            except (OSError, ValueError, TypeError) as e:
                logging.warning(f"Failed to load config from {self.config_file}: {e}")
                logging.info("Creating default configuration")
                config = self.create_default_config()
        else:
            config = self.create_default_config()

        self.config = self.apply_environment(config)
        return self.config

    def create_default_config(self) -> CustodyConfig:
        """Create default configuration."""
        return CustodyConfig(
            app=AppConfig(),
            server=ServerConfig(),
            database=DatabaseConfig(),
            ledger=LedgerConfig(),
        )

    def save_config(self, config: Optional[CustodyConfig] = None) -> bool:
        """Save configuration to the configured file."""
        if config is None:
            config = self.config

        if config is None:
            logging.error("No configuration to save")
            return False

        if self.config_file is None:
            self.config_file = self.get_config_file_path()
        if self.config_file is None:
            logging.error("CUSTODY_CONFIG_FILE is not set, cannot save configuration")
            return False

        try:
            self.config_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file, "w", encoding="utf-8") as f:
                json.dump(config.to_dict(), f, indent=2, ensure_ascii=False)

            logging.info(f"Saved configuration to {self.config_file}")
            return True

        except OSError as e:
            logging.error(f"Failed to save config to {self.config_file}: {e}")
            return False

    def validate_config(self) -> List[str]:
        """Validate configuration and return list of warnings/errors."""
        if self.config is None:
            self.load_config()

        issues = []
        ledger = self.config.ledger

        if ledger.default_page_size < 1 or ledger.default_page_size > ledger.max_page_size:
            issues.append(
                f"default_page_size {ledger.default_page_size} must be between 1 and "
                f"max_page_size {ledger.max_page_size}"
            )
        if len(ledger.default_lang_code) > 5:
            issues.append(f"default_lang_code too long: {ledger.default_lang_code}")
        if ledger.statistics_trend_days < 1:
            issues.append("statistics_trend_days must be positive")

        # Check database file is writable
        db_url = self.config.database.url
        if db_url.startswith("sqlite:///") and ":memory:" not in db_url:
            db_dir = Path(db_url.replace("sqlite:///", "")).parent
            if db_dir.exists() and not os.access(db_dir, os.W_OK):
                issues.append(f"Database directory is not writable: {db_dir}")

        return issues


# Global config manager instance
config_manager = ConfigManager()


def get_config() -> CustodyConfig:
    """Get the current configuration, loading it on first use."""
    if config_manager.config is None:
        return config_manager.load_config()
    return config_manager.config


def reload_config() -> CustodyConfig:
    """Discard the cached configuration and load it again."""
    return config_manager.load_config()


def get_database_url() -> str:
    """Get the database URL."""
    return get_config().database.url
