"""
Centralized logging configuration for Custody Tracker.
Provides component-specific loggers with separate log files.
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional, Dict, Any
from datetime import datetime

from ..config import get_config


DETAILED_FORMAT = (
    "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - "
    "%(funcName)s() - %(message)s"
)


class ComponentLogger:
    """Manages component-specific logging with separate files."""

    _loggers: Dict[str, logging.Logger] = {}
    _initialized = False
    _log_dir: Optional[Path] = None
    _unified_handler: Optional[logging.Handler] = None

    # Component definitions with their log levels
    COMPONENTS = {
        "api": {"level": logging.INFO, "file": "api.log"},
        "database": {"level": logging.INFO, "file": "database.log"},
        "ledger": {"level": logging.INFO, "file": "ledger.log"},
        "validation": {"level": logging.INFO, "file": "validation.log"},
        "statistics": {"level": logging.INFO, "file": "statistics.log"},
        "main": {"level": logging.INFO, "file": "main.log"},
        "error": {"level": logging.ERROR, "file": "errors.log"},  # Centralized error log
    }

    @classmethod
    def initialize(cls, log_dir: Optional[str] = None, debug: bool = False) -> None:
        """
        Initialize the logging system with component-specific loggers.

        When file logging is disabled in the configuration only the console
        handlers are attached.

        Args:
            log_dir: Directory for log files. Defaults to config.app.log_dir
            debug: Enable debug logging for all components
        """
        if cls._initialized:
            return

        config = get_config()
        debug = debug or config.server.debug
        to_file = config.app.log_to_file

        detailed_formatter = logging.Formatter(DETAILED_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
        simple_formatter = logging.Formatter(
            "%(asctime)s - %(levelname)s - %(message)s", datefmt="%H:%M:%S"
        )

        session_dir = datetime.now().strftime("%Y%m%d_%H%M%S")
        if to_file:
            base_dir = Path(log_dir) if log_dir else Path(config.app.log_dir)
            cls._log_dir = base_dir / session_dir
            cls._log_dir.mkdir(parents=True, exist_ok=True)

            session_info_file = cls._log_dir / "session_info.txt"
            with open(session_info_file, "w", encoding="utf-8") as f:
                f.write(f"Session started: {datetime.now().isoformat()}\n")
                f.write(f"Debug mode: {debug}\n")
                f.write("Config:\n")
                f.write(f"  Database: {config.database.url}\n")
                f.write(f"  Default language: {config.ledger.default_lang_code}\n")
                f.write(f"  Development mode: {config.app.is_development}\n")
                f.write(f"  Log directory: {cls._log_dir}\n")

            cls._unified_handler = logging.handlers.RotatingFileHandler(
                cls._log_dir / "unified.log",
                maxBytes=20 * 1024 * 1024,  # 20MB
                backupCount=3,
                encoding="utf-8",
            )
            cls._unified_handler.setLevel(logging.DEBUG if debug else logging.INFO)
            cls._unified_handler.setFormatter(detailed_formatter)

        for component_name, component_config in cls.COMPONENTS.items():
            logger = logging.getLogger(f"custody.{component_name}")

            logger.handlers.clear()
            logger.propagate = False

            level = logging.DEBUG if debug else component_config["level"]
            logger.setLevel(level)

            if to_file:
                file_handler = logging.handlers.RotatingFileHandler(
                    cls._log_dir / component_config["file"],
                    maxBytes=10 * 1024 * 1024,  # 10MB
                    backupCount=5,
                    encoding="utf-8",
                )
                file_handler.setLevel(level)
                file_handler.setFormatter(detailed_formatter)
                logger.addHandler(file_handler)
                logger.addHandler(cls._unified_handler)

            # Console handler for errors and critical
            if component_name in ("error", "main"):
                console_handler = logging.StreamHandler(sys.stderr)
                console_handler.setLevel(logging.ERROR)
                console_handler.setFormatter(simple_formatter)
                logger.addHandler(console_handler)

            if not logger.handlers:
                logger.addHandler(logging.NullHandler())

            cls._loggers[component_name] = logger

        # Mark as initialized before logging to avoid recursion
        cls._initialized = True

        main_logger = cls._loggers["main"]
        main_logger.info("=" * 80)
        main_logger.info("Custody Tracker Logging System Initialized")
        main_logger.info(f"Session: {session_dir}")
        main_logger.info(f"Log directory: {cls._log_dir}")
        main_logger.info(f"Debug mode: {debug}")
        main_logger.info("=" * 80)

    @classmethod
    def get_logger(cls, component: str) -> logging.Logger:
        """
        Get a logger for a specific component.

        Unknown components fall back to the main logger.
        """
        if not cls._initialized:
            cls.initialize()
        return cls._loggers.get(component, cls._loggers["main"])

    @classmethod
    def log_exception(
        cls, component: str, exc: Exception, context: Optional[Dict[str, Any]] = None
    ) -> None:
        """
        Log an exception with context to both component and error logs.

        Args:
            component: Component where the exception occurred
            exc: The exception to log
            context: Additional context information
        """
        component_logger = cls.get_logger(component)
        error_logger = cls.get_logger("error")

        context_str = ""
        if context:
            context_str = " | Context: " + ", ".join(f"{k}={v}" for k, v in context.items())

        component_logger.error(
            f"Exception in {component}: {type(exc).__name__}: {exc}{context_str}", exc_info=exc
        )
        error_logger.error(f"[{component}] {type(exc).__name__}: {exc}{context_str}", exc_info=exc)

    @classmethod
    def get_log_directory(cls) -> Optional[Path]:
        """Get the current log directory path."""
        return cls._log_dir

    @classmethod
    def reset(cls) -> None:
        """Close all handlers and forget the loggers so the next call re-initializes."""
        for logger in cls._loggers.values():
            for handler in list(logger.handlers):
                logger.removeHandler(handler)
                handler.close()
        cls._loggers = {}
        cls._unified_handler = None
        cls._log_dir = None
        cls._initialized = False


# Convenience functions
def get_logger(component: str) -> logging.Logger:
    """Get a logger for a specific component."""
    return ComponentLogger.get_logger(component)


def initialize_logging(log_dir: Optional[str] = None, debug: bool = False) -> None:
    """Initialize the logging system."""
    ComponentLogger.initialize(log_dir=log_dir, debug=debug)


def log_exception(component: str, exc: Exception, context: Optional[Dict[str, Any]] = None) -> None:
    """Log an exception with context."""
    ComponentLogger.log_exception(component, exc, context)


def get_log_directory() -> Optional[Path]:
    """Get the current log directory path."""
    return ComponentLogger.get_log_directory()
