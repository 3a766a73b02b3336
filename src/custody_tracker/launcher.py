"""
Command line launcher for the Custody Tracker API server.

Reads host and port from the configuration, falls back to the next free port
when the configured one is taken, optionally migrates the database, and runs
uvicorn in the foreground.
"""

import argparse
import socket
import sys
from pathlib import Path
from typing import List, Optional

import uvicorn

from .config import get_config
from .utils.logging_config import get_logger, initialize_logging


class PortManager:
    """Manages port detection and allocation."""

    @staticmethod
    def find_free_port(host: str, start_port: int = 8000, max_attempts: int = 10) -> Optional[int]:
        """Find a free port starting from start_port."""
        for port in range(start_port, start_port + max_attempts):
            if PortManager.is_port_free(host, port):
                return port
        return None

    @staticmethod
    def is_port_free(host: str, port: int) -> bool:
        """Check if a port is available."""
        try:
            with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
                sock.bind((host, port))
                return True
        except OSError:
            return False


def run_migrations(database_url: str) -> None:
    """Upgrade the database schema to the latest Alembic revision."""
    from alembic import command
    from alembic.config import Config

    project_root = Path(__file__).resolve().parents[2]
    alembic_cfg = Config(str(project_root / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(project_root / "alembic"))
    alembic_cfg.set_main_option("sqlalchemy.url", database_url)
    command.upgrade(alembic_cfg, "head")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="custody-tracker", description="Run the Custody Tracker API server"
    )
    parser.add_argument("--host", help="Interface to bind (default from config)")
    parser.add_argument("--port", type=int, help="Port to bind (default from config)")
    parser.add_argument("--reload", action="store_true", help="Reload on code changes")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--migrate", action="store_true", help="Apply database migrations before starting"
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the launcher."""
    args = build_parser().parse_args(argv)
    config = get_config()

    initialize_logging(debug=args.debug or config.server.debug)
    logger = get_logger("main")

    host = args.host or config.server.host
    requested_port = args.port or config.server.port
    port = PortManager.find_free_port(host, requested_port)
    if port is None:
        logger.error(f"No available ports found in range {requested_port}-{requested_port + 9}")
        print(f"[ERROR] No free port near {requested_port}", file=sys.stderr)
        return 1
    if port != requested_port:
        logger.warning(f"Port {requested_port} is in use, using {port} instead")

    if args.migrate:
        logger.info(f"Applying migrations to {config.database.url}")
        run_migrations(config.database.url)

    logger.info(f"Starting {config.app.app_name} on http://{host}:{port}")
    print(f"{config.app.app_name} running at http://{host}:{port} (docs: /docs)")

    uvicorn.run(
        "custody_tracker.main:app",
        host=host,
        port=port,
        reload=args.reload or config.server.auto_reload,
        log_level="debug" if args.debug else "info",
        access_log=False,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
