"""
Startup and shutdown orchestration for bctop.

This module wires the pieces together in order:
  1. Load configuration (config.py, YAML)
  2. Install file logging (nothing is written to the terminal while the TUI runs)
  3. Validate keybindings: a key bound to two actions of one mode is fatal
  4. Connect to the Docker engine (backend.py)
  5. Build the Application and hand it to the Textual front-end

Key Functions:
  - setup_logging(): rotating log file at the configured or XDG path
  - build_application(): configuration -> backend -> Application
  - run(): console entry point (`bctop`, `python -m bctop`)

Exit Codes:
  - 0: normal quit
  - 1: invalid keybindings (conflicting keys)
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional

from . import __version__, get_log_path
from .actions import KeyConflictError, validate_bindings
from .backend import DockerBackend
from .config import ConfigManager, get_config_manager
from .state import Application
from .textual_app import BctopApp

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(name)s - %(message)s'

logger = logging.getLogger(__name__)


def setup_logging(config_manager: Optional[ConfigManager] = None) -> str:
    """Route all logging to a size-rotated file; returns the file path."""
    config_manager = config_manager or get_config_manager()
    log_config = config_manager.get_config().logging
    log_path = config_manager.get_custom_log_path() or get_log_path()

    handler = RotatingFileHandler(
        log_path,
        maxBytes=max(1, int(log_config.max_size_mb)) * 1024 * 1024,
        backupCount=max(0, int(log_config.backup_count)),
    )
    level = getattr(logging, config_manager.get_log_level(), None)
    logging.basicConfig(
        handlers=[handler],
        level=level if isinstance(level, int) else logging.INFO,
        format=LOG_FORMAT,
        force=True,
    )
    return log_path


def build_application(config_manager: ConfigManager) -> Application:
    bindings = config_manager.get_bindings()
    validate_bindings(bindings)

    engine = config_manager.get_config().engine
    backend = DockerBackend(
        base_url=engine.docker_host,
        timeout=engine.timeout,
        stop_timeout=engine.stop_timeout,
    )
    if not backend.connected:
        logger.warning("Starting without a Docker connection")
    return Application(backend, engine, bindings)


def run() -> None:
    config_manager = get_config_manager()
    log_path = setup_logging(config_manager)
    logger.info(f"bctop {__version__} starting, logging to {log_path}")

    try:
        application = build_application(config_manager)
    except KeyConflictError as e:
        logger.critical(f"Invalid keybindings: {e}")
        print(f"bctop: invalid keybindings: {e}", file=sys.stderr)
        sys.exit(1)

    app = BctopApp(
        application,
        config_manager.get_refresh_interval(),
        config_manager.get_config().ui.show_help,
    )
    try:
        app.run()
    except KeyboardInterrupt:
        logger.info("KeyboardInterrupt caught, exiting...")
    logger.info("bctop stopped")


if __name__ == "__main__":
    run()
