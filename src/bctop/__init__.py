"""
bctop - an interactive terminal dashboard for Docker containers.

Watch every container on the local engine with live CPU/RAM usage, tail and
search its logs, stop or pause it, inspect it, or open an interactive shell
inside it, all from one keyboard-driven screen.

Main Components:
  - state.py: Application (mode state machine, shared state, input dispatch)
  - reconcile.py: polling loop that keeps the container list in sync
  - logs.py: scroll-back buffer and incremental log tailing
  - exec_session.py: interactive shell piped through the log buffer
  - supervisor.py: the single background task of the current mode
  - backend.py: Docker API wrapper
  - textual_app.py / ui.py: Textual front-end

Usage:
  python -m bctop

Dependencies:
  - docker>=7.0.0
  - textual
  - PyYAML
  - Python 3.10+
"""

import os
from pathlib import Path

__version__ = "0.2.0"


def get_log_path() -> str:
    """
    Get the log file path following XDG Base Directory spec.

    Returns XDG_DATA_HOME/bctop/logs/bctop.log with fallback to /tmp.
    Creates directory if it doesn't exist.

    Returns:
        str: Absolute path to log file (/tmp/bctop.log as fallback)
    """
    xdg_data_home = os.environ.get('XDG_DATA_HOME')
    if not xdg_data_home:
        xdg_data_home = Path.home() / '.local' / 'share'
    else:
        xdg_data_home = Path(xdg_data_home)

    log_dir = xdg_data_home / 'bctop' / 'logs'

    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        return str(log_dir / 'bctop.log')
    except (PermissionError, OSError):
        return '/tmp/bctop.log'
