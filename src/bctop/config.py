"""
Configuration management for bctop.

This module provides configuration file support with YAML format,
user preferences, and default settings.

Features:
- YAML configuration file at ~/.config/bctop/config.yaml
  (directory overridable with BCTOP_CONFIG_DIR)
- Default values with user overrides
- Keybinding customization per action
- Engine polling intervals, exec shell, Docker host
- Log location, level and rotation

Architecture:
- ConfigManager: Main configuration interface
- Merges user config with defaults
- Provides typed access to settings
- Handles missing/invalid config gracefully
"""

import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .actions import Action

logger = logging.getLogger(__name__)


@dataclass
class UIConfig:
    """UI-related configuration."""
    refresh_interval: int = 200  # milliseconds
    show_help: bool = True


@dataclass
class EngineConfig:
    """Docker engine and background task configuration."""
    docker_host: Optional[str] = None  # None for DOCKER_HOST / local socket
    timeout: Optional[int] = None
    poll_interval: float = 1.0
    log_poll_interval: float = 1.0
    log_backlog_seconds: Optional[float] = None  # None for the whole history
    max_concurrent_refreshes: int = 16
    exec_shell: str = "/bin/sh"
    stop_timeout: int = 10


@dataclass
class LogConfig:
    """Logging configuration."""
    level: str = "INFO"
    file_path: Optional[str] = None  # None for default
    max_size_mb: int = 10
    backup_count: int = 5


@dataclass
class AppConfig:
    """Main application configuration."""
    keybindings: Dict[str, List[str]] = field(default_factory=dict)
    ui: UIConfig = field(default_factory=UIConfig)
    engine: EngineConfig = field(default_factory=EngineConfig)
    logging: LogConfig = field(default_factory=LogConfig)


def default_config_dir() -> Path:
    override = os.environ.get("BCTOP_CONFIG_DIR")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".config" / "bctop"


class ConfigManager:
    """Configuration manager with YAML file support."""

    def __init__(self, config_dir: Optional[Path] = None):
        self.config_dir = Path(config_dir) if config_dir else default_config_dir()
        self.config_file = self.config_dir / "config.yaml"
        self._config: AppConfig = AppConfig()

        try:
            self.config_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning(f"Cannot create config directory {self.config_dir}: {e}")

        self.load_config()

    def load_config(self) -> None:
        """Load configuration from YAML file."""
        try:
            if self.config_file.exists():
                with open(self.config_file, 'r') as f:
                    user_config = yaml.safe_load(f) or {}
                if not isinstance(user_config, dict):
                    raise ValueError("top level of the config file must be a mapping")

                self._config = self._merge_configs(AppConfig(), user_config)
                logger.debug(f"Loaded configuration from {self.config_file}")
            else:
                self.save_config()
                logger.info(f"Created default configuration at {self.config_file}")
        except (OSError, yaml.YAMLError, ValueError, TypeError) as e:
            logger.error(f"Failed to load config: {e}, using defaults")
            self._config = AppConfig()

    def save_config(self) -> None:
        """Save current configuration to YAML file."""
        try:
            with open(self.config_file, 'w') as f:
                yaml.dump(self._config_to_dict(self._config), f, default_flow_style=False, indent=2)
            logger.debug(f"Saved configuration to {self.config_file}")
        except OSError as e:
            logger.error(f"Failed to save config: {e}")

    def get_config(self) -> AppConfig:
        """Get current configuration."""
        return self._config

    def _merge_configs(self, default: AppConfig, user: Dict[str, Any]) -> AppConfig:
        """Merge user config with defaults."""
        if 'keybindings' in user:
            bindings = user['keybindings'] or {}
            if not isinstance(bindings, dict):
                raise ValueError("keybindings must be a mapping of action to keys")
            default.keybindings = {
                str(name): [keys] if isinstance(keys, str) else [str(k) for k in keys]
                for name, keys in bindings.items()
                if keys
            }
        if 'ui' in user:
            self._merge_dataclass(default.ui, user['ui'])
        if 'engine' in user:
            self._merge_dataclass(default.engine, user['engine'])
        if 'logging' in user:
            self._merge_dataclass(default.logging, user['logging'])

        return default

    def _merge_dataclass(self, obj: Any, updates: Optional[Dict[str, Any]]) -> None:
        """Merge updates into dataclass object."""
        for key, value in (updates or {}).items():
            if hasattr(obj, key):
                setattr(obj, key, value)
            else:
                logger.warning(f"Unknown config key ignored: {key}")

    def _config_to_dict(self, config: AppConfig) -> Dict[str, Any]:
        """Convert config dataclass to dictionary."""
        return asdict(config)

    def get_bindings(self) -> Dict[Action, Tuple[str, ...]]:
        """Key overrides per action, as configured."""
        bindings: Dict[Action, Tuple[str, ...]] = {}
        for name, keys in self._config.keybindings.items():
            action = Action.from_config_name(name)
            if action is None:
                logger.warning(f"Unknown action in keybindings: {name}")
                continue
            bindings[action] = tuple(keys)
        return bindings

    def get_log_level(self) -> str:
        """Get configured log level."""
        return str(self._config.logging.level).upper()

    def get_custom_log_path(self) -> Optional[str]:
        """Get custom log file path if configured."""
        return self._config.logging.file_path

    def get_refresh_interval(self) -> int:
        """Get UI refresh interval in milliseconds."""
        return self._config.ui.refresh_interval


_config_manager: Optional[ConfigManager] = None


def get_config_manager() -> ConfigManager:
    """Process-wide configuration, loaded on first use."""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager
