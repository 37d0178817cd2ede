"""Configuration management for eliza-cache."""

import copy
import functools
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any

import structlog

# Zero UUID used when no agent is configured
DEFAULT_AGENT_ID = "00000000-0000-0000-0000-000000000000"

# Default configuration
DEFAULT_CONFIG = {
    "logging": {
        "level": "INFO",
        "verbose": False,
        "debug": False,
    },
    "cache": {
        "backend": "memory",          # memory, fs, database
        "fs_root": None,              # defaults to <home>/cache
        "fs_timeout": None,           # seconds, None disables the deadline
        "sweep_interval_seconds": 0,  # 0 disables the background sweeper
    },
    "database": {
        "path": None,                 # defaults to <home>/data/cache.db
        "url": None,                  # overrides path when set
        "agent_id": DEFAULT_AGENT_ID,
        "operation_timeout": 5.0,
        "max_retries": 3,
        "base_delay": 0.1,
        "max_delay": 5.0,
        "failure_threshold": 5,
        "reset_timeout": 60.0,
        "half_open_max_attempts": 3,
    },
}


def get_home_dir() -> Path:
    """Return the eliza-cache home directory (``$ELIZA_CACHE_HOME`` or ``~/.eliza-cache``)."""
    env_home = os.environ.get("ELIZA_CACHE_HOME")
    if env_home:
        return Path(env_home).expanduser()
    return Path.home() / ".eliza-cache"


class CacheConfig:
    """Configuration manager for eliza-cache."""

    def __init__(self, config_path: Path | None = None):
        """Initialize configuration manager.

        Args:
            config_path: Path to config file. Defaults to <home>/config.json
        """
        if config_path is None:
            config_path = get_home_dir() / "config.json"

        self.config_path = config_path
        self.config = self._load_config()

    @property
    def home_dir(self) -> Path:
        return self.config_path.parent

    def _load_config(self) -> dict[str, Any]:
        """Load configuration from file or create default."""
        if self.config_path.exists():
            try:
                with open(self.config_path) as f:
                    user_config = json.load(f)
                config = copy.deepcopy(DEFAULT_CONFIG)
                self._deep_merge(config, user_config)
                return config
            except (json.JSONDecodeError, OSError) as e:
                print(f"Warning: Invalid config file {self.config_path}, using defaults: {e}", file=sys.stderr)
                return copy.deepcopy(DEFAULT_CONFIG)
        else:
            self._save_config(DEFAULT_CONFIG)
            return copy.deepcopy(DEFAULT_CONFIG)

    def _deep_merge(self, target: dict[str, Any], source: dict[str, Any]) -> None:
        """Deep merge source into target dictionary."""
        for key, value in source.items():
            if key in target and isinstance(target[key], dict) and isinstance(value, dict):
                self._deep_merge(target[key], value)
            else:
                target[key] = value

    def _save_config(self, config: dict[str, Any]) -> None:
        """Save configuration to file."""
        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_path, "w") as f:
                json.dump(config, f, indent=2)
        except OSError as e:
            print(f"Warning: Could not save config to {self.config_path}: {e}", file=sys.stderr)

    def configure_logging(self) -> None:
        """Configure structlog from the ``logging`` section.

        Only the CLI calls this; embedding applications keep their own setup.
        """
        log_level = self.config["logging"]["level"]
        verbose = self.config["logging"]["verbose"]
        debug = self.config["logging"]["debug"]

        if debug:
            level = logging.DEBUG
        elif verbose:
            level = logging.INFO
        else:
            level = getattr(logging, str(log_level).upper(), logging.INFO)

        # Console output only when a human asked for it; JSON lines otherwise
        renderer = structlog.dev.ConsoleRenderer() if debug or verbose else structlog.processors.JSONRenderer()

        structlog.configure(
            processors=[
                structlog.processors.add_log_level,
                structlog.processors.TimeStamper(fmt="iso"),
                renderer,
            ],
            wrapper_class=structlog.make_filtering_bound_logger(level),
            logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
            cache_logger_on_first_use=False,  # factory holds the stream current at configure time
        )

    def update_config(self, **kwargs) -> None:
        """Update configuration and save to file.

        Args:
            **kwargs: Configuration updates (e.g., **{"cache.backend": "fs"})
        """
        for key, value in kwargs.items():
            if '.' in key:
                keys = key.split('.')
                current = self.config
                for k in keys[:-1]:
                    if k not in current:
                        current[k] = {}
                    current = current[k]
                current[keys[-1]] = value
            else:
                self.config[key] = value

        self._save_config(self.config)

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value using dot notation.

        Args:
            key: Configuration key (e.g., "cache.backend")
            default: Default value if key not found

        Returns:
            Configuration value
        """
        keys = key.split('.')
        current = self.config

        for k in keys:
            if isinstance(current, dict) and k in current:
                current = current[k]
            else:
                return default

        return current

    def fs_root(self) -> Path:
        """Filesystem cache root, falling back to <home>/cache."""
        root = self.get("cache.fs_root")
        return Path(root).expanduser() if root else self.home_dir / "cache"

    def database_url(self) -> str:
        """SQLAlchemy URL for the database-backed store."""
        url = self.get("database.url")
        if url:
            return url
        path = self.get("database.path")
        db_path = Path(path).expanduser() if path else self.home_dir / "data" / "cache.db"
        return f"sqlite+aiosqlite:///{db_path}"


@functools.lru_cache(maxsize=None)
def get_config() -> CacheConfig:
    """Process-wide configuration, loaded on first use."""
    return CacheConfig()
