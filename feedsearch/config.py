"""
Configuration management for feedsearch.

Provides a hierarchical configuration system with sensible defaults.
Supports both global (~/.config/feedsearch/config.toml) and local
(feedsearch.toml) configurations.
"""
import os
import tomli
import tomli_w
from pathlib import Path
from typing import Dict, Any, Optional
from dataclasses import dataclass, field, asdict

from feedsearch.constants import (
    DEFAULT_LIMIT,
    DEFAULT_MAX_QUERY_COMPLEXITY,
    DEFAULT_MIN_PREFIX_LENGTH,
    DEFAULT_SORT,
    DEFAULT_TEXT_SEARCH_CONFIG,
)


@dataclass
class SearchConfig:
    """
    Search configuration with sensible defaults.

    Configuration hierarchy (highest to lowest priority):
    1. Command-line arguments
    2. Environment variables (FEEDSEARCH_*)
    3. Local config file (./feedsearch.toml or ./.feedsearchrc)
    4. User config file (~/.config/feedsearch/config.toml)
    5. System defaults
    """

    # Database settings
    database_url: str = field(default="postgresql+psycopg2://localhost/freefeed")
    database_echo: bool = field(default=False)  # SQLAlchemy echo for debugging
    connection_pool_size: int = field(default=5)
    connection_timeout: int = field(default=30)

    # Query language
    min_prefix_length: int = field(default=DEFAULT_MIN_PREFIX_LENGTH)
    max_query_complexity: int = field(default=DEFAULT_MAX_QUERY_COMPLEXITY)
    text_search_config: str = field(default=DEFAULT_TEXT_SEARCH_CONFIG)

    # Results
    default_limit: int = field(default=DEFAULT_LIMIT)
    default_sort: str = field(default=DEFAULT_SORT)

    # Display settings
    output_format: str = field(default="table")  # table, json, plain

    # Advanced
    log_level: str = field(default="WARNING")

    @classmethod
    def load(cls, config_file: Optional[Path] = None) -> "SearchConfig":
        """
        Load configuration from files and environment.

        Args:
            config_file: Specific config file to load (overrides search)

        Returns:
            Merged configuration object
        """
        config = cls()

        # Load user config if exists
        user_config_path = Path.home() / ".config" / "feedsearch" / "config.toml"
        if user_config_path.exists():
            config._merge(cls._load_toml(user_config_path))

        # Load local config if exists (check multiple locations)
        local_paths = [
            Path.cwd() / "feedsearch.toml",
            Path.cwd() / ".feedsearchrc",
        ]

        for path in local_paths:
            if path.exists():
                config._merge(cls._load_toml(path))
                break

        # Load specific config file if provided
        if config_file and config_file.exists():
            config._merge(cls._load_toml(config_file))

        # Apply environment variables (FEEDSEARCH_* prefix)
        config._apply_env_vars()

        return config

    @staticmethod
    def _load_toml(path: Path) -> Dict[str, Any]:
        """Load TOML configuration file."""
        with open(path, "rb") as f:
            return tomli.load(f)

    def _merge(self, data: Dict[str, Any]):
        """Merge configuration data into this instance."""
        for key, value in data.items():
            if hasattr(self, key):
                setattr(self, key, value)

    def _apply_env_vars(self):
        """Apply environment variables with FEEDSEARCH_ prefix."""
        prefix = "FEEDSEARCH_"
        for key, value in os.environ.items():
            if key.startswith(prefix):
                config_key = key[len(prefix):].lower()
                if hasattr(self, config_key):
                    # Convert string values to appropriate types
                    current_value = getattr(self, config_key)
                    if isinstance(current_value, bool):
                        setattr(self, config_key, value.lower() in ("true", "1", "yes"))
                    elif isinstance(current_value, int):
                        setattr(self, config_key, int(value))
                    else:
                        setattr(self, config_key, value)

    def save(self, path: Optional[Path] = None):
        """
        Save current configuration to TOML file.

        Args:
            path: Path to save to (defaults to user config)
        """
        if path is None:
            path = Path.home() / ".config" / "feedsearch" / "config.toml"

        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "wb") as f:
            tomli_w.dump(asdict(self), f)


# Global configuration instance
_config: Optional[SearchConfig] = None


def get_config(reload: bool = False, config_file: Optional[Path] = None) -> SearchConfig:
    """
    Get the global configuration instance.

    Args:
        reload: Force reload configuration from files
        config_file: Specific config file to load

    Returns:
        Global configuration instance
    """
    global _config
    if _config is None or reload:
        _config = SearchConfig.load(config_file)
    return _config


def init_config(database_url: Optional[str] = None, config_file: Optional[Path] = None, **kwargs) -> SearchConfig:
    """
    Initialize configuration with command-line overrides.

    Args:
        database_url: Database URL override
        config_file: Specific config file to load
        **kwargs: Other configuration overrides

    Returns:
        Configured instance
    """
    config = get_config(reload=config_file is not None, config_file=config_file)

    if database_url:
        config.database_url = database_url

    for key, value in kwargs.items():
        if hasattr(config, key) and value is not None:
            setattr(config, key, value)

    return config
