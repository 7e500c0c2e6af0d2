"""Configuration management for slaplist."""

import os
import sys
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, Optional

try:
    import yaml
except ImportError:
    print("Error: PyYAML not installed", file=sys.stderr)
    print("Install with: pip install pyyaml", file=sys.stderr)
    sys.exit(1)

from .models import DEFAULT_DAILY_LIMITS, CollectionSource

CONFIG_ENV_VAR = "SLAPLIST_CONFIG"
API_KEY_ENV_VAR = "SLAPLIST_YOUTUBE_API_KEY"
USER_CONFIG_PATH = Path.home() / ".config" / "slaplist" / "config.yaml"

SEED_MODES = ("query", "track_id")


@dataclass
class RecommendationSettings:
    """Tuning knobs consumed by discovery, sync and quota accounting."""

    search_cache_max_age: timedelta = timedelta(hours=24)
    collection_sync_max_age: timedelta = timedelta(days=7)
    quota_limits: Dict[CollectionSource, int] = field(
        default_factory=lambda: dict(DEFAULT_DAILY_LIMITS)
    )
    search_unit_cost: int = 100
    fetch_unit_cost: int = 5

    @classmethod
    def from_config(cls, config: "Config") -> "RecommendationSettings":
        """Build settings from the loaded YAML configuration."""
        limits = dict(DEFAULT_DAILY_LIMITS)
        for name, limit in (config.get("quota.limits") or {}).items():
            limits[CollectionSource(name)] = int(limit)

        return cls(
            search_cache_max_age=timedelta(
                hours=config.get("recommendations.search_cache_hours", 24)
            ),
            collection_sync_max_age=timedelta(
                days=config.get("recommendations.collection_sync_days", 7)
            ),
            quota_limits=limits,
            search_unit_cost=config.get("quota.search_unit_cost", 100),
            fetch_unit_cost=config.get("quota.fetch_unit_cost", 5),
        )


class Config:
    """Slaplist configuration."""

    _instance = None

    def __new__(cls, config_path: Optional[Path] = None):
        """Singleton pattern for config."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    @classmethod
    def reset(cls):
        """Reset singleton for testing."""
        cls._instance = None

    def __init__(self, config_path: Optional[Path] = None):
        """Load configuration from YAML file.

        Args:
            config_path: Explicit config file, otherwise $SLAPLIST_CONFIG,
                ~/.config/slaplist/config.yaml or config.yaml next to the package
        """
        if self._initialized:
            return

        self.config_path = Path(config_path) if config_path else self._find_config()
        self.config = self._load_config()
        self._initialized = True

    @staticmethod
    def _find_config() -> Path:
        """Pick the first existing config location."""
        env_path = os.environ.get(CONFIG_ENV_VAR)
        if env_path:
            return Path(env_path).expanduser()
        if USER_CONFIG_PATH.exists():
            return USER_CONFIG_PATH
        return Path(__file__).parent.parent / "config.yaml"

    def _load_config(self) -> dict:
        """Load and parse config file."""
        if not self.config_path.exists():
            print(f"Error: Configuration file not found: {self.config_path}", file=sys.stderr)
            print("Run 'slaplist init' or copy config.example.yaml to config.yaml", file=sys.stderr)
            sys.exit(1)

        with open(self.config_path) as f:
            config = yaml.safe_load(f) or {}

        # Expand home directory in paths
        self._expand_paths(config)
        return config

    def _expand_paths(self, config: dict):
        """Expand ~ in path values."""
        for key, value in config.items():
            if isinstance(value, str) and value.startswith("~"):
                config[key] = os.path.expanduser(value)
            elif isinstance(value, dict):
                self._expand_paths(value)

    def get(self, key: str, default: Any = None) -> Any:
        """Get config value by dot-separated key."""
        keys = key.split(".")
        value = self.config

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    @property
    def database_path(self) -> Path:
        """Get SQLite catalog path."""
        path = self.get("database")
        if path:
            return Path(path)
        return self.config_path.parent / "slaplist.sqlite3"

    @property
    def youtube_api_key(self) -> Optional[str]:
        """Get YouTube Data API key (environment wins over config)."""
        key = os.environ.get(API_KEY_ENV_VAR) or self.get("youtube.api_key", "")
        return key if key else None

    @property
    def youtube_application_name(self) -> str:
        """Get application name sent to the YouTube API."""
        return self.get("youtube.application_name", "slaplist")

    @property
    def collections_per_track(self) -> int:
        """Get default number of collections explored per seed."""
        return self.get("recommendations.collections_per_track", 5)

    @property
    def results_to_return(self) -> int:
        """Get default number of recommendations returned."""
        return self.get("recommendations.results_to_return", 50)

    @property
    def seed_mode(self) -> str:
        """Get how seeds are interpreted: free-text queries or video ids."""
        mode = self.get("recommendations.seed_mode", "query")
        if mode not in SEED_MODES:
            raise ValueError(f"Invalid seed_mode {mode!r}, expected one of {SEED_MODES}")
        return mode

    @property
    def diversify(self) -> bool:
        """Get whether searches exclude already processed playlist titles."""
        return bool(self.get("recommendations.diversify", False))

    def recommendation_settings(self) -> RecommendationSettings:
        """Get settings for the recommendation pipeline."""
        return RecommendationSettings.from_config(self)
