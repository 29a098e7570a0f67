"""
Configuration management and loading.

Handles tracker settings and the default transcript locations.
"""

import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import yaml

from ai_carbon_tracker.core.emissions import DEFAULT_EMISSION_FACTOR
from ai_carbon_tracker.storage.db import DEFAULT_DB_PATH

DEFAULT_CONFIG_PATH = str(Path.home() / ".ai-carbon-tracker" / "config.yaml")
DEFAULT_POLL_INTERVAL = 5.0
DEFAULT_REFRESH_INTERVAL = 5.0


def default_source_dirs(platform: str = sys.platform, home: Optional[Path] = None) -> Tuple[str, ...]:
    """Candidate Claude transcript directories for a platform.

    Args:
        platform: Value in the style of sys.platform
        home: Home directory, defaults to the current user's

    Returns:
        Directories in lookup order; they need not exist
    """
    home = home or Path.home()
    claude_projects = str(home / ".claude" / "projects")
    config_projects = str(home / ".config" / "claude" / "projects")

    if platform == "win32":
        return (claude_projects,)
    if platform == "darwin":
        return (claude_projects, config_projects)
    return (config_projects, claude_projects)


@dataclass(frozen=True)
class TrackerConfig:
    """Complete tracker configuration."""
    emission_factor: float = DEFAULT_EMISSION_FACTOR
    show_in_status_bar: bool = True
    source_dirs: Tuple[str, ...] = field(default_factory=default_source_dirs)
    poll_interval: float = DEFAULT_POLL_INTERVAL
    refresh_interval: float = DEFAULT_REFRESH_INTERVAL
    db_path: str = DEFAULT_DB_PATH

    def __post_init__(self):
        """Validate numeric settings."""
        if self.emission_factor < 0:
            raise ValueError("emission_factor must be >= 0")
        if self.poll_interval <= 0:
            raise ValueError("poll_interval must be > 0")
        if self.refresh_interval <= 0:
            raise ValueError("refresh_interval must be > 0")


def load_tracker_config(path: str) -> TrackerConfig:
    """Load and validate tracker configuration from YAML file.

    Unknown keys are rejected so a typo never silently falls back to a
    default. Omitted keys take their defaults.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated TrackerConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(path).expanduser()
    if not config_path.exists():
        raise FileNotFoundError(f"Tracker config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if raw_config is None:
        return TrackerConfig()

    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a mapping")

    allowed_keys = {
        'emission_factor', 'show_in_status_bar', 'source_dirs',
        'poll_interval', 'refresh_interval', 'db_path'
    }
    unknown_keys = set(raw_config.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    values: Dict = {}

    if 'emission_factor' in raw_config:
        values['emission_factor'] = _parse_number(raw_config['emission_factor'], 'emission_factor')

    if 'show_in_status_bar' in raw_config:
        show = raw_config['show_in_status_bar']
        if not isinstance(show, bool):
            raise ValueError("'show_in_status_bar' must be true or false")
        values['show_in_status_bar'] = show

    if 'source_dirs' in raw_config:
        values['source_dirs'] = _parse_source_dirs(raw_config['source_dirs'])

    for key in ('poll_interval', 'refresh_interval'):
        if key in raw_config:
            values[key] = _parse_number(raw_config[key], key)

    if 'db_path' in raw_config:
        db_path = raw_config['db_path']
        if not isinstance(db_path, str) or not db_path.strip():
            raise ValueError("'db_path' must be a non-empty string")
        values['db_path'] = db_path

    return TrackerConfig(**values)


def load_config_or_defaults(path: Optional[str] = None) -> TrackerConfig:
    """Load an explicit config file, or the default one if present.

    Args:
        path: Explicit config path; a missing explicit file is an error

    Returns:
        TrackerConfig from file, or defaults when no default file exists
    """
    if path is not None:
        return load_tracker_config(path)
    if Path(DEFAULT_CONFIG_PATH).exists():
        return load_tracker_config(DEFAULT_CONFIG_PATH)
    return TrackerConfig()


def _parse_number(value, key: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"'{key}' must be a number")
    return float(value)


def _parse_source_dirs(value) -> Tuple[str, ...]:
    if not isinstance(value, list):
        raise ValueError("'source_dirs' must be a list of paths")

    dirs: List[str] = []
    for entry in value:
        if not isinstance(entry, str) or not entry.strip():
            raise ValueError("'source_dirs' entries must be non-empty strings")
        dirs.append(entry)
    return tuple(dirs)
