"""User configuration file and preset resolution"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from log_hound.core.config import settings
from log_hound.core.exceptions import ConfigError
from log_hound.core.logging import logger
from log_hound.logs.base import LogSourceType
from log_hound.schemas.kamal import DEFAULT_DEPLOY_FILE


DEFAULT_CONFIG_PATH = Path.home() / ".log-hound.yaml"

SAMPLE_CONFIG = """\
# Log Hound Configuration
# Place this file at ~/.log-hound.yaml

# Default AWS profile (optional)
# default_profile: production

# Default AWS region (optional)
# default_region: ap-northeast-1

# Default log groups when no -g is specified
default_groups: []

# Default time range
default_time_range: 1h

# Default result limit
default_limit: 100

# Presets for quick access
# Use with: log-hound search -p <preset_name> "ERROR"
presets:
  prod:
    description: Production environment
    groups: [app/production, api/production]
    time_range: 1h
    limit: 200

  staging:
    description: Staging environment
    groups: [app/staging, api/staging]
    exclude: [health-check, ping]

  all-regions:
    description: Search across all regions
    groups:
      - us-east-1:app/prod
      - ap-northeast-1:app/prod
      - eu-west-1:app/prod

  kamal-prod:
    description: Kamal production servers
    source: kamal
    deploy_file: config/deploy.production.yml
    exclude: [health-check]
"""


def _string_list(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, str):
        return [value]
    return [str(v) for v in value]


@dataclass
class Preset:
    """A saved search"""
    groups: List[str] = field(default_factory=list)
    patterns: List[str] = field(default_factory=list)
    exclude: List[str] = field(default_factory=list)
    time_range: Optional[str] = None
    limit: Optional[int] = None
    description: Optional[str] = None
    source: Optional[str] = None
    deploy_file: Optional[str] = None

    @property
    def source_type(self) -> LogSourceType:
        if self.source == LogSourceType.KAMAL.value:
            return LogSourceType.KAMAL
        return LogSourceType.CLOUDWATCH

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Preset':
        limit = data.get('limit')
        return cls(
            groups=_string_list(data.get('groups')),
            patterns=_string_list(data.get('patterns')),
            exclude=_string_list(data.get('exclude')),
            time_range=data.get('time_range'),
            limit=int(limit) if limit is not None else None,
            description=data.get('description'),
            source=data.get('source'),
            deploy_file=data.get('deploy_file'),
        )


@dataclass
class Config:
    """Main configuration structure"""
    default_profile: Optional[str] = None
    default_region: Optional[str] = None
    default_groups: List[str] = field(default_factory=list)
    default_time_range: Optional[str] = None
    default_limit: Optional[int] = None
    presets: Dict[str, Preset] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Config':
        """Create config from dictionary"""
        presets = {}
        for name, preset_data in (data.get('presets') or {}).items():
            presets[str(name)] = Preset.from_dict(preset_data or {})

        limit = data.get('default_limit')
        return cls(
            default_profile=data.get('default_profile'),
            default_region=data.get('default_region'),
            default_groups=_string_list(data.get('default_groups')),
            default_time_range=data.get('default_time_range'),
            default_limit=int(limit) if limit is not None else None,
            presets=presets,
        )

    def get_preset(self, name: str) -> Preset:
        """
        Raises:
            ConfigError: If no preset has that name
        """
        if name not in self.presets:
            available = ", ".join(sorted(self.presets)) or "none"
            raise ConfigError(f"Preset '{name}' not found. Available presets: {available}")
        return self.presets[name]


@dataclass
class SearchOptions:
    """Search inputs after presets and defaults have been applied"""
    groups: List[str]
    patterns: List[str]
    exclude: List[str]
    time_range: str
    limit: int
    source: LogSourceType
    deploy_file: str


def resolve_search_options(
    config: Config,
    preset_name: Optional[str] = None,
    groups: Optional[List[str]] = None,
    patterns: Optional[List[str]] = None,
    exclude: Optional[List[str]] = None,
    time_range: Optional[str] = None,
    limit: Optional[int] = None,
    source: Optional[str] = None,
    deploy_file: Optional[str] = None,
) -> SearchOptions:
    """
    Merge command line values with a preset and the config defaults.

    Preset patterns and excludes come before the command line ones, groups
    given on the command line replace the preset's, and explicit command
    line values win over preset values, which win over the defaults.
    """
    groups = list(groups or [])
    patterns = list(patterns or [])
    exclude = list(exclude or [])
    source_type = LogSourceType(source) if source else LogSourceType.CLOUDWATCH

    if preset_name:
        preset = config.get_preset(preset_name)
        patterns = preset.patterns + patterns
        exclude = preset.exclude + exclude
        groups = groups or list(preset.groups)
        time_range = time_range or preset.time_range
        limit = limit or preset.limit
        deploy_file = deploy_file or preset.deploy_file
        if preset.source_type == LogSourceType.KAMAL:
            source_type = LogSourceType.KAMAL
    else:
        groups = groups or list(config.default_groups)

    return SearchOptions(
        groups=groups,
        patterns=patterns,
        exclude=exclude,
        time_range=time_range or config.default_time_range or settings.default_time_range,
        limit=limit or config.default_limit or settings.default_limit,
        source=source_type,
        deploy_file=deploy_file or DEFAULT_DEPLOY_FILE,
    )


class ConfigManager:
    """Manages configuration file operations"""

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = Path(config_path or settings.config_path or DEFAULT_CONFIG_PATH).expanduser()
        self.config_dir = self.config_path.parent

    def exists(self) -> bool:
        return self.config_path.exists()

    def ensure_config_dir(self):
        """Ensure configuration directory exists"""
        self.config_dir.mkdir(parents=True, exist_ok=True)

    def load(self) -> Config:
        """Load configuration from file; a missing or broken file yields the defaults"""
        if not self.config_path.exists():
            return Config()

        try:
            with open(self.config_path, 'r') as f:
                data = yaml.safe_load(f) or {}
            if not isinstance(data, dict):
                raise ValueError("top level must be a mapping")
            return Config.from_dict(data)
        except (OSError, yaml.YAMLError, ValueError, TypeError, AttributeError) as e:
            logger.warning(f"Failed to load config {self.config_path}: {e}")
            return Config()

    def read_text(self) -> Optional[str]:
        if not self.config_path.exists():
            return None
        return self.config_path.read_text()

    def init_sample(self) -> bool:
        """Write the sample config; returns False if a file is already there"""
        if self.config_path.exists():
            return False
        self.ensure_config_dir()
        self.config_path.write_text(SAMPLE_CONFIG)
        return True
