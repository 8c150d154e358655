"""
Configuration File Loader
==========================

Load configuration from external YAML or JSON files.

Benefits:
- No code changes for config updates
- A default file is written on first start
- User-customizable settings
"""

# ============================================================================
# MODULE OVERVIEW
# ============================================================================
# Purpose:
#   config_loader.py
#
# Connected modules (direct imports):
#   dependency_injection, error_handling
#
# Notes:
#   - Search order: explicit path, ./config.yaml, ~/.ed_mfd_display/config.yaml
#   - Unknown keys are ignored; missing keys take the dataclass defaults.
# ============================================================================

import json
import logging
from dataclasses import asdict, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from dependency_injection import (
    PAGE_IDS,
    USER_CONFIG_DIR,
    AppConfig,
    DisplayConfig,
    EdsmConfig,
    LoggingConfig,
    MonitoringConfig,
    PathConfig,
)
from error_handling import ConfigurationError

logger = logging.getLogger("edmfd.config")

CONFIG_FILE_NAME = "config.yaml"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


# ============================================================================
# CLASSES
# ============================================================================

class ConfigLoader:
    """Load and validate configuration from files"""

    SUPPORTED_FORMATS = {'.yaml', '.yml', '.json'}

    @classmethod
    def default_search_paths(cls) -> List[Path]:
        return [Path.cwd() / CONFIG_FILE_NAME, USER_CONFIG_DIR / CONFIG_FILE_NAME]

    @classmethod
    def resolve_path(cls, explicit: Optional[Path] = None) -> Path:
        """
        Config file to use.

        Args:
            explicit: Path given on the command line

        Returns:
            ``explicit`` if given, else the first existing default location,
            else the user config location (to be created)
        """
        if explicit:
            return Path(explicit)
        for candidate in cls.default_search_paths():
            if candidate.exists():
                return candidate
        return cls.default_search_paths()[-1]

    @classmethod
    def load_or_create(cls, filepath: Path) -> AppConfig:
        """
        Load ``filepath``, writing a default config there first if it is missing.

        Raises:
            ConfigurationError: unreadable, unparsable or invalid config
        """
        filepath = Path(filepath)
        if not filepath.exists():
            logger.warning("Config file not found at %s, creating default config", filepath)
            cls.create_default_config_file(filepath)
        return cls.load_from_file(filepath)

    @classmethod
    def load_from_file(cls, filepath: Path) -> AppConfig:
        """
        Load configuration from file

        Args:
            filepath: Path to config file (.yaml, .yml, or .json)

        Returns:
            AppConfig instance

        Raises:
            ConfigurationError: If file not found or invalid
        """
        filepath = Path(filepath)

        if not filepath.exists():
            raise ConfigurationError(
                f"Configuration file not found: {filepath}",
                context={"filepath": str(filepath)}
            )

        if filepath.suffix not in cls.SUPPORTED_FORMATS:
            raise ConfigurationError(
                f"Unsupported config format: {filepath.suffix}. "
                f"Supported: {', '.join(sorted(cls.SUPPORTED_FORMATS))}",
                context={"filepath": str(filepath), "suffix": filepath.suffix}
            )

        try:
            with filepath.open('r', encoding='utf-8') as f:
                if filepath.suffix == '.json':
                    data = json.load(f)
                else:  # YAML
                    data = yaml.safe_load(f)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise ConfigurationError(
                f"Failed to parse config file: {e}",
                context={"filepath": str(filepath), "error": str(e)}
            ) from e

        config = cls.from_dict(data or {})

        try:
            errors = ConfigValidator.validate(config)
        except TypeError as e:
            errors = [f"wrong value type: {e}"]
        if errors:
            raise ConfigurationError(
                "Invalid configuration: " + "; ".join(errors),
                context={"filepath": str(filepath), "errors": errors}
            )
        return config

    @staticmethod
    def _section(cls_, data: Any):
        """Build a config dataclass from a mapping, ignoring unknown keys"""
        if not isinstance(data, dict):
            return cls_()
        known = {f.name for f in fields(cls_)}
        return cls_(**{k: v for k, v in data.items() if k in known})

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> AppConfig:
        """Convert dictionary to AppConfig"""
        if not isinstance(data, dict):
            raise ConfigurationError("Config root must be a mapping")
        try:
            app_section = data.get('application') or {}
            pages_section = data.get('pages')
            pages = (
                {str(k): bool(v) for k, v in pages_section.items()}
                if isinstance(pages_section, dict)
                else {p: True for p in PAGE_IDS}
            )
            defaults = AppConfig()
            return AppConfig(
                app_name=str(app_section.get('name', defaults.app_name)),
                version=str(app_section.get('version', defaults.version)),
                paths=cls._section(PathConfig, data.get('paths')),
                pages=pages,
                monitoring=cls._section(MonitoringConfig, data.get('monitoring')),
                edsm=cls._section(EdsmConfig, data.get('edsm')),
                display=cls._section(DisplayConfig, data.get('display')),
                logging=cls._section(LoggingConfig, data.get('logging')),
            )
        except (TypeError, AttributeError) as e:
            raise ConfigurationError(
                f"Failed to convert config data: {e}",
                context={"error": str(e)}
            ) from e

    @classmethod
    def save_to_file(cls, config: AppConfig, filepath: Path):
        """
        Save configuration to file

        Args:
            config: AppConfig to save
            filepath: Path to save to (.yaml or .json)
        """
        filepath = Path(filepath)
        data = cls.to_dict(config)

        try:
            filepath.parent.mkdir(parents=True, exist_ok=True)
            with filepath.open('w', encoding='utf-8') as f:
                if filepath.suffix == '.json':
                    json.dump(data, f, indent=2)
                else:  # YAML
                    yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
        except OSError as e:
            raise ConfigurationError(
                f"Failed to save config file: {e}",
                context={"filepath": str(filepath), "error": str(e)}
            ) from e

    @classmethod
    def to_dict(cls, config: AppConfig) -> Dict[str, Any]:
        """Convert AppConfig to dictionary"""
        return {
            'application': {
                'name': config.app_name,
                'version': config.version,
            },
            'paths': asdict(config.paths),
            'pages': dict(config.pages),
            'monitoring': asdict(config.monitoring),
            'edsm': asdict(config.edsm),
            'display': asdict(config.display),
            'logging': asdict(config.logging),
        }

    @classmethod
    def create_default_config_file(cls, filepath: Path):
        """
        Create a default configuration file

        Args:
            filepath: Where to create the file
        """
        cls.save_to_file(AppConfig.create_default(), filepath)


class ConfigValidator:
    """Validate configuration values"""

    @staticmethod
    def validate(config: AppConfig) -> List[str]:
        """
        Validate configuration

        Args:
            config: Configuration to validate

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        unknown = sorted(set(config.pages) - set(PAGE_IDS))
        if unknown:
            errors.append(f"unknown page ids: {', '.join(unknown)}")

        if not config.enabled_pages:
            errors.append("at least one page must be enabled")

        if not str(config.paths.journal_dir).strip():
            errors.append("journal_dir must be set")

        # Monitoring settings
        if config.monitoring.poll_seconds <= 0:
            errors.append("poll_seconds must be positive")

        if config.monitoring.arrival_timeout_seconds <= 0:
            errors.append("arrival_timeout_seconds must be positive")

        if config.monitoring.splash_min_seconds < 0:
            errors.append("splash_min_seconds must not be negative")

        if config.edsm.timeout_seconds <= 0:
            errors.append("edsm timeout_seconds must be positive")

        # Display settings
        if config.display.line_width < 8:
            errors.append("line_width must be at least 8")

        if config.display.min_valuable_body_value < 0:
            errors.append("min_valuable_body_value must not be negative")

        if str(config.logging.level).upper() not in LOG_LEVELS:
            errors.append(f"logging level must be one of {', '.join(LOG_LEVELS)}")

        return errors
