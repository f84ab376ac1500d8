"""
config.py - Configuration for the grouping engine
"""
import os
import logging
from typing import Optional
from dataclasses import dataclass


_TRUE_VALUES = {"1", "true", "yes", "on"}


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


@dataclass
class GroupingEngineConfig:
    """Configuration for the grouping engine"""

    # Group lifecycle
    retain_empty_groups: bool = False
    default_start_open: bool = True
    max_group_depth: int = 10

    # Flattening
    show_aggregates_while_closed: bool = False

    # Incremental updates
    update_on_data_change: bool = False  # reassign rows when their data changes

    # Default header text
    item_label: str = "item"
    items_label: str = "items"

    log_level: str = "INFO"

    def from_env(self) -> 'GroupingEngineConfig':
        """Load configuration from environment variables"""
        config = GroupingEngineConfig()

        config.retain_empty_groups = _env_flag('GROUPING_RETAIN_EMPTY_GROUPS', config.retain_empty_groups)
        config.default_start_open = _env_flag('GROUPING_START_OPEN', config.default_start_open)
        config.max_group_depth = int(os.getenv('GROUPING_MAX_DEPTH', str(config.max_group_depth)))

        config.show_aggregates_while_closed = _env_flag(
            'GROUPING_CLOSED_SHOW_AGGREGATES', config.show_aggregates_while_closed
        )
        config.update_on_data_change = _env_flag('GROUPING_UPDATE_ON_DATA_CHANGE', config.update_on_data_change)

        config.item_label = os.getenv('GROUPING_ITEM_LABEL', config.item_label)
        config.items_label = os.getenv('GROUPING_ITEMS_LABEL', config.items_label)

        config.log_level = os.getenv('GROUPING_LOG_LEVEL', config.log_level)

        return config

    def validate(self) -> None:
        """Validate configuration settings"""
        errors = []

        if self.max_group_depth <= 0:
            errors.append("max_group_depth must be positive")

        if not self.item_label or not self.items_label:
            errors.append("item_label and items_label must be non-empty")

        if logging.getLevelName(self.log_level.upper()) not in (
            logging.DEBUG, logging.INFO, logging.WARNING, logging.ERROR, logging.CRITICAL
        ):
            errors.append(f"unknown log_level {self.log_level!r}")

        if errors:
            raise ValueError(f"Configuration validation errors: {'; '.join(errors)}")


class ConfigManager:
    """Manager for configuration loading and validation"""

    def __init__(self):
        self.config: Optional[GroupingEngineConfig] = None

    def load_config(self, config_source: Optional[str] = None) -> GroupingEngineConfig:
        """Load configuration from various sources"""
        if config_source == 'env':
            self.config = GroupingEngineConfig().from_env()
        else:
            self.config = GroupingEngineConfig()

        self.config.validate()
        return self.config

    def get_config(self) -> GroupingEngineConfig:
        """Get the loaded configuration"""
        if self.config is None:
            self.config = self.load_config()
        return self.config


# Global configuration manager
config_manager = ConfigManager()


def get_config() -> GroupingEngineConfig:
    """Get the global configuration"""
    return config_manager.get_config()


def setup_logging(config: Optional[GroupingEngineConfig] = None):
    """Setup logging for the engine"""
    config = config or get_config()
    logging.basicConfig(level=getattr(logging, config.log_level.upper()))
