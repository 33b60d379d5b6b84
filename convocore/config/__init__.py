"""
Configuration Management Module
===============================

Typed settings loaded from YAML with environment variable overrides.
"""

from .config_manager import (
    Settings, ConfigManager, Environment, ConfigurationError,
    LLMSettings, KnowledgeSettings, MemorySettings, StorageSettings,
    ObservabilitySettings, configure_logging, parse_bool,
    get_config_manager, get_settings, reload_config
)

__all__ = [
    "Settings", "ConfigManager", "Environment", "ConfigurationError",
    "LLMSettings", "KnowledgeSettings", "MemorySettings", "StorageSettings",
    "ObservabilitySettings", "configure_logging", "parse_bool",
    "get_config_manager", "get_settings", "reload_config",
]
