"""
Configuration Manager
=====================

Environment-based settings for the chat orchestration layer: YAML file,
environment variable overrides and typed dataclass sections.
"""

import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional
from dataclasses import dataclass, field, asdict
from enum import Enum
import logging

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

_TRUE_VALUES = {"true", "1", "yes", "on"}
_FALSE_VALUES = {"false", "0", "no", "off"}


class ConfigurationError(Exception):
    """Raised for invalid or unreadable configuration."""
    pass


class Environment(Enum):
    """Environment types for configuration."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


@dataclass
class LLMSettings:
    """Language model backend settings."""
    api_key: str = ""
    api_base: str = "https://api.openai.com/v1"
    model_name: str = "gpt-3.5-turbo"
    demo_mode: bool = True
    max_tokens: int = 1000
    temperature: float = 0.7
    presence_penalty: float = 0.1
    frequency_penalty: float = 0.1
    timeout: float = 10.0


@dataclass
class KnowledgeSettings:
    """Knowledge/retrieval service settings."""
    enabled: bool = False
    base_url: str = "http://localhost:8000"
    user_id: str = "default-user"
    timeout: float = 5.0
    search_k: int = 5
    store_conversations: bool = True


@dataclass
class MemorySettings:
    """Conversation memory settings."""
    context_window_size: int = 10

    def __post_init__(self):
        if int(self.context_window_size) < 1:
            raise ConfigurationError("memory.context_window_size must be at least 1")
        self.context_window_size = int(self.context_window_size)


@dataclass
class StorageSettings:
    """Session persistence settings."""
    backend: str = "memory"
    path: str = "sessions.json"
    key: str = "chat_sessions"

    def __post_init__(self):
        if self.backend not in ("memory", "json", "none"):
            raise ConfigurationError(f"Unknown storage backend: {self.backend}")


@dataclass
class ObservabilitySettings:
    """Logging configuration."""
    log_level: str = "INFO"
    log_format: str = LOG_FORMAT


@dataclass
class Settings:
    """Application settings."""
    environment: Environment = Environment.DEVELOPMENT
    app_name: str = "Websoft AI"
    version: str = "1.0.0"
    debug_mode: bool = False

    llm: LLMSettings = field(default_factory=LLMSettings)
    knowledge: KnowledgeSettings = field(default_factory=KnowledgeSettings)
    memory: MemorySettings = field(default_factory=MemorySettings)
    storage: StorageSettings = field(default_factory=StorageSettings)
    observability: ObservabilitySettings = field(default_factory=ObservabilitySettings)

    def to_dict(self) -> Dict[str, Any]:
        """Convert settings to dictionary, with secrets masked."""
        data = asdict(self)
        data['environment'] = self.environment.value
        if data['llm']['api_key']:
            data['llm']['api_key'] = '***'
        return data

    def is_production(self) -> bool:
        return self.environment == Environment.PRODUCTION


def parse_bool(value: Any) -> bool:
    """Interpret config/env style booleans."""
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"Invalid boolean value: {value!r}")


class ConfigManager:
    """Loads settings from YAML and merges environment overrides."""

    # dotted path -> (environment variable, converter)
    ENV_OVERRIDES = {
        'llm.api_key': ('OPENAI_API_KEY', str),
        'llm.api_base': ('OPENAI_API_URL', str),
        'llm.demo_mode': ('ENABLE_DEMO_MODE', parse_bool),
        'knowledge.base_url': ('KNOWLEDGE_API_URL', str),
        'knowledge.enabled': ('ENABLE_KNOWLEDGE', parse_bool),
        'observability.log_level': ('CONVOCORE_LOG_LEVEL', str),
        'storage.path': ('CONVOCORE_STORAGE_PATH', str),
    }

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path or self._find_config_path()
        self._settings: Optional[Settings] = None

        self.load_config()

    def _find_config_path(self) -> Optional[str]:
        """Find configuration file path based on environment."""
        env = os.environ.get("ENVIRONMENT", "development")
        config_dir = Path(__file__).parent

        env_config = config_dir / f"settings.{env}.yaml"
        if env_config.exists():
            return str(env_config)

        default_config = config_dir / "settings.yaml"
        if default_config.exists():
            return str(default_config)

        return None

    def load_config(self) -> Settings:
        """Load configuration from file (or defaults) plus environment."""
        config_data: Dict[str, Any] = {}
        if self.config_path:
            try:
                with open(self.config_path, 'r') as f:
                    config_data = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as e:
                logger.error(f"Failed to load configuration: {e}")
                raise ConfigurationError(f"Cannot read {self.config_path}: {e}") from e

        config_data = self._merge_environment_variables(config_data)
        self._settings = self._create_settings_from_dict(config_data)

        logger.info(f"Configuration loaded from {self.config_path or 'defaults'}")
        return self._settings

    def reload_config(self) -> Settings:
        """Re-read configuration, keeping the current settings on failure."""
        try:
            return self.load_config()
        except ConfigurationError as e:
            logger.error(f"Failed to reload configuration: {e}")
            if self._settings is None:
                raise
            return self._settings

    def _merge_environment_variables(self, config_data: Dict[str, Any]) -> Dict[str, Any]:
        for config_path, (env_var, convert) in self.ENV_OVERRIDES.items():
            env_value = os.environ.get(env_var)
            if env_value:
                self._set_nested_value(config_data, config_path, convert(env_value))
        return config_data

    def _set_nested_value(self, data: Dict[str, Any], path: str, value: Any):
        """Set nested dictionary value using dot notation."""
        keys = path.split('.')
        current = data

        for key in keys[:-1]:
            if not isinstance(current.get(key), dict):
                current[key] = {}
            current = current[key]

        current[keys[-1]] = value

    def _create_settings_from_dict(self, config_data: Dict[str, Any]) -> Settings:
        settings_dict: Dict[str, Any] = {}

        try:
            settings_dict['environment'] = Environment(config_data.get('environment', 'development'))
        except ValueError as e:
            raise ConfigurationError(str(e)) from e
        settings_dict['app_name'] = config_data.get('app_name', 'Websoft AI')
        settings_dict['version'] = config_data.get('version', '1.0.0')
        settings_dict['debug_mode'] = parse_bool(config_data.get('debug_mode', False))

        sections = {
            'llm': LLMSettings,
            'knowledge': KnowledgeSettings,
            'memory': MemorySettings,
            'storage': StorageSettings,
            'observability': ObservabilitySettings,
        }
        for name, section_cls in sections.items():
            if name in config_data and config_data[name]:
                try:
                    settings_dict[name] = section_cls(**config_data[name])
                except (TypeError, ValueError) as e:
                    raise ConfigurationError(f"Invalid '{name}' section: {e}") from e

        settings = Settings(**settings_dict)
        settings.llm.demo_mode = parse_bool(settings.llm.demo_mode)
        settings.knowledge.enabled = parse_bool(settings.knowledge.enabled)
        return settings

    @property
    def settings(self) -> Settings:
        """Get current settings."""
        if self._settings is None:
            self.load_config()
        return self._settings


def configure_logging(settings: Settings) -> None:
    """Apply the observability section to the root logger."""
    level = getattr(logging, settings.observability.log_level.upper(), logging.INFO)
    logging.basicConfig(level=level, format=settings.observability.log_format)
    logging.getLogger().setLevel(level)


_config_manager: Optional[ConfigManager] = None


def get_config_manager() -> ConfigManager:
    """Get global configuration manager instance."""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager


def get_settings() -> Settings:
    """Get current application settings."""
    return get_config_manager().settings


def reload_config() -> Settings:
    return get_config_manager().reload_config()
