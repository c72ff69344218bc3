"""Configuration management for kbingest"""

import json
import os
import logging
from pathlib import Path
from typing import Any, Optional, List
from dataclasses import dataclass, asdict, field
import re
from urllib.parse import urlparse

from kbingest.errors import ConfigurationError


DEFAULT_CONFIG_PATH = Path.home() / ".kbingest" / "config.json"


class ConfigValidationError(Exception):
    """Raised when configuration validation fails"""
    pass


@dataclass
class OpenRouterConfig:
    """OpenRouter API configuration"""
    api_key: str
    default_model: str = "openai/gpt-4-turbo"
    fallback_models: list = None
    base_url: str = "https://openrouter.ai/api/v1"
    timeout: int = 60
    max_retries: int = 2

    def __post_init__(self):
        if self.fallback_models is None:
            self.fallback_models = ["openai/gpt-3.5-turbo"]

    def validate(self) -> List[str]:
        """Validate OpenRouter configuration"""
        errors = []

        if not self.api_key:
            errors.append("OpenRouter API key is required")
        elif not self.api_key.startswith(('sk-or-', 'sk-')):
            errors.append("OpenRouter API key should start with 'sk-or-' or 'sk-'")

        parsed = urlparse(self.base_url)
        if not parsed.scheme or not parsed.netloc:
            errors.append("Invalid OpenRouter base URL format")

        if not self.default_model:
            errors.append("Default model is required")
        elif not self._is_valid_model_name(self.default_model):
            errors.append(f"Invalid default model name format: {self.default_model}")

        for model in self.fallback_models or []:
            if not self._is_valid_model_name(model):
                errors.append(f"Invalid fallback model name format: {model}")

        if self.timeout <= 0:
            errors.append("Timeout must be positive")
        if self.max_retries < 0:
            errors.append("Max retries cannot be negative")

        return errors

    def _is_valid_model_name(self, model: str) -> bool:
        """Check if model name follows expected format (provider/model)"""
        return bool(re.match(r'^[a-zA-Z0-9_-]+/[a-zA-Z0-9_.-]+$', model))


@dataclass
class ExtractionConfig:
    """Text extraction configuration"""
    min_text_length: int = 50  # shorter extractions fail the document
    max_file_size: int = 50 * 1024 * 1024

    def validate(self) -> List[str]:
        """Validate extraction configuration"""
        errors = []

        if self.min_text_length < 0:
            errors.append("Minimum text length cannot be negative")
        if self.max_file_size <= 0:
            errors.append("Max file size must be positive")

        return errors


@dataclass
class SegmentationConfig:
    """Knowledge entry segmentation configuration"""
    max_entries: int = 50
    use_ai: bool = True
    prompt_char_limit: int = 15000
    temperature: float = 0.3
    max_tokens: int = 4000
    focus_areas: List[str] = field(default_factory=lambda: [
        'Policies', 'Terms and Conditions', 'FAQ', 'Procedures',
        'Guidelines', 'Rules', 'Requirements', 'Benefits', 'Limitations'
    ])

    def validate(self) -> List[str]:
        """Validate segmentation configuration"""
        errors = []

        if self.max_entries <= 0:
            errors.append("Max entries must be positive")
        if self.prompt_char_limit <= 0:
            errors.append("Prompt character limit must be positive")
        if not 0.0 <= self.temperature <= 2.0:
            errors.append("Temperature must be between 0.0 and 2.0")
        if self.max_tokens <= 0:
            errors.append("Max tokens must be positive")

        return errors


@dataclass
class LoggingConfig:
    """Logging configuration"""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file_enabled: bool = True
    console_enabled: bool = True
    max_file_size: int = 10 * 1024 * 1024  # 10MB
    backup_count: int = 5

    def validate(self) -> List[str]:
        """Validate logging configuration"""
        errors = []

        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if self.level.upper() not in valid_levels:
            errors.append(f"Invalid log level '{self.level}'. Must be one of: {valid_levels}")

        if self.max_file_size <= 0:
            errors.append("Max file size must be positive")

        if self.backup_count < 0:
            errors.append("Backup count cannot be negative")

        return errors


def _section(config_data: dict, name: str) -> dict:
    data = config_data.get(name, {})
    return data if isinstance(data, dict) else {}


@dataclass
class KBConfig:
    """Main kbingest configuration"""
    openrouter: OpenRouterConfig
    extraction: ExtractionConfig
    segmentation: SegmentationConfig
    logging: LoggingConfig
    data_dir: str = "~/.kbingest"

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> 'KBConfig':
        """Load configuration from file or create default"""
        if config_path is None:
            config_path = DEFAULT_CONFIG_PATH

        try:
            if config_path.exists():
                with open(config_path, 'r', encoding='utf-8') as f:
                    config_data = json.load(f)

                openrouter_data = _section(config_data, 'openrouter')
                if not openrouter_data.get('api_key'):
                    openrouter_data['api_key'] = os.getenv('OPENROUTER_API_KEY', '')

                return cls(
                    openrouter=OpenRouterConfig(**openrouter_data),
                    extraction=ExtractionConfig(**_section(config_data, 'extraction')),
                    segmentation=SegmentationConfig(**_section(config_data, 'segmentation')),
                    logging=LoggingConfig(**_section(config_data, 'logging')),
                    data_dir=config_data.get('data_dir', '~/.kbingest')
                )
            else:
                return cls.create_default()
        except (json.JSONDecodeError, TypeError, ValueError) as e:
            logging.warning(f"Failed to load config from {config_path}: {e}")
            logging.info("Creating default configuration")
            return cls.create_default()
        except OSError as e:
            raise ConfigurationError(
                f"Cannot read configuration file {config_path}: {e}",
                "Check the file permissions or pass a different path with --config.",
                original_error=e
            )

    @classmethod
    def create_default(cls) -> 'KBConfig':
        """Create default configuration"""
        api_key = os.getenv('OPENROUTER_API_KEY', '')
        return cls(
            openrouter=OpenRouterConfig(api_key=api_key),
            extraction=ExtractionConfig(),
            segmentation=SegmentationConfig(),
            logging=LoggingConfig()
        )

    def save(self, config_path: Optional[Path] = None) -> None:
        """Save configuration to file"""
        if config_path is None:
            config_path = DEFAULT_CONFIG_PATH

        try:
            config_path.parent.mkdir(parents=True, exist_ok=True)

            config_dict = {
                'openrouter': asdict(self.openrouter),
                'extraction': asdict(self.extraction),
                'segmentation': asdict(self.segmentation),
                'logging': asdict(self.logging),
                'data_dir': self.data_dir
            }

            if config_path.exists():
                backup_path = config_path.with_suffix('.json.backup')
                config_path.replace(backup_path)

            with open(config_path, 'w', encoding='utf-8') as f:
                json.dump(config_dict, f, indent=2, ensure_ascii=False)

        except OSError as e:
            raise ConfigValidationError(f"Failed to save configuration: {e}")

    def validate(self) -> List[str]:
        """Validate entire configuration"""
        errors = []

        errors.extend(self.openrouter.validate())
        errors.extend(self.extraction.validate())
        errors.extend(self.segmentation.validate())
        errors.extend(self.logging.validate())

        data_path = Path(self.data_dir).expanduser()
        if not data_path.parent.exists():
            errors.append(f"Data directory parent does not exist: {data_path.parent}")

        return errors

    def validate_and_raise(self) -> None:
        """Validate configuration and raise exception if invalid"""
        errors = self.validate()
        if errors:
            raise ConfigValidationError("Configuration validation failed:\n" + "\n".join(f"- {error}" for error in errors))

    def update_setting(self, key_path: str, value: Any) -> None:
        """Update a configuration setting using dot notation"""
        keys = key_path.split('.')
        obj = self

        for key in keys[:-1]:
            if not hasattr(obj, key):
                raise ConfigValidationError(f"Invalid configuration path: {key_path}")
            obj = getattr(obj, key)

        final_key = keys[-1]
        if not hasattr(obj, final_key):
            raise ConfigValidationError(f"Invalid configuration key: {final_key}")

        # Coerce string input to the type of the current value
        current_value = getattr(obj, final_key)
        if isinstance(current_value, bool):
            if isinstance(value, str):
                value = value.lower() in ('true', '1', 'yes', 'on')
        elif isinstance(current_value, int):
            value = int(value)
        elif isinstance(current_value, float):
            value = float(value)
        elif isinstance(current_value, list):
            if isinstance(value, str):
                value = [item.strip() for item in value.split(',')]

        setattr(obj, final_key, value)

    def get_setting(self, key_path: str) -> Any:
        """Get a configuration setting using dot notation"""
        keys = key_path.split('.')
        obj = self

        for key in keys:
            if not hasattr(obj, key):
                raise ConfigValidationError(f"Invalid configuration path: {key_path}")
            obj = getattr(obj, key)

        return obj

    @property
    def data_path(self) -> Path:
        """Get expanded data directory path"""
        return Path(self.data_dir).expanduser()

    @property
    def database_path(self) -> Path:
        """Get knowledge-base SQLite database path"""
        return self.data_path / "knowledge_base.sqlite"

    @property
    def objects_path(self) -> Path:
        """Get directory holding uploaded binaries"""
        return self.data_path / "objects"

    @property
    def logs_path(self) -> Path:
        """Get logs directory path"""
        return self.data_path / "logs"
