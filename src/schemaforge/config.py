"""
Configuration Management for SchemaForge
Uses Pydantic for validation and type safety
"""
from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .utils.errors import ConfigurationError

ENV_PREFIX = "SCHEMAFORGE_"


class LogLevel(str, Enum):
    """Log levels"""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class InferenceConfig(BaseModel):
    """Column type inference configuration"""
    sample_size: int = Field(default=1000, ge=1, le=1_000_000)
    varchar_min: int = Field(default=50, ge=1)
    varchar_max: int = Field(default=255, ge=1)
    length_headroom: float = Field(default=1.2, ge=1.0, le=10.0)
    unique_min_samples: int = Field(default=10, ge=1)
    low_cardinality_ratio: float = Field(default=0.1, ge=0.0, le=1.0)
    high_missing_ratio: float = Field(default=0.5, ge=0.0, le=1.0)
    moderate_missing_ratio: float = Field(default=0.2, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def check_bounds(self) -> "InferenceConfig":
        if self.varchar_min > self.varchar_max:
            raise ValueError("varchar_min must not exceed varchar_max")
        if self.moderate_missing_ratio > self.high_missing_ratio:
            raise ValueError("moderate_missing_ratio must not exceed high_missing_ratio")
        return self


class BuilderConfig(BaseModel):
    """Rule-based schema construction configuration"""
    include_audit_columns: bool = True
    include_fk_indexes: bool = True
    include_default_policies: bool = False
    default_policy_using: str = "auth.uid() IS NOT NULL"
    default_policy_roles: List[str] = Field(default_factory=lambda: ["authenticated"])


class SuggestionConfig(BaseModel):
    """External schema suggestion configuration"""
    enabled: bool = True
    min_confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    max_sample_values: int = Field(default=20, ge=1, le=1000)
    use_case_hint: Optional[str] = None


class EmitterConfig(BaseModel):
    """Default code emission options"""
    include_comments: bool = True
    include_indexes: bool = True
    include_policies: bool = True
    include_down: bool = False
    include_extensions: bool = True
    schema_name: str = "public"
    output_dir: str = "generated"

    @field_validator('schema_name')
    @classmethod
    def validate_schema_name(cls, v: str) -> str:
        if not v or not v.replace("_", "a").isalnum() or not v[0].isalpha():
            raise ValueError(f"Invalid schema name: {v!r}")
        return v


class ValidationConfig(BaseModel):
    """Schema validation configuration"""
    enable_cache: bool = True
    max_cache_entries: int = Field(default=256, ge=1, le=100_000)
    require_uuid_id: bool = True
    block_on_errors: bool = False


class SystemConfig(BaseModel):
    """Main system configuration"""
    inference: InferenceConfig = Field(default_factory=InferenceConfig)
    builder: BuilderConfig = Field(default_factory=BuilderConfig)
    suggestion: SuggestionConfig = Field(default_factory=SuggestionConfig)
    emitter: EmitterConfig = Field(default_factory=EmitterConfig)
    validation: ValidationConfig = Field(default_factory=ValidationConfig)
    log_level: LogLevel = LogLevel.INFO
    log_json: bool = False
    debug_mode: bool = False

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "SystemConfig":
        """Create configuration from environment variables (and an optional .env file)"""
        load_dotenv(dotenv_path, override=False)

        def env(name: str, default: str) -> str:
            return os.getenv(f"{ENV_PREFIX}{name}", default)

        def env_bool(name: str, default: bool) -> bool:
            return env(name, str(default)).lower() in ("1", "true", "yes")

        try:
            return cls(
                inference=InferenceConfig(
                    sample_size=int(env("SAMPLE_SIZE", "1000")),
                ),
                suggestion=SuggestionConfig(
                    enabled=env_bool("SUGGESTION_ENABLED", True),
                    min_confidence=float(env("MIN_CONFIDENCE", "0.5")),
                    use_case_hint=os.getenv(f"{ENV_PREFIX}USE_CASE") or None,
                ),
                emitter=EmitterConfig(
                    schema_name=env("PG_SCHEMA", "public"),
                    output_dir=env("OUTPUT_DIR", "generated"),
                    include_down=env_bool("INCLUDE_DOWN", False),
                ),
                validation=ValidationConfig(
                    enable_cache=env_bool("VALIDATION_CACHE", True),
                    block_on_errors=env_bool("BLOCK_ON_ERRORS", False),
                ),
                log_level=LogLevel(env("LOG_LEVEL", "INFO").upper()),
                log_json=env_bool("LOG_JSON", False),
                debug_mode=env_bool("DEBUG_MODE", False),
            )
        except (ValueError, ValidationError) as e:
            raise ConfigurationError(
                f"Invalid environment configuration: {e}",
                original_error=e,
            ) from e

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SystemConfig":
        try:
            return cls.model_validate(data or {})
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}", original_error=e) from e

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "SystemConfig":
        """Load configuration from a YAML file"""
        path = Path(path)
        if not path.exists():
            raise ConfigurationError(f"Configuration file not found: {path}", config_key=str(path))
        with open(path, "r", encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Invalid YAML in {path}: {e}", original_error=e) from e
        if data is not None and not isinstance(data, dict):
            raise ConfigurationError(f"Configuration root must be a mapping: {path}")
        return cls.from_dict(data or {})

    model_config = {"use_enum_values": True}


# Global configuration instance
_config: Optional[SystemConfig] = None


def get_config() -> SystemConfig:
    """Get the global configuration instance"""
    global _config
    if _config is None:
        _config = SystemConfig.from_env()
    return _config


def set_config(config: SystemConfig) -> None:
    """Set the global configuration instance"""
    global _config
    _config = config


def reset_config() -> None:
    """Reset the global configuration instance"""
    global _config
    _config = None
