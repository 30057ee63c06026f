"""Configuration loader with Pydantic validation and defaults.

This module loads config/config.yaml, validates all keys, and provides
a typed Settings object with sane defaults if keys are missing.
"""

from pathlib import Path
from typing import Literal

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _check_unit_interval(name: str, v: float) -> float:
    if not 0.0 <= v <= 1.0:
        raise ValueError(f"{name} must be between 0.0 and 1.0")
    return v


class BuilderConfig(BaseSettings):
    """Graph builder configuration."""

    model_config = SettingsConfigDict(extra="ignore")

    detect_references: bool = True       # Run detection + resolution after structure
    default_title: str = "Untitled Document"

    # Heading detection (layout runs only)
    heading_height_ratio: float = 1.4    # Line height vs page median to count as heading
    heading_max_chars: int = 80          # Max length of an isolated short heading line
    heading_isolation_gap: float = 1.0   # Vertical gap (x median height) around isolated headings
    heading_height_tolerance: float = 0.1  # Relative height difference to fold lines together

    # Edge weights / node confidences
    follows_weight: float = 0.8
    section_confidence: float = 0.85
    fallback_confidence: float = 0.5
    empty_page_confidence: float = 0.1

    @field_validator("follows_weight", "section_confidence", "fallback_confidence", "empty_page_confidence")
    @classmethod
    def validate_unit(cls, v: float, info) -> float:
        """Ensure weights and confidences are in [0.0, 1.0]."""
        return _check_unit_interval(info.field_name, v)

    @field_validator("heading_height_ratio")
    @classmethod
    def validate_ratio(cls, v: float) -> float:
        """A heading must be at least as tall as body text."""
        if v < 1.0:
            raise ValueError("heading_height_ratio must be >= 1.0")
        return v


class DetectionConfig(BaseSettings):
    """Reference detection configuration."""

    context_window: int = 100            # Characters either side kept as context
    matcher_context_window: int = 50     # Default window for bare matcher calls

    @field_validator("context_window", "matcher_context_window")
    @classmethod
    def validate_window(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Context windows must be >= 0")
        return v


class ResolutionConfig(BaseSettings):
    """Reference resolution confidence tiers and thresholds."""

    exact_section_confidence: float = 0.95
    exact_number_confidence: float = 0.9   # Figures and tables
    min_fuzzy_score: float = 0.5
    fuzzy_confidence_cap: float = 0.8
    page_confidence: float = 0.7
    spatial_max_confidence: float = 0.85
    spatial_min_confidence: float = 0.5
    spatial_distance_scale: float = 1000.0  # Characters per page in the distance metric
    enclosing_confidence: float = 0.6
    bibliography_confidence: float = 0.75

    @field_validator(
        "exact_section_confidence",
        "exact_number_confidence",
        "min_fuzzy_score",
        "fuzzy_confidence_cap",
        "page_confidence",
        "spatial_max_confidence",
        "spatial_min_confidence",
        "enclosing_confidence",
        "bibliography_confidence",
    )
    @classmethod
    def validate_unit(cls, v: float, info) -> float:
        """Ensure confidence tiers are in [0.0, 1.0]."""
        return _check_unit_interval(info.field_name, v)

    @field_validator("spatial_distance_scale")
    @classmethod
    def validate_scale(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("spatial_distance_scale must be > 0")
        return v


class ValidationConfig(BaseSettings):
    """Match-result and resolution validation thresholds."""

    max_matches: int = 100               # Above this, check for a noisy pattern
    noise_pattern_floor: int = 3         # Distinct patterns at or below this = noise
    low_confidence_threshold: float = 0.6
    low_confidence_ratio: float = 0.5    # Share of low-confidence matches that triggers a suggestion
    min_resolution_confidence: float = 0.3  # Resolved targets below this are flagged

    @field_validator("low_confidence_threshold", "low_confidence_ratio", "min_resolution_confidence")
    @classmethod
    def validate_unit(cls, v: float, info) -> float:
        return _check_unit_interval(info.field_name, v)


class LoggingConfig(BaseSettings):
    """Logging configuration for the CLI scripts."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_file: str = "logs/docgraph_{time:YYYY-MM-DD}.log"
    rotation: str = "10 MB"
    retention: str = "7 days"


class Settings(BaseSettings):
    """Main settings class with all configuration sections."""

    model_config = SettingsConfigDict(extra="ignore")

    builder: BuilderConfig = Field(default_factory=BuilderConfig)
    detection: DetectionConfig = Field(default_factory=DetectionConfig)
    resolution: ResolutionConfig = Field(default_factory=ResolutionConfig)
    validation: ValidationConfig = Field(default_factory=ValidationConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_yaml(cls, config_path: str | Path) -> "Settings":
        """Load settings from a YAML file.

        Args:
            config_path: Path to config.yaml file

        Returns:
            Settings instance with loaded configuration

        Raises:
            FileNotFoundError: If config file doesn't exist
            yaml.YAMLError: If YAML is invalid
            ValidationError: If configuration doesn't match schema
        """
        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with config_path.open("r", encoding="utf-8") as f:
            config_dict = yaml.safe_load(f) or {}

        return cls(**cls._merge_with_defaults(config_dict))

    @classmethod
    def _merge_with_defaults(cls, config_dict: dict) -> dict:
        """Deep-merge a loaded config dict over the default values.

        Args:
            config_dict: Dictionary loaded from YAML file

        Returns:
            Merged dictionary with defaults filled in
        """
        defaults = cls().model_dump()

        def deep_merge(base: dict, override: dict) -> dict:
            result = base.copy()
            for key, value in override.items():
                if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                    result[key] = deep_merge(result[key], value)
                else:
                    result[key] = value
            return result

        return deep_merge(defaults, config_dict)


def get_settings(config_path: str | Path | None = None) -> Settings:
    """Get settings instance, loading from config file or using defaults.

    Args:
        config_path: Optional path to config.yaml. If None, tries config/config.yaml
                     relative to project root, then falls back to defaults.

    Returns:
        Settings instance
    """
    if config_path is None:
        project_root = Path(__file__).parent.parent
        config_path = project_root / "config" / "config.yaml"

    config_path = Path(config_path)
    if config_path.exists():
        return Settings.from_yaml(config_path)

    return Settings()
