"""Configuration management with Pydantic validation."""

from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

EventClass = Union[bool, int, str]


class EncodingConfig(BaseModel):
    """Columns and numeric knobs for fitting one categorical column."""
    model_config = ConfigDict(frozen=True)

    category_column: str
    outcome_column: str
    weight_column: Optional[str] = None
    laplace_alpha: float = Field(default=1e-6, ge=0, allow_inf_nan=False)
    min_variance_floor: float = Field(default=0.0, ge=0, allow_inf_nan=False)
    event_class: Optional[EventClass] = None

    @classmethod
    def build(cls, **kwargs: Any) -> "EncodingConfig":
        """Validate keyword settings, raising ConfigurationError on failure."""
        from catembed.utils.exceptions import ConfigurationError

        try:
            return cls(**kwargs)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid encoding config: {e}") from e


class PathConfig(BaseModel):
    """File paths configuration."""
    train_data: Path
    apply_data: List[Path] = Field(default_factory=list)
    output_dir: Path = Path("data/encoded")
    logs: Path = Path("logs")

    @field_validator("train_data")
    @classmethod
    def check_train_exists(cls, v: Path) -> Path:
        if not v.exists():
            raise ValueError(f"Training data not found: {v}")
        return v

    def ensure_dirs(self) -> None:
        """Create output directories."""
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.logs.mkdir(parents=True, exist_ok=True)


class EncodingSettings(BaseModel):
    """Which columns to encode and how."""
    columns: List[str] = Field(min_length=1)
    outcome_column: str
    weight_column: Optional[str] = None
    mode: str = Field(default="analytical_smoothing", pattern="^(analytical_smoothing|woe|unpooled)$")
    laplace_alpha: float = Field(default=1e-6, ge=0, allow_inf_nan=False)
    min_variance_floor: float = Field(default=0.0, ge=0, allow_inf_nan=False)
    event_class: Optional[EventClass] = None
    drop_original: bool = False
    n_jobs: Optional[int] = None

    @model_validator(mode="after")
    def validate_columns(self) -> "EncodingSettings":
        if self.outcome_column in self.columns:
            raise ValueError(f"Outcome column '{self.outcome_column}' cannot also be encoded")
        if self.weight_column is not None and self.weight_column in self.columns:
            raise ValueError(f"Weight column '{self.weight_column}' cannot also be encoded")
        if len(set(self.columns)) != len(self.columns):
            raise ValueError(f"Duplicate columns in {self.columns}")
        return self

    def to_encoder_params(self) -> Dict[str, Any]:
        """Return LevelEncoder keyword arguments."""
        return {
            "columns": list(self.columns),
            "mode": self.mode,
            "laplace_alpha": self.laplace_alpha,
            "min_variance_floor": self.min_variance_floor,
            "event_class": self.event_class,
            "drop_original": self.drop_original,
            "n_jobs": self.n_jobs,
        }


class RuntimeSettings(BaseSettings):
    """Process-level settings read from the environment."""
    log_level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
    log_dir: Path = Path("logs")
    log_to_file: bool = True

    model_config = SettingsConfigDict(
        env_prefix="CATEMBED_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )


class Config(BaseModel):
    """Complete pipeline configuration."""
    paths: PathConfig
    encoding: EncodingSettings


def load_config(config_path: Path) -> Config:
    """Load and validate config from YAML file."""
    from catembed.utils.exceptions import ConfigurationError

    if not config_path.exists():
        raise ConfigurationError(f"Config file not found: {config_path}")

    try:
        with open(config_path) as f:
            raw = yaml.safe_load(f)

        config = Config(**raw)
        config.paths.ensure_dirs()

        return config

    except Exception as e:
        raise ConfigurationError(f"Invalid config: {e}") from e
