"""
Provisioning settings.

ProvisionSettings holds every knob the provisioner exposes. Defaults come
from slam_setup.installer.core.config; a YAML file and CLI flags can override
them. Resolution order (later wins):

1. Model defaults
2. YAML file (--config)
3. CLI overrides (None values are ignored)

Example settings file:

    env_name: mast3r-slam-dev
    checkpoint_dir: /data/checkpoints
    cuda_version: "12.4"
    max_retries: 1
"""

import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..installer.core.config import (
    CHECKPOINT_BASE_URL,
    CHECKPOINT_DIR_NAME,
    CHECKPOINTS,
    DEFAULT_RETRY_COUNT,
    DEFAULT_RETRY_DELAY,
    DEFAULT_TIMEOUT,
    ENV_NAME,
    ENV_PYTHON_VERSION,
)
from .errors import ConfigurationError, ConfigValidationError

_MAJOR_MINOR = re.compile(r"^\d+\.\d+(\.\d+)?$")
_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR"}


class ProvisionSettings(BaseModel):
    """
    Validated provisioning settings.

    Strict: unknown keys are rejected so a typo in the YAML file fails loudly
    instead of silently falling back to a default.
    """

    model_config = ConfigDict(
        extra="forbid",           # Catch typos immediately
        validate_assignment=True, # Re-validate on attribute change
    )

    env_name: str = Field(default=ENV_NAME, min_length=1)
    python_version: str = ENV_PYTHON_VERSION
    project_dir: Path = Field(default_factory=Path.cwd)
    checkpoint_dir: Optional[Path] = None
    checkpoint_base_url: str = CHECKPOINT_BASE_URL
    checkpoints: List[str] = Field(default_factory=lambda: list(CHECKPOINTS))
    cuda_version: Optional[str] = Field(
        default=None,
        description="Skip nvcc detection and resolve this toolkit version instead",
    )
    skip_checkpoints: bool = False
    max_retries: int = Field(default=DEFAULT_RETRY_COUNT, ge=1)
    retry_delay: float = Field(default=DEFAULT_RETRY_DELAY, ge=0)
    timeout: int = Field(default=DEFAULT_TIMEOUT, gt=0)
    log_file: Optional[Path] = None
    log_level: str = "INFO"

    @field_validator("env_name")
    @classmethod
    def validate_env_name(cls, v: str) -> str:
        if any(ch.isspace() for ch in v) or "/" in v:
            raise ValueError("environment name may not contain whitespace or '/'")
        return v

    @field_validator("python_version")
    @classmethod
    def validate_python_version(cls, v: str) -> str:
        if not _MAJOR_MINOR.match(v):
            raise ValueError("expected a version like '3.11'")
        return v

    @field_validator("cuda_version")
    @classmethod
    def validate_cuda_version(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not _MAJOR_MINOR.match(v):
            raise ValueError("expected a version like '12.1'")
        return v

    @field_validator("checkpoints")
    @classmethod
    def validate_checkpoints(cls, v: List[str]) -> List[str]:
        if not v:
            raise ValueError("at least one checkpoint is required")
        for name in v:
            if not name or "/" in name or "\\" in name or name in (".", ".."):
                raise ValueError(f"checkpoint must be a bare filename: {name!r}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"must be one of {sorted(_LOG_LEVELS)}")
        return level

    @property
    def resolved_checkpoint_dir(self) -> Path:
        """checkpoint_dir, or <project_dir>/checkpoints when unset."""
        if self.checkpoint_dir is not None:
            return self.checkpoint_dir
        return self.project_dir / CHECKPOINT_DIR_NAME


def _load_yaml(path: Path) -> Dict[str, Any]:
    """
    Load raw YAML data from file.

    Uses safe_load to prevent arbitrary code execution.
    """
    if not path.exists():
        raise ConfigurationError("Settings file not found", file_path=path)

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        line = None
        if getattr(e, "problem_mark", None) is not None:
            line = e.problem_mark.line + 1
        raise ConfigurationError(f"YAML syntax error: {e}", file_path=path, line=line) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError("YAML root must be a mapping", file_path=path)
    return data


def load_settings(
    path: Optional[Union[str, Path]] = None,
    **overrides: Any,
) -> ProvisionSettings:
    """
    Build ProvisionSettings from an optional YAML file plus overrides.

    Raises:
        ConfigurationError: settings file missing or not valid YAML
        ConfigValidationError: a value fails validation
    """
    file_path = Path(path) if path is not None else None
    data: Dict[str, Any] = _load_yaml(file_path) if file_path is not None else {}
    data.update({key: value for key, value in overrides.items() if value is not None})

    try:
        return ProvisionSettings(**data)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or None
        raise ConfigValidationError(
            first.get("msg", str(e)),
            field=field,
            value=first.get("input"),
            file_path=file_path,
        ) from e
