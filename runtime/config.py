"""Runtime configuration with YAML support."""

from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import Field

from sandbox.capture import MAX_LEN_OUTPUT, MAX_LENGTH_TRUNCATE_CONTENT
from sandbox.executor import DEFAULT_TIMEOUT_SECONDS, MAX_OPERATIONS
from tools.schemas import BaseSchema


class RuntimeConfig(BaseSchema):
    """Sandbox limits and allow-list additions for an interpreter session."""

    # Modules authorized on top of the fixed base list
    additional_authorized_imports: list[str] = Field(default_factory=list)

    # Wall-clock budget per call
    timeout_seconds: float = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0)

    # Captured print output kept by the interpreter
    max_print_outputs_length: int = Field(default=MAX_LEN_OUTPUT, gt=0)

    # Observation text handed back to the orchestration loop
    max_length_truncate_content: int = Field(default=MAX_LENGTH_TRUNCATE_CONTENT, gt=0)

    max_operations: int = Field(default=MAX_OPERATIONS, gt=0)


def load_config(yaml_path: str | Path) -> RuntimeConfig:
    """Load runtime configuration from YAML file.

    Args:
        yaml_path: Path to YAML configuration file

    Returns:
        RuntimeConfig instance

    Raises:
        FileNotFoundError: If YAML file doesn't exist
        ValueError: If YAML is invalid or has invalid fields
    """
    yaml_path = Path(yaml_path)

    if not yaml_path.exists():
        raise FileNotFoundError(f"Config file not found: {yaml_path}")

    with open(yaml_path, "r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in {yaml_path}: {e}") from e

    if not data or not isinstance(data, dict):
        raise ValueError(f"Empty or invalid YAML file: {yaml_path}")

    try:
        return RuntimeConfig.from_dict(data)
    except Exception as e:
        raise ValueError(f"Invalid configuration in {yaml_path}: {e}") from e


def save_config(config: RuntimeConfig, yaml_path: str | Path) -> None:
    """Save runtime configuration to YAML file.

    Args:
        config: RuntimeConfig to save
        yaml_path: Path where to save YAML file
    """
    yaml_path = Path(yaml_path)
    yaml_path.parent.mkdir(parents=True, exist_ok=True)

    data = config.to_dict()

    with open(yaml_path, "w", encoding="utf-8") as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False, indent=2)
