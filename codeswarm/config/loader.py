"""Configuration loader for codeswarm."""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Optional

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from codeswarm.config.models import AgentConfig

SECTIONS = ["tiers", "multi_agent", "tools", "permissions", "output", "paths"]


def _set_dotted(target: dict[str, Any], key: str, value: Any) -> None:
    """Assign ``value`` at a dotted path such as ``multi_agent.max_concurrent``."""
    parts = key.split(".")
    current = target
    for part in parts[:-1]:
        if not isinstance(current.get(part), dict):
            current[part] = {}
        current = current[part]
    current[parts[-1]] = value


def _from_toml(raw_config: dict[str, Any]) -> dict[str, Any]:
    """Map the TOML layout onto the AgentConfig field structure.

    Keys under ``[agent]`` sit at the top level of the model; every other
    known table is passed through as a sub-model.
    """
    config_dict: dict[str, Any] = {}
    for key, value in raw_config.get("agent", {}).items():
        config_dict[key] = value
    for section in SECTIONS:
        if section in raw_config:
            config_dict[section] = raw_config[section]
    return config_dict


def load_config_from_file(path: Path) -> AgentConfig:
    """Load configuration from a TOML file.

    Raises:
        FileNotFoundError: If the config file doesn't exist.
        ValueError: If the config file is invalid.
    """
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path, "rb") as f:
        raw_config = tomllib.load(f)

    return AgentConfig(**_from_toml(raw_config))


def load_config(
    config_path: Optional[Path] = None,
    overrides: Optional[dict[str, Any]] = None,
) -> AgentConfig:
    """Load configuration with optional overrides.

    Args:
        config_path: Optional path to a TOML config file. When omitted the
            standard locations are searched.
        overrides: Optional mapping of (possibly dotted) keys to values,
            applied on top of the file.

    Returns:
        AgentConfig instance.
    """
    config_dict: dict[str, Any] = {}

    path = config_path or find_config_file()
    if path and path.exists():
        with open(path, "rb") as f:
            config_dict = _from_toml(tomllib.load(f))

    if overrides:
        for key, value in overrides.items():
            if value is None:
                continue
            _set_dotted(config_dict, key, value)

    return AgentConfig(**config_dict)


def find_config_file() -> Optional[Path]:
    """Find the configuration file in standard locations.

    Searches in order:
    1. ./codeswarm.toml
    2. ./.codeswarm/config.toml
    3. ~/.config/codeswarm/config.toml
    """
    search_paths = [
        Path.cwd() / "codeswarm.toml",
        Path.cwd() / ".codeswarm" / "config.toml",
        Path.home() / ".config" / "codeswarm" / "config.toml",
    ]

    for path in search_paths:
        if path.exists():
            return path

    return None


def load_batch_file(path: Path) -> dict[str, Any]:
    """Read a multi-agent batch description (TOML or JSON).

    TOML batches list agents as ``[[agents]]`` tables; request options such
    as ``execution_mode`` sit at the top level in both formats.

    Raises:
        FileNotFoundError: If the batch file doesn't exist.
        ValueError: If the file cannot be parsed or has no agent list.
    """
    if not path.exists():
        raise FileNotFoundError(f"Batch file not found: {path}")

    if path.suffix.lower() == ".json":
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in {path}: {e}") from e
    else:
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ValueError(f"Invalid TOML in {path}: {e}") from e

    if not isinstance(data, dict) or not isinstance(data.get("agents"), list):
        raise ValueError(f"{path} must define an 'agents' list")
    return data
