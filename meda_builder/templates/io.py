"""Build template loading.

This module provides helpers for loading build templates from YAML/JSON
files and validating them into BuildConfig instances.
"""

import json
from pathlib import Path
from typing import Any

import yaml

from meda_builder.templates.schema import BuildConfig

YAML_SUFFIXES = {".yaml", ".yml"}


def load_yaml(path: Path) -> dict[str, Any]:
    """Load a YAML file and return its contents as a dict.

    Args:
        path: Path to the YAML file.

    Returns:
        Parsed YAML content as a dictionary.

    Raises:
        FileNotFoundError: If the file does not exist.
        yaml.YAMLError: If the file is not valid YAML.
    """
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Expected a YAML mapping, got {type(data).__name__}")
    return data


def load_json(path: Path) -> dict[str, Any]:
    """Load a JSON file and return its contents as a dict.

    Args:
        path: Path to the JSON file.

    Returns:
        Parsed JSON content as a dictionary.

    Raises:
        FileNotFoundError: If the file does not exist.
        json.JSONDecodeError: If the file is not valid JSON.
    """
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
    return data


def parse_build_config(
    data: dict[str, Any],
    overrides: dict[str, Any] | None = None,
) -> BuildConfig:
    """Validate template data, applying CLI overrides on top.

    Args:
        data: Dictionary containing template data.
        overrides: Values that replace keys from the template (None values
            are ignored).

    Returns:
        Validated BuildConfig instance.

    Raises:
        pydantic.ValidationError: If data does not match schema.
    """
    merged = dict(data)
    if overrides:
        merged.update({k: v for k, v in overrides.items() if v is not None})
    return BuildConfig.model_validate(merged)


def load_build_config(
    path: Path,
    overrides: dict[str, Any] | None = None,
) -> BuildConfig:
    """Load and validate a build template from a YAML or JSON file.

    Args:
        path: Path to the template file.
        overrides: Optional values that replace template keys.

    Returns:
        Validated BuildConfig instance.

    Raises:
        FileNotFoundError: If the file does not exist.
        pydantic.ValidationError: If data does not match schema.
        ValueError: If the content is not a mapping.
    """
    if path.suffix.lower() in YAML_SUFFIXES:
        data = load_yaml(path)
    else:
        data = load_json(path)
    return parse_build_config(data, overrides)


__all__ = [
    "load_build_config",
    "load_json",
    "load_yaml",
    "parse_build_config",
]
