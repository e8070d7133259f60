"""Build template module.

This module handles:
- Build template schema, defaults and validation
- Loading templates from YAML/JSON files
"""

from meda_builder.templates.io import load_build_config, parse_build_config
from meda_builder.templates.schema import BuildConfig, CommunicatorConfig

__all__ = [
    "BuildConfig",
    "CommunicatorConfig",
    "load_build_config",
    "parse_build_config",
]
