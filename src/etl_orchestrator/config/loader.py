"""
Configuration Loader - YAML Loading with Validation.

Loads pipeline definitions from YAML files, resolves ${VAR} and
${VAR:-default} environment references, and validates the result
using Pydantic models. The orchestrator never parses configuration
itself; it only receives the validated PipelineConfig.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml

from etl_orchestrator.config.models import OrchestratorConfig, PipelineConfig
from etl_orchestrator.domain.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

_ENV_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}")


class ConfigLoader:
    """Loads and validates pipeline configuration from YAML files."""

    def __init__(
        self,
        base_path: Optional[Path] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> None:
        """
        Initialize config loader.

        Args:
            base_path: Base path for relative config paths
            environ: Variables used for ${VAR} substitution (default: os.environ)
        """
        self._base_path = base_path or Path(".")
        self._environ = environ if environ is not None else os.environ

    def load(
        self,
        config_path: Union[str, Path],
        profile: Optional[str] = None,
    ) -> PipelineConfig:
        """
        Load a pipeline definition from a YAML file.

        Args:
            config_path: Path to YAML config file
            profile: Optional profile name to merge

        Returns:
            Validated PipelineConfig object

        Raises:
            FileNotFoundError: If config file doesn't exist
            ConfigurationError: If an environment variable is unresolved
            pydantic.ValidationError: If config is invalid
        """
        path = self._resolve_path(config_path)
        config_dict = self._load_yaml(path)

        if profile:
            profile_dict = self._load_profile(profile)
            config_dict = self._merge_configs(config_dict, profile_dict)

        config_dict = self._substitute_env(config_dict)
        config = PipelineConfig.model_validate(config_dict)
        logger.info(f"Loaded pipeline '{config.name}' with {len(config.stages)} stages from {path}")
        return config

    def load_from_dict(self, config_dict: Dict[str, Any]) -> PipelineConfig:
        """
        Load configuration from dictionary.

        Args:
            config_dict: Configuration as dictionary

        Returns:
            Validated PipelineConfig object
        """
        return PipelineConfig.model_validate(self._substitute_env(config_dict))

    def load_orchestrator_config(self, config_path: Union[str, Path]) -> OrchestratorConfig:
        """Load process-wide orchestrator settings."""
        path = self._resolve_path(config_path)
        return OrchestratorConfig.model_validate(self._substitute_env(self._load_yaml(path)))

    def _resolve_path(self, path: Union[str, Path]) -> Path:
        """Resolve config path relative to base path."""
        p = Path(path)
        if p.is_absolute():
            return p
        return self._base_path / p

    def _load_yaml(self, path: Path) -> Dict[str, Any]:
        """Load YAML file."""
        with open(path, encoding="utf-8") as f:
            return yaml.safe_load(f) or {}

    def _load_profile(self, profile: str) -> Dict[str, Any]:
        """Load profile configuration."""
        profile_path = self._base_path / "config" / "profiles" / f"{profile}.yaml"
        if not profile_path.exists():
            raise FileNotFoundError(f"Profile not found: {profile}")
        return self._load_yaml(profile_path)

    def _merge_configs(
        self,
        base: Dict[str, Any],
        overlay: Dict[str, Any],
    ) -> Dict[str, Any]:
        """Deep merge overlay into base config."""
        result = dict(base)
        for key, value in overlay.items():
            if (
                key in result
                and isinstance(result[key], dict)
                and isinstance(value, dict)
            ):
                result[key] = self._merge_configs(result[key], value)
            else:
                result[key] = value
        return result

    def _substitute_env(self, value: Any) -> Any:
        """Recursively replace ${VAR} / ${VAR:-default} in string values."""
        if isinstance(value, dict):
            return {k: self._substitute_env(v) for k, v in value.items()}
        if isinstance(value, list):
            return [self._substitute_env(v) for v in value]
        if not isinstance(value, str):
            return value

        def replace(match: re.Match) -> str:
            name, default = match.group(1), match.group(2)
            if name in self._environ:
                return self._environ[name]
            if default is not None:
                return default
            raise ConfigurationError(
                f"Environment variable not set: {name}",
                context={"variable": name},
                component="ConfigLoader",
            )

        return _ENV_PATTERN.sub(replace, value)


def load_config(
    config_path: Union[str, Path],
    profile: Optional[str] = None,
    base_path: Optional[Path] = None,
) -> PipelineConfig:
    """
    Convenience function to load a pipeline definition.

    Args:
        config_path: Path to YAML config file
        profile: Optional profile name
        base_path: Base path for resolving relative paths

    Returns:
        Validated PipelineConfig object
    """
    loader = ConfigLoader(base_path=base_path)
    return loader.load(config_path, profile)
