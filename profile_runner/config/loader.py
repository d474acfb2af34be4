"""Configuration loader with 3-tier parameter precedence."""

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Optional, Sequence

import yaml

from ..errors import ConfigurationError
from .defaults import (
    DefaultConfig,
    LauncherParams,
    LoggingParams,
    RecoveryActionParams,
    RecoveryParams,
    StoreParams,
    SupervisorParams,
    get_default_config,
)
from .validation import ConfigValidator

_SECTIONS = {
    "recovery": RecoveryParams,
    "launcher": LauncherParams,
    "supervisor": SupervisorParams,
    "store": StoreParams,
    "logging": LoggingParams,
    "actions": RecoveryActionParams,
}

_TUPLE_FIELDS = {("launcher", "crash_markers"), ("launcher", "worker_command")}


def render_command(template: Sequence[str], profile_id: str) -> list[str]:
    """Substitute {profile_id} placeholders in an argv template."""
    return [part.replace("{profile_id}", profile_id) for part in template]


@dataclass(frozen=True)
class ConfigLoader:
    """Manages configuration loading with 3-tier precedence."""

    config_dir: Path
    defaults: DefaultConfig

    @classmethod
    def create(cls, config_dir: Optional[Path] = None) -> "ConfigLoader":
        """Create a ConfigLoader instance; defaults to ./config under the working directory."""
        if config_dir is None:
            config_dir = Path.cwd() / "config"

        return cls(
            config_dir=Path(config_dir),
            defaults=get_default_config(),
        )

    def _read_yaml(self, filename: str) -> dict[str, Any]:
        path = self.config_dir / filename

        if not path.exists():
            return {}

        with open(path) as f:
            data = yaml.safe_load(f)

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"{path} must contain a mapping at top level")
        return data

    def load_runner_file(self) -> dict[str, Any]:
        """Load global runner settings from runner.yaml."""
        return self._read_yaml("runner.yaml")

    def load_profile_overrides(self, profile_id: str) -> dict[str, Any]:
        """Load profile-specific overrides from the profiles section."""
        profiles = self.load_runner_file().get("profiles") or {}
        return profiles.get(profile_id, {})  # type: ignore[no-any-return]

    def load_pods(self) -> dict[str, list[str]]:
        """Load pod -> profile id groups from pods.yaml."""
        pods: dict[str, list[str]] = {}
        for entry in self._read_yaml("pods.yaml").get("pods") or []:
            pods[str(entry["pod"])] = [str(p) for p in entry.get("profiles") or []]
        return pods

    def profiles_for_pod(self, pod: str) -> list[str]:
        """Profiles managed by a pod; unknown pods are a configuration error."""
        pods = self.load_pods()
        if pod not in pods:
            raise ConfigurationError(
                f"Pod {pod} not found in {self.config_dir / 'pods.yaml'}",
                context={"known_pods": sorted(pods)}
            )
        return pods[pod]

    def merge_config(
        self,
        profile_id: Optional[str] = None,
        overrides: Optional[dict[str, Any]] = None
    ) -> dict[str, Any]:
        """
        Merge configuration with 3-tier precedence.

        Priority order:
        1. Explicit overrides / per-profile section (highest priority)
        2. Global runner.yaml sections
        3. Dataclass defaults (lowest priority)
        """
        config = self._dataclass_to_dict(self.defaults)

        file_config = {
            key: value for key, value in self.load_runner_file().items()
            if key in _SECTIONS
        }
        config = self._deep_merge(config, file_config)

        if profile_id:
            config = self._deep_merge(config, self.load_profile_overrides(profile_id))

        if overrides:
            config = self._deep_merge(config, overrides)

        return config

    def load_runner_config(
        self,
        profile_id: Optional[str] = None,
        overrides: Optional[dict[str, Any]] = None
    ) -> DefaultConfig:
        """Merge, validate and build the typed configuration."""
        return self._validated(self.merge_config(profile_id, overrides))

    def profile_config(self, base: DefaultConfig, profile_id: str) -> DefaultConfig:
        """
        Layer a profile's runner.yaml overrides over an already built config.

        Returns base unchanged when the profile has no overrides.
        """
        profile_overrides = self.load_profile_overrides(profile_id)
        if not profile_overrides:
            return base
        merged = self._deep_merge(self._dataclass_to_dict(base), profile_overrides)
        return self._validated(merged)

    def _validated(self, merged: dict[str, Any]) -> DefaultConfig:
        errors = ConfigValidator.validate_config(merged)
        if errors:
            raise ConfigurationError(
                "; ".join(f"{err.field}: {err.message} (got: {err.value})" for err in errors),
                errors=errors
            )

        return self.build_config(merged)

    def worker_command(self, profile_id: str) -> list[str]:
        """Rendered worker argv for a profile after overrides."""
        config = self.load_runner_config(profile_id)
        return render_command(config.launcher.worker_command, profile_id)

    @staticmethod
    def build_config(merged: dict[str, Any]) -> DefaultConfig:
        """Build a DefaultConfig from a merged dictionary."""
        sections = {}
        for section, params_cls in _SECTIONS.items():
            known = {f.name for f in fields(params_cls)}
            values = {}
            for key, value in merged.get(section, {}).items():
                if key not in known:
                    continue
                if (section, key) in _TUPLE_FIELDS:
                    value = tuple(value)
                values[key] = value
            sections[section] = params_cls(**values)
        return DefaultConfig(**sections)

    def _dataclass_to_dict(self, obj: Any) -> dict[str, Any]:
        """Convert nested dataclasses to dictionary."""
        if hasattr(obj, '__dataclass_fields__'):
            result = {}
            for field_name in obj.__dataclass_fields__:
                value = getattr(obj, field_name)
                if hasattr(value, '__dataclass_fields__'):
                    result[field_name] = self._dataclass_to_dict(value)
                elif isinstance(value, tuple):
                    result[field_name] = list(value)
                elif isinstance(value, dict):
                    result[field_name] = dict(value)
                else:
                    result[field_name] = value
            return result
        return obj  # type: ignore[no-any-return]

    def _deep_merge(self, base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
        """Deep merge two dictionaries."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result
