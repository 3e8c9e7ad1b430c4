"""Configuration for the script runner.

Precedence, highest first:
1. Environment variables (SCRIPTRUNNER_*)
2. Project config (.scriptrunner/config.json)
3. User profile (~/.scriptrunner/profiles/<name>.json)
4. Defaults
"""

import json
import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

from scriptrunner.core.dialect import ShellKind
from scriptrunner.core.exceptions import ConfigurationError


@dataclass
class RunnerConfig:
    """Settings for ScriptRunner and the components it owns.

    default_timeout_ms of None means foreground runs wait for completion.
    """

    default_timeout_ms: int | None = None
    readiness_timeout_s: float = 10.0
    max_retained_commands: int = 200
    default_shell: str | None = None
    session_base_name: str = "Script Runner"
    temp_dir_name: str = "script-runner"

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.default_timeout_ms is not None and self.default_timeout_ms < 1:
            raise ConfigurationError(
                f"default_timeout_ms must be >= 1, got {self.default_timeout_ms}",
                key="default_timeout_ms",
            )
        if self.readiness_timeout_s <= 0:
            raise ConfigurationError(
                f"readiness_timeout_s must be > 0, got {self.readiness_timeout_s}",
                key="readiness_timeout_s",
            )
        if self.max_retained_commands < 1:
            raise ConfigurationError(
                f"max_retained_commands must be >= 1, got {self.max_retained_commands}",
                key="max_retained_commands",
            )
        if self.default_shell is not None:
            valid = {kind.value for kind in ShellKind}
            if self.default_shell not in valid:
                raise ConfigurationError(
                    f"default_shell must be one of {sorted(valid)}, got {self.default_shell!r}",
                    key="default_shell",
                )
        if not self.session_base_name.strip():
            raise ConfigurationError("session_base_name must not be empty", key="session_base_name")
        if not self.temp_dir_name.strip():
            raise ConfigurationError("temp_dir_name must not be empty", key="temp_dir_name")

    def to_dict(self) -> dict[str, Any]:
        """Convert config to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RunnerConfig":
        """Create config from dictionary, ignoring unknown keys."""
        valid_keys = {f.name for f in cls.__dataclass_fields__.values()}
        filtered = {k: v for k, v in data.items() if k in valid_keys}
        return cls(**filtered)


def _load_json_config(path: Path, label: str) -> RunnerConfig:
    try:
        with path.open() as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in {label}: {e}", reason=str(path)) from e
    except OSError as e:
        raise ConfigurationError(f"Failed to read {label}: {e}", reason=str(path)) from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"{label} must contain a JSON object", reason=str(path))
    return RunnerConfig.from_dict(data)


def load_user_config(profile_name: str = "default") -> RunnerConfig:
    """Load user configuration from ~/.scriptrunner/profiles/<name>.json.

    Returns the default config when the profile does not exist.

    Raises:
        ConfigurationError: If the profile is unreadable or invalid
    """
    profile_path = Path.home() / ".scriptrunner" / "profiles" / f"{profile_name}.json"

    if not profile_path.exists():
        return RunnerConfig()

    return _load_json_config(profile_path, f"profile {profile_name}")


def load_project_config(project_root: Path | None = None) -> RunnerConfig | None:
    """Load project configuration from <project_root>/.scriptrunner/config.json.

    Returns:
        RunnerConfig if the file exists, None otherwise
    """
    if project_root is None:
        project_root = Path.cwd()

    config_path = project_root / ".scriptrunner" / "config.json"

    if not config_path.exists():
        return None

    return _load_json_config(config_path, "project config")


def load_env_overrides() -> dict[str, Any]:
    """Read configuration overrides from the environment.

    Supported variables:
    - SCRIPTRUNNER_TIMEOUT_MS: default foreground timeout in milliseconds
    - SCRIPTRUNNER_READINESS_TIMEOUT: seconds to wait for a new session
    - SCRIPTRUNNER_MAX_COMMANDS: completed commands retained in the registry
    - SCRIPTRUNNER_DEFAULT_SHELL: shell kind used when none is requested
    """
    overrides: dict[str, Any] = {}

    if timeout_str := os.getenv("SCRIPTRUNNER_TIMEOUT_MS"):
        try:
            overrides["default_timeout_ms"] = int(timeout_str)
        except ValueError as e:
            raise ConfigurationError(
                f"Invalid SCRIPTRUNNER_TIMEOUT_MS: {timeout_str}", key="default_timeout_ms"
            ) from e

    if readiness_str := os.getenv("SCRIPTRUNNER_READINESS_TIMEOUT"):
        try:
            overrides["readiness_timeout_s"] = float(readiness_str)
        except ValueError as e:
            raise ConfigurationError(
                f"Invalid SCRIPTRUNNER_READINESS_TIMEOUT: {readiness_str}",
                key="readiness_timeout_s",
            ) from e

    if max_commands_str := os.getenv("SCRIPTRUNNER_MAX_COMMANDS"):
        try:
            overrides["max_retained_commands"] = int(max_commands_str)
        except ValueError as e:
            raise ConfigurationError(
                f"Invalid SCRIPTRUNNER_MAX_COMMANDS: {max_commands_str}",
                key="max_retained_commands",
            ) from e

    if shell := os.getenv("SCRIPTRUNNER_DEFAULT_SHELL"):
        overrides["default_shell"] = shell.strip().lower()

    return overrides


def merge_configs(
    base: RunnerConfig,
    project: RunnerConfig | None = None,
    env_overrides: dict[str, Any] | None = None,
) -> RunnerConfig:
    """Merge configurations with precedence: env > project > base.

    Project values only override the base where they differ from the defaults.
    """
    merged = base.to_dict()
    defaults = RunnerConfig().to_dict()

    if project:
        for key, value in project.to_dict().items():
            if value != defaults.get(key):
                merged[key] = value

    if env_overrides:
        merged.update(env_overrides)

    return RunnerConfig.from_dict(merged)


def load_config(profile_name: str = "default", project_root: Path | None = None) -> RunnerConfig:
    """Load and merge all configuration sources.

    Raises:
        ConfigurationError: If any config source is invalid
    """
    base_config = load_user_config(profile_name)
    project_config = load_project_config(project_root)
    env_overrides = load_env_overrides()

    return merge_configs(base_config, project_config, env_overrides)
