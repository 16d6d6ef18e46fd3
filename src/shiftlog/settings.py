"""Configuration loading and validation for shiftlog deployments.

Configuration is loaded from shiftlog.yaml and validated using Pydantic.
Each environment names the persistence backend it talks to.
"""

from __future__ import annotations

from pathlib import Path

import omegaconf as oc
import pydantic as pdt
import pydantic_settings as pdts
import yaml

import shiftlog.backends as backends
import shiftlog.errors as errors
import shiftlog.views as views
import shiftlog.vocabulary as vocabulary
from shiftlog.models import VocabularyKind


class Settings(pdts.BaseSettings, strict=True, frozen=True, extra="forbid"):
    """Base settings class with strict validation."""

    pass


class VocabularySettings(Settings):
    """Built-in vocabulary entries. They are always listed and never removable."""

    comments: list[str] = pdt.Field(default_factory=lambda: list(vocabulary.DEFAULT_COMMENTS))
    operators: list[str] = pdt.Field(default_factory=lambda: list(vocabulary.DEFAULT_OPERATORS))

    def as_defaults(self) -> dict[VocabularyKind, list[str]]:
        return {
            VocabularyKind.COMMENTS: list(self.comments),
            VocabularyKind.OPERATORS: list(self.operators),
        }


class AnalyticsSettings(Settings):
    """Dashboard aggregation knobs."""

    machine_window: int = pdt.Field(default=views.DEFAULT_MACHINE_WINDOW, gt=0)
    incident_top_n: int = pdt.Field(default=views.DEFAULT_INCIDENT_TOP_N, gt=0)
    target_meters: int = pdt.Field(default=views.DEFAULT_TARGET_METERS, gt=0)


class SafetySettings(Settings):
    """Confirmation policy for destructive commands.

    These are UI policy, not store rules: the store clears unconditionally
    when asked.
    """

    require_export_before_clear: bool = True
    delete_password: str | None = None


class EnvironmentSettings(Settings):
    """Configuration for a single environment (dev, plant, demo...)."""

    backend: backends.BackendKind


class ShiftlogSettings(Settings):
    """Root configuration loaded from shiftlog.yaml.

    Example shiftlog.yaml:
        name: planta
        default_env: dev
        page_size: 20
        vocabulary:
          comments: [Antivaho, NT, Montado]
          operators: []
        environments:
          dev:
            backend:
              kind: sqlite
              path: .shiftlog/shiftlog.db
          demo:
            backend:
              kind: memory
              channel: demo
    """

    name: str
    default_env: str
    page_size: int = pdt.Field(default=views.DEFAULT_PAGE_SIZE, gt=0)
    startup_timeout: float = pdt.Field(default=5.0, gt=0)
    vocabulary: VocabularySettings = pdt.Field(default_factory=VocabularySettings)
    analytics: AnalyticsSettings = pdt.Field(default_factory=AnalyticsSettings)
    safety: SafetySettings = pdt.Field(default_factory=SafetySettings)
    environments: dict[str, EnvironmentSettings]

    # Internal: tracks which env is currently active (set via resolve_environment)
    _active_env: str | None = pdt.PrivateAttr(default=None)
    _config_path: Path | None = pdt.PrivateAttr(default=None)

    @pdt.model_validator(mode="after")
    def validate_default_env_exists(self) -> ShiftlogSettings:
        """Ensure default_env references a defined environment."""
        if self.default_env not in self.environments:
            raise ValueError(
                f"default_env '{self.default_env}' not found in environments: "
                f"{list(self.environments.keys())}"
            )
        return self

    @property
    def active_env(self) -> str:
        """Get the currently active environment name."""
        return self._active_env or self.default_env

    @property
    def active_environment(self) -> EnvironmentSettings:
        """Get the environment config for the currently active environment."""
        return self.environments[self.active_env]

    def resolve_environment(self, env: str | None = None) -> ShiftlogSettings:
        """Set the active environment, validating it exists.

        Args:
            env: Environment name to activate. If None, uses default_env.

        Returns:
            Self, for chaining.

        Raises:
            EnvironmentNotFoundError: If env is not defined.
        """
        target = env or self.default_env
        if target not in self.environments:
            raise errors.EnvironmentNotFoundError(
                env=target,
                available=list(self.environments.keys()),
            )
        object.__setattr__(self, "_active_env", target)
        return self


def load_shiftlog_settings(
    path: Path | str = Path("shiftlog.yaml"),
    env: str | None = None,
) -> ShiftlogSettings:
    """Load and validate shiftlog configuration from a YAML file.

    Args:
        path: Path to shiftlog.yaml file.
        env: Environment to activate. If None, uses default_env from config.

    Returns:
        Validated ShiftlogSettings instance.

    Raises:
        ConfigNotFoundError: If config file doesn't exist.
        ConfigValidationError: If config fails validation.
    """
    path = Path(path)

    if not path.exists():
        raise errors.ConfigNotFoundError(str(path))

    try:
        config = oc.OmegaConf.load(path)
        config_dict = oc.OmegaConf.to_container(config, resolve=True)
        shiftlog_settings = ShiftlogSettings.model_validate(config_dict)
        object.__setattr__(shiftlog_settings, "_config_path", path)
        shiftlog_settings.resolve_environment(env)
        return shiftlog_settings
    except pdt.ValidationError as e:
        raise errors.ConfigValidationError(
            path=str(path),
            details=format_validation_errors(e),
        ) from e
    except (oc.errors.OmegaConfBaseException, yaml.YAMLError) as e:
        raise errors.ConfigValidationError(
            path=str(path),
            details=str(e),
        ) from e


def format_validation_errors(error: pdt.ValidationError) -> str:
    """Format Pydantic validation errors into readable messages."""
    messages = []
    for err in error.errors():
        loc = ".".join(str(x) for x in err["loc"])
        msg = err["msg"]
        messages.append(f"  - {loc}: {msg}")
    return "\n".join(messages)

