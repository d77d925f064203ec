"""Configuration record for a nightly Flatpak build."""
from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Tuple
import os
import shlex

from core.config_loader import find_config_file, load_config_file, merge_mappings, normalize_string_list
from core.template import TemplateError, TemplateResolver


CONFIG_STEM = "nightly"
CONFIG_ENV_VAR = "NIGHTLY_CONFIG"
BRANCH_ENV_VAR = "BRANCH"


class ConfigError(ValueError):
    """Raised when the nightly configuration is missing or malformed."""


DEFAULT_APP: Dict[str, Any] = {
    "bundle": "cosmic-app-library-nightly.flatpak",
    "manifest": "build-aux/com.System76.AppLibrary.Devel.json",
    "module": "cosmic-app-library",
    "id": "com.System76.AppLibrary.Devel",
    "runtime_repo": "https://nightly.gnome.org/gnome-nightly.flatpakrepo",
}

DEFAULT_BUILDER: Dict[str, Any] = {
    "executable": "flatpak-builder",
    "state_dir": ".flatpak-builder",
    "build_dir": "flatpak_app",
    "repo": "repo",
    "elevate": ["sudo"],
}


def _require_string(section: Mapping[str, Any], key: str, *, section_name: str) -> str:
    value = section.get(key)
    if value is None:
        raise ConfigError(f"{section_name}.{key} is required")
    if not isinstance(value, str):
        raise ConfigError(f"{section_name}.{key} must be a string")
    text = value.strip()
    if not text:
        raise ConfigError(f"{section_name}.{key} cannot be empty")
    return text


def _optional_branch(value: Any) -> str | None:
    # An empty value behaves like an unset one, as with ${BRANCH:+...}
    if value is None:
        return None
    if not isinstance(value, str):
        raise ConfigError("app.branch must be a string")
    text = value.strip()
    return text or None


@dataclass(frozen=True, slots=True)
class NightlyConfig:
    bundle: str
    manifest_path: str
    flatpak_module: str
    app_id: str
    runtime_repo: str
    branch: str | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "NightlyConfig":
        return cls(
            bundle=_require_string(data, "bundle", section_name="app"),
            manifest_path=_require_string(data, "manifest", section_name="app"),
            flatpak_module=_require_string(data, "module", section_name="app"),
            app_id=_require_string(data, "id", section_name="app"),
            runtime_repo=_require_string(data, "runtime_repo", section_name="app"),
            branch=_optional_branch(data.get("branch")),
        )

    def with_branch(self, branch: str | None) -> "NightlyConfig":
        """Return a copy whose branch is overridden when ``branch`` is non-empty."""
        override = _optional_branch(branch)
        if override is None:
            return self
        return replace(self, branch=override)

    def exported_environment(self) -> Dict[str, str]:
        """Variables the manifest may consume through substitution."""
        return {
            "BUNDLE": self.bundle,
            "MANIFEST_PATH": self.manifest_path,
            "FLATPAK_MODULE": self.flatpak_module,
            "APP_ID": self.app_id,
            "RUNTIME_REPO": self.runtime_repo,
        }


@dataclass(frozen=True, slots=True)
class BuilderSettings:
    executable: str = "flatpak-builder"
    state_dir: str = ".flatpak-builder"
    build_dir: str = "flatpak_app"
    repo: str = "repo"
    elevate: Tuple[str, ...] = ("sudo",)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "BuilderSettings":
        # Only an explicit [] or "" disables elevation
        raw_elevate = data.get("elevate")
        if raw_elevate is None:
            raise ConfigError('builder.elevate is required (use [] or "" to disable elevation)')
        try:
            if isinstance(raw_elevate, str):
                elevate = shlex.split(raw_elevate)
            else:
                elevate = normalize_string_list(raw_elevate, field_name="builder.elevate")
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid builder.elevate: {exc}") from exc
        if not isinstance(raw_elevate, str) and raw_elevate and not elevate:
            raise ConfigError("builder.elevate entries cannot all be empty")
        return cls(
            executable=_require_string(data, "executable", section_name="builder"),
            state_dir=_require_string(data, "state_dir", section_name="builder"),
            build_dir=_require_string(data, "build_dir", section_name="builder"),
            repo=_require_string(data, "repo", section_name="builder"),
            elevate=tuple(elevate),
        )

    @property
    def elevated(self) -> bool:
        return bool(self.elevate)

    def without_elevation(self) -> "BuilderSettings":
        return replace(self, elevate=())


@dataclass(frozen=True, slots=True)
class LoadedConfig:
    app: NightlyConfig
    builder: BuilderSettings
    log_level: str | None = None
    source: Path | None = None


def locate_config(
    workspace: Path,
    explicit: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> Path | None:
    """Pick the configuration file: explicit path, then ``$NIGHTLY_CONFIG``, then the workspace."""
    environ = os.environ if env is None else env
    if explicit is not None:
        path = explicit if explicit.is_absolute() else workspace / explicit
        if not path.is_file():
            raise ConfigError(f"Configuration file not found: {path}")
        return path

    env_path = environ.get(CONFIG_ENV_VAR)
    if env_path:
        path = Path(env_path).expanduser()
        if not path.is_absolute():
            path = workspace / path
        if not path.is_file():
            raise ConfigError(f"Configuration file from {CONFIG_ENV_VAR} not found: {path}")
        return path

    try:
        return find_config_file(workspace, CONFIG_STEM)
    except ValueError as exc:
        raise ConfigError(str(exc)) from exc


def _resolve_templates(data: Mapping[str, Any], env: Mapping[str, str]) -> Dict[str, Any]:
    context = {
        "app": data.get("app", {}),
        "builder": data.get("builder", {}),
        "env": dict(env),
    }
    resolver = TemplateResolver(context)
    try:
        return {
            "app": resolver.resolve(dict(context["app"])),
            "builder": resolver.resolve(dict(context["builder"])),
        }
    except TemplateError as exc:
        raise ConfigError(f"Invalid configuration value: {exc}") from exc


def load_config(
    workspace: Path,
    *,
    config_path: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> LoadedConfig:
    """Build the effective configuration for one invocation.

    Built-in defaults are overlaid with the configuration file (if any),
    placeholders are resolved, and finally a non-empty ``BRANCH`` from
    ``env`` overrides the configured branch.
    """
    environ = dict(os.environ if env is None else env)
    source = locate_config(workspace, config_path, environ)

    file_data: Mapping[str, Any] = {}
    if source is not None:
        try:
            file_data = load_config_file(source)
        except (OSError, TypeError, ValueError) as exc:
            raise ConfigError(f"Failed to load '{source}': {exc}") from exc

    for section in ("global", "app", "builder"):
        if section in file_data and not isinstance(file_data[section], Mapping):
            raise ConfigError(f"[{section}] must be a table")

    merged = merge_mappings({"app": DEFAULT_APP, "builder": DEFAULT_BUILDER}, file_data)
    resolved = _resolve_templates(merged, environ)

    app = NightlyConfig.from_mapping(resolved["app"]).with_branch(environ.get(BRANCH_ENV_VAR))
    builder = BuilderSettings.from_mapping(resolved["builder"])

    global_section = file_data.get("global", {})
    log_level = global_section.get("log_level")
    return LoadedConfig(
        app=app,
        builder=builder,
        log_level=str(log_level) if log_level else None,
        source=source,
    )
