"""Argument list construction for flatpak-builder and its companions."""
from __future__ import annotations

from pathlib import Path
from typing import List, Mapping, Sequence

from .config import BuilderSettings, NightlyConfig


PRE_FLAGS = ("--keep-build-dirs", "--user", "--disable-rofiles-fuse")
POST_FLAGS = ("--force-clean", "--install", "--system", "--delete-build-dirs")


class FlatpakBuilderCommand:
    """Incrementally assembles a ``flatpak-builder`` invocation.

    Sections are emitted in a fixed order regardless of the order the
    setters are called in: executable, leading flags, output directory,
    ``--repo=``, ``--default-branch=``, manifest, trailing flags.
    """

    def __init__(self, executable: str = "flatpak-builder") -> None:
        self._executable = executable
        self._flags: List[str] = []
        self._output_dir: str | None = None
        self._repo: str | None = None
        self._branch: str | None = None
        self._manifest: str | None = None
        self._post_flags: List[str] = []

    def flags(self, *flags: str) -> "FlatpakBuilderCommand":
        self._flags.extend(flags)
        return self

    def output_dir(self, path: str) -> "FlatpakBuilderCommand":
        self._output_dir = path
        return self

    def repo(self, path: str) -> "FlatpakBuilderCommand":
        self._repo = path
        return self

    def default_branch(self, branch: str | None) -> "FlatpakBuilderCommand":
        self._branch = branch or None
        return self

    def manifest(self, path: str) -> "FlatpakBuilderCommand":
        self._manifest = path
        return self

    def post_flags(self, *flags: str) -> "FlatpakBuilderCommand":
        self._post_flags.extend(flags)
        return self

    def build(self) -> List[str]:
        if not self._output_dir:
            raise ValueError("flatpak-builder needs an output directory")
        if not self._manifest:
            raise ValueError("flatpak-builder needs a manifest path")

        command = [self._executable, *self._flags, self._output_dir]
        if self._repo:
            command.append(f"--repo={self._repo}")
        if self._branch:
            command.append(f"--default-branch={self._branch}")
        command.append(self._manifest)
        command.extend(self._post_flags)
        return command


def builder_command(config: NightlyConfig, settings: BuilderSettings) -> List[str]:
    return (
        FlatpakBuilderCommand(settings.executable)
        .flags(*PRE_FLAGS)
        .output_dir(settings.build_dir)
        .repo(settings.repo)
        .default_branch(config.branch)
        .manifest(config.manifest_path)
        .post_flags(*POST_FLAGS)
        .build()
    )


def cleanup_command(settings: BuilderSettings) -> List[str]:
    # rm -f semantics: a missing directory is not an error
    return ["rm", "-rf", "--", settings.state_dir]


def bundle_command(config: NightlyConfig, settings: BuilderSettings) -> List[str]:
    command = [
        "flatpak",
        "build-bundle",
        f"--runtime-repo={config.runtime_repo}",
        settings.repo,
        config.bundle,
        config.app_id,
    ]
    if config.branch:
        command.append(config.branch)
    return command


def elevate(
    command: Sequence[str],
    settings: BuilderSettings,
    *,
    preserve: Mapping[str, str] | None = None,
) -> List[str]:
    """Prefix ``command`` with the configured privilege-elevation tool.

    Running as root is a capability the caller opts into through
    ``settings.elevate``; an empty prefix returns the command unchanged.
    ``preserve`` names variables that must survive the privilege boundary:
    ``sudo`` resets the environment, so they are listed in
    ``--preserve-env``; for any other tool they are re-exported through
    ``env NAME=value``.
    """
    command = list(command)
    if not settings.elevated:
        return command

    prefix = list(settings.elevate)
    if not preserve:
        return [*prefix, *command]

    if Path(prefix[0]).name == "sudo":
        names = ",".join(preserve)
        return [*prefix, f"--preserve-env={names}", *command]
    assignments = [f"{name}={value}" for name, value in preserve.items()]
    return [*prefix, "env", *assignments, *command]
