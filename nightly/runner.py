"""Planning and execution of a nightly Flatpak build."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Sequence
import json

from core.command_runner import CommandResult, CommandRunner

from .command import builder_command, bundle_command, cleanup_command, elevate
from .config import BuilderSettings, NightlyConfig
from .console import Console


class StepKind(str, Enum):
    CLEANUP = "cleanup"
    BUILD = "build"
    BUNDLE = "bundle"


@dataclass(slots=True)
class BuildStep:
    kind: StepKind
    description: str
    command: Sequence[str]
    env: Dict[str, str] = field(default_factory=dict)


@dataclass(slots=True)
class BuildPlan:
    config: NightlyConfig
    settings: BuilderSettings
    workspace: Path
    cleanup: BuildStep
    build: BuildStep
    bundle: BuildStep | None = None

    @property
    def steps(self) -> List[BuildStep]:
        """Steps in execution order; the cleanup step runs on both ends."""
        ordered = [self.cleanup, self.build]
        if self.bundle is not None:
            ordered.append(self.bundle)
        ordered.append(self.cleanup)
        return ordered


@dataclass(slots=True)
class BuildOutcome:
    returncode: int
    results: List[CommandResult] = field(default_factory=list)


class NightlyBuild:
    """Runs cleanup, flatpak-builder, an optional bundle export, and cleanup again.

    The trailing cleanup runs from a ``finally`` block, so it happens on
    success, on failure and when the builder raises. Cleanup failures are
    never fatal. The exit code of the last build-related command is the
    outcome; nothing is retried.
    """

    def __init__(
        self,
        *,
        config: NightlyConfig,
        settings: BuilderSettings,
        command_runner: CommandRunner,
        console: Console,
        workspace: Path,
        export_bundle: bool = False,
    ) -> None:
        self._config = config
        self._settings = settings
        self._command_runner = command_runner
        self._console = console
        self._workspace = workspace
        self._export_bundle = export_bundle

    def plan(self) -> BuildPlan:
        exported = self._config.exported_environment()
        cleanup = BuildStep(
            kind=StepKind.CLEANUP,
            description=f"Remove builder state {self._settings.state_dir}",
            command=elevate(cleanup_command(self._settings), self._settings),
        )
        build = BuildStep(
            kind=StepKind.BUILD,
            description=f"Build and install {self._config.app_id}",
            command=elevate(builder_command(self._config, self._settings), self._settings, preserve=exported),
            env=exported,
        )
        bundle = None
        if self._export_bundle:
            bundle = BuildStep(
                kind=StepKind.BUNDLE,
                description=f"Export bundle {self._config.bundle}",
                command=elevate(bundle_command(self._config, self._settings), self._settings, preserve=exported),
                env=exported,
            )
        return BuildPlan(
            config=self._config,
            settings=self._settings,
            workspace=self._workspace,
            cleanup=cleanup,
            build=build,
            bundle=bundle,
        )

    def run(self) -> int:
        return self.execute(self.plan()).returncode

    def execute(self, plan: BuildPlan) -> BuildOutcome:
        outcome = BuildOutcome(returncode=0)
        self._remove_state(plan.cleanup, outcome)
        try:
            result = self._invoke(plan.build)
            outcome.results.append(result)
            outcome.returncode = result.returncode
            if result.returncode != 0:
                self._console.error(f"flatpak-builder exited with status {result.returncode}")
            elif plan.bundle is not None:
                result = self._invoke(plan.bundle)
                outcome.results.append(result)
                outcome.returncode = result.returncode
                if result.returncode != 0:
                    self._console.error(f"Bundle export exited with status {result.returncode}")
        finally:
            self._remove_state(plan.cleanup, outcome)
        return outcome

    def _invoke(self, step: BuildStep) -> CommandResult:
        self._console.info(step.description)
        self._console.debug(f"Running: {self._command_runner.format_command(step.command)}")
        return self._command_runner.run(
            step.command,
            cwd=self._workspace,
            env=step.env,
            check=False,
            note=step.description,
            stream=True,
        )

    def _remove_state(self, step: BuildStep, outcome: BuildOutcome) -> None:
        self._console.debug(f"Running: {self._command_runner.format_command(step.command)}")
        try:
            result = self._command_runner.run(
                step.command,
                cwd=self._workspace,
                check=False,
                note=step.description,
                stream=True,
            )
        except OSError as exc:
            self._console.debug(f"Ignoring cleanup failure: {exc}")
            return
        outcome.results.append(result)
        if result.returncode != 0:
            self._console.debug(f"Ignoring cleanup exit status {result.returncode}")


def serialize_plan(plan: BuildPlan) -> str:
    data: Dict[str, Any] = {
        "app_id": plan.config.app_id,
        "branch": plan.config.branch,
        "workspace": str(plan.workspace),
        "environment": plan.config.exported_environment(),
        "steps": [
            {
                "kind": step.kind.value,
                "description": step.description,
                "command": list(step.command),
            }
            for step in plan.steps
        ],
    }
    return json.dumps(data, indent=2)
