"""Utilities for executing external commands with optional dry-run support."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Sequence
import os
import shlex
import subprocess


def normalize_returncode(returncode: int) -> int:
    """Map :mod:`subprocess` signal codes onto the shell convention.

    ``subprocess`` reports a child killed by signal ``N`` as ``-N`` while a
    shell reports ``128 + N``. Callers propagating the code as their own exit
    status need the latter.
    """

    if returncode < 0:
        return 128 + abs(returncode)
    return returncode


@dataclass
class CommandResult:
    """Represents the outcome of an executed command."""

    command: Sequence[str]
    returncode: int
    stdout: str
    stderr: str
    streamed: bool = False

    @property
    def succeeded(self) -> bool:
        return self.returncode == 0


class CommandError(RuntimeError):
    """Raised when a checked command fails."""

    def __init__(self, result: CommandResult):
        message = f"Command failed with exit code {result.returncode}: {' '.join(map(shlex.quote, result.command))}"
        if result.streamed:
            message = f"{message}\nstdout/stderr already streamed above."
        else:
            message = (
                f"{message}\n"
                f"stdout: {result.stdout}\n"
                f"stderr: {result.stderr}"
            )
        super().__init__(message)
        self.result = result


class CommandRunner:
    """Abstract command runner interface."""

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        check: bool = True,
        note: str | None = None,
        stream: bool = False,
    ) -> CommandResult:
        raise NotImplementedError

    def format_command(self, command: Sequence[str]) -> str:
        return " ".join(shlex.quote(part) for part in command)

    def _finalize(self, result: CommandResult, *, check: bool) -> CommandResult:
        if check and result.returncode != 0:
            raise CommandError(result)
        return result


class SubprocessCommandRunner(CommandRunner):
    """Command runner that executes commands via :mod:`subprocess`.

    With ``stream=True`` the child inherits the caller's stdout and stderr so
    long running tools such as ``flatpak-builder`` print directly to the
    terminal; otherwise output is captured into the result.
    """

    @staticmethod
    def _merge_environment(env: Mapping[str, str] | None) -> Dict[str, str] | None:
        if env is None:
            return None
        merged = os.environ.copy()
        merged.update(env)
        return merged

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        check: bool = True,
        note: str | None = None,
        stream: bool = False,
    ) -> CommandResult:
        merged_env = self._merge_environment(env)
        if not stream:
            process = subprocess.run(
                list(command),
                cwd=str(cwd) if cwd else None,
                env=merged_env,
                capture_output=True,
                text=True,
                check=False,
            )
            return self._finalize(
                CommandResult(
                    command=command,
                    returncode=normalize_returncode(process.returncode),
                    stdout=process.stdout,
                    stderr=process.stderr,
                ),
                check=check,
            )

        process = subprocess.run(
            list(command),
            cwd=str(cwd) if cwd else None,
            env=merged_env,
            check=False,
        )
        return self._finalize(
            CommandResult(
                command=command,
                returncode=normalize_returncode(process.returncode),
                stdout="",
                stderr="",
                streamed=True,
            ),
            check=check,
        )


@dataclass(slots=True)
class RecordedCommand:
    command: List[str]
    cwd: str | None
    env: Dict[str, str]
    note: str | None
    stream: bool
    returncode: int = 0


@dataclass
class RecordingCommandRunner(CommandRunner):
    """Command runner that records commands instead of executing them.

    ``returncodes`` maps an executable name to the code reported back. The
    first argument whose basename is listed wins, so a command behind a
    ``sudo`` prefix is still matched. Anything else reports
    ``default_returncode``.
    """

    default_returncode: int = 0
    returncodes: Dict[str, int] = field(default_factory=dict)
    commands: List[RecordedCommand] = field(default_factory=list)

    def _returncode_for(self, command: Sequence[str]) -> int:
        for part in command:
            name = Path(part).name
            if name in self.returncodes:
                return self.returncodes[name]
        return self.default_returncode

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        check: bool = True,
        note: str | None = None,
        stream: bool = False,
    ) -> CommandResult:
        returncode = normalize_returncode(self._returncode_for(command))
        self.commands.append(
            RecordedCommand(
                command=list(command),
                cwd=str(cwd) if cwd else None,
                env=dict(env) if env else {},
                note=note,
                stream=stream,
                returncode=returncode,
            )
        )
        return self._finalize(
            CommandResult(command=command, returncode=returncode, stdout="", stderr="", streamed=stream),
            check=check,
        )

    def iter_formatted(self, *, workspace: Path | None = None) -> Iterable[str]:
        default_cwd = str(workspace) if workspace else None
        for record in self.commands:
            cmd = self.format_command(record.command)
            cwd = record.cwd or default_cwd
            parts: List[str] = ["[dry-run]"]
            if record.note:
                parts.append(record.note)
            if cwd:
                parts.append(f"(cwd={cwd})")
            parts.append(cmd)
            yield " ".join(parts)


__all__ = [
    "CommandError",
    "CommandResult",
    "CommandRunner",
    "RecordedCommand",
    "RecordingCommandRunner",
    "SubprocessCommandRunner",
    "normalize_returncode",
]
