from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace
import os
import unittest
from unittest.mock import patch

from core.command_runner import (
    CommandError,
    RecordingCommandRunner,
    SubprocessCommandRunner,
    normalize_returncode,
)


class NormalizeReturncodeTests(unittest.TestCase):
    def test_plain_codes_unchanged(self) -> None:
        for code in (0, 1, 137):
            self.assertEqual(normalize_returncode(code), code)

    def test_signal_codes_follow_shell_convention(self) -> None:
        self.assertEqual(normalize_returncode(-9), 137)
        self.assertEqual(normalize_returncode(-2), 130)


class SubprocessCommandRunnerTests(unittest.TestCase):
    @patch("core.command_runner.subprocess.run")
    def test_streaming_run_inherits_output(self, mock_run) -> None:
        mock_run.return_value = SimpleNamespace(returncode=0)
        result = SubprocessCommandRunner().run(["flatpak-builder", "--version"], stream=True, check=False)

        kwargs = mock_run.call_args.kwargs
        self.assertNotIn("capture_output", kwargs)
        self.assertIsNone(kwargs["env"])
        self.assertTrue(result.streamed)
        self.assertTrue(result.succeeded)

    @patch("core.command_runner.subprocess.run")
    def test_env_is_merged_over_os_environ(self, mock_run) -> None:
        mock_run.return_value = SimpleNamespace(returncode=0, stdout="", stderr="")
        with patch.dict(os.environ, {"PATH": "/usr/bin"}, clear=True):
            SubprocessCommandRunner().run(["true"], env={"APP_ID": "org.example.Demo"}, cwd=Path("/work"))

        kwargs = mock_run.call_args.kwargs
        self.assertEqual(kwargs["env"], {"PATH": "/usr/bin", "APP_ID": "org.example.Demo"})
        self.assertEqual(kwargs["cwd"], "/work")

    @patch("core.command_runner.subprocess.run")
    def test_signal_exit_is_normalized(self, mock_run) -> None:
        mock_run.return_value = SimpleNamespace(returncode=-9)
        result = SubprocessCommandRunner().run(["flatpak-builder"], stream=True, check=False)
        self.assertEqual(result.returncode, 137)

    @patch("core.command_runner.subprocess.run")
    def test_check_raises_command_error(self, mock_run) -> None:
        mock_run.return_value = SimpleNamespace(returncode=1, stdout="out", stderr="boom")
        with self.assertRaises(CommandError) as ctx:
            SubprocessCommandRunner().run(["false"])
        self.assertEqual(ctx.exception.result.returncode, 1)
        self.assertIn("boom", str(ctx.exception))

    @patch("core.command_runner.subprocess.run")
    def test_streamed_failure_message_omits_output(self, mock_run) -> None:
        mock_run.return_value = SimpleNamespace(returncode=2)
        with self.assertRaises(CommandError) as ctx:
            SubprocessCommandRunner().run(["false"], stream=True)
        self.assertIn("already streamed", str(ctx.exception))


class RecordingCommandRunnerTests(unittest.TestCase):
    def test_records_commands(self) -> None:
        runner = RecordingCommandRunner()
        runner.run(["rm", "-rf", "--", ".flatpak-builder"], cwd=Path("/work"), note="Remove builder state")

        record = runner.commands[0]
        self.assertEqual(record.command, ["rm", "-rf", "--", ".flatpak-builder"])
        self.assertEqual(record.cwd, "/work")
        self.assertEqual(record.returncode, 0)

    def test_returncode_per_executable(self) -> None:
        runner = RecordingCommandRunner(returncodes={"flatpak-builder": 1})
        failed = runner.run(["sudo", "flatpak-builder", "app"], check=False)
        cleaned = runner.run(["sudo", "rm", "-rf", "--", ".flatpak-builder"], check=False)
        self.assertEqual(failed.returncode, 1)
        self.assertEqual(cleaned.returncode, 0)

    def test_check_applies_to_recorded_failures(self) -> None:
        runner = RecordingCommandRunner(default_returncode=3)
        with self.assertRaises(CommandError):
            runner.run(["flatpak-builder"])

    def test_iter_formatted(self) -> None:
        runner = RecordingCommandRunner()
        runner.run(["flatpak-builder", "--repo=repo", "my app.json"], note="Build")
        lines = list(runner.iter_formatted(workspace=Path("/work")))
        self.assertEqual(lines, ["[dry-run] Build (cwd=/work) flatpak-builder --repo=repo 'my app.json'"])


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
