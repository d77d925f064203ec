from __future__ import annotations

from contextlib import redirect_stderr, redirect_stdout
import io
import unittest

from nightly.console import Console


class ConsoleTests(unittest.TestCase):
    def _capture(self, console: Console) -> tuple[str, str]:
        out = io.StringIO()
        err = io.StringIO()
        with redirect_stdout(out), redirect_stderr(err):
            console.info("info message")
            console.error("error message")
            console.debug("debug message")
            console.dry("dry message")
        return out.getvalue(), err.getvalue()

    def test_default_level_is_silent(self) -> None:
        out, err = self._capture(Console())
        self.assertEqual(out, "")
        self.assertEqual(err, "")

    def test_info_level(self) -> None:
        out, err = self._capture(Console(level="info"))
        self.assertIn("[INFO] info message", out)
        self.assertNotIn("debug message", out)
        self.assertIn("[ERROR] error message", err)

    def test_debug_and_dry_run(self) -> None:
        out, _ = self._capture(Console(level="debug", dry_run=True))
        self.assertIn("[DEBUG] debug message", out)
        self.assertIn("[DRY] dry message", out)

    def test_unknown_level(self) -> None:
        with self.assertRaises(ValueError):
            Console(level="verbose")


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
