"""
Console output for the nightly build tool.

Reports progress and errors around the flatpak-builder runs at a chosen
level. It stays silent by default so the builder's streamed output is the
only diagnostics a nightly job prints, and it emits `[DRY]` notices for
commands skipped in dry-run mode.
"""
import sys


class Console:
    """Simple console output handler with configurable log level.

    Levels: none < error < info < debug
    Default: 'none' (no output, the builder's own output is all the user sees)
    """

    LEVELS = {
        "none": 0,
        "error": 1,
        "info": 2,
        "debug": 3,
    }

    def __init__(self, level: str = "none", dry_run: bool = False):
        if level not in self.LEVELS:
            choices = ", ".join(self.LEVELS)
            raise ValueError(f"Unknown log level '{level}' (expected one of: {choices})")
        self.level_name = level
        self.level = self.LEVELS[level]
        self.dry_run = dry_run

    def info(self, message: str) -> None:
        if self.level >= self.LEVELS["info"]:
            print(f"[INFO] {message}")

    def error(self, message: str) -> None:
        if self.level >= self.LEVELS["error"]:
            print(f"[ERROR] {message}", file=sys.stderr)

    def dry(self, message: str) -> None:
        if self.dry_run:
            print(f"[DRY] {message}")

    def debug(self, message: str) -> None:
        if self.level >= self.LEVELS["debug"]:
            print(f"[DEBUG] {message}")
