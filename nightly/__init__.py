"""Nightly Flatpak build runner."""
from __future__ import annotations

from .cli import main

__all__ = ["main"]
