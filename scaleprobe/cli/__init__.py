"""Command line interface."""

from __future__ import annotations

from scaleprobe.cli.main import ScaleProbe, main

__all__ = ["ScaleProbe", "main"]
