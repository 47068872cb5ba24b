"""Logging helpers for CLI output routing."""

from scaleprobe.logging.formatters import StreamFormatter, StreamRoutingFilter

__all__ = ["StreamFormatter", "StreamRoutingFilter"]
