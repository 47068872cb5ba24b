"""Validation harness for queue-driven autoscaling."""

__version__ = "0.1.0"
