"""Mess booking service: booking, payment and listing availability engine."""

__version__ = "1.0.0"
