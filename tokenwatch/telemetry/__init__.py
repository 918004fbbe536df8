"""
TokenWatch - Telemetry

Structured logging setup and the engine observer interface.
"""

from tokenwatch.telemetry.logging import setup_logging
from tokenwatch.telemetry.observer import EngineObserver, StructlogObserver, default_observer

__all__ = ["EngineObserver", "StructlogObserver", "default_observer", "setup_logging"]
