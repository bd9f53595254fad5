"""Daemon lifecycle: signal handling, daemonization and datastore bring-up."""

from __future__ import annotations

from ofconfig_server.runtime.lifecycle import LifecycleState, main, run
from ofconfig_server.runtime.shutdown import ShutdownController, ShutdownState

__all__ = ["LifecycleState", "ShutdownController", "ShutdownState", "main", "run"]
