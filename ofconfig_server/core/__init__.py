from __future__ import annotations

from .errors import ConfigError, DaemonizeError, EngineError, OfconfigError

__all__ = ["ConfigError", "DaemonizeError", "EngineError", "OfconfigError"]
