from __future__ import annotations


class OfconfigError(Exception):
    """Base exception for this project."""


class ConfigError(OfconfigError):
    """Raised when the settings file is invalid or incomplete."""

    def __init__(self, message: str, *, path: str | None = None):
        super().__init__(f"{path}: {message}" if path else message)
        self.path = path


class EngineError(OfconfigError):
    """Raised by an engine adapter when a datastore operation fails."""

    def __init__(self, message: str, *, code: int | None = None):
        super().__init__(message)
        self.code = code


class DaemonizeError(OfconfigError):
    """Raised when the process cannot detach from its terminal."""

    def __init__(self, cause: OSError):
        super().__init__(cause.strerror or str(cause))
        self.cause = cause
