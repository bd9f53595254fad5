from __future__ import annotations

from .base import CallbackTable, DatastoreKind, Engine, InitMode
from .local import LocalEngine

__all__ = ["CallbackTable", "DatastoreKind", "Engine", "InitMode", "LocalEngine"]
