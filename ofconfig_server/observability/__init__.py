from __future__ import annotations

from .context import add_error, reset_context, set_state
from .logging import Verbosity, configure_logging

__all__ = ["Verbosity", "add_error", "configure_logging", "reset_context", "set_state"]
