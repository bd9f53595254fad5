from __future__ import annotations

from contextvars import ContextVar


_state: ContextVar[str | None] = ContextVar("state", default=None)
_errors: ContextVar[list[str] | None] = ContextVar("errors", default=None)


def set_state(state: str) -> None:
    _state.set(state)


def add_error(message: str) -> None:
    errs = list(_errors.get() or [])
    errs.append(message)
    _errors.set(errs)


def reset_context() -> None:
    _state.set(None)
    _errors.set(None)


def snapshot() -> dict[str, object]:
    """Return a snapshot of the current lifecycle context for logging."""

    out: dict[str, object] = {}
    if (v := _state.get()) is not None:
        out["state"] = v
    out["errors"] = list(_errors.get() or [])
    return out
