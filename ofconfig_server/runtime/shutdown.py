"""Termination-signal handling and the process-wide stop flag.

The flag moves one way only::

    RUNNING --(1st termination signal)--> STOP_REQUESTED
    STOP_REQUESTED --(2nd termination signal)--> FORCED_EXIT, then immediate exit

It is written only from signal-handler context and read only by the wait loop
in :mod:`ofconfig_server.runtime.lifecycle`. A forced exit skips teardown.
"""

from __future__ import annotations

import contextlib
import enum
import logging
import os
import signal
from types import FrameType
from typing import Any, Callable, Iterator

from ofconfig_server.config.options import ProcessConfig
from ofconfig_server.observability.logging import flush_logging


logger = logging.getLogger(__name__)

EXIT_FAILURE = 1

TERMINATION_SIGNALS: tuple[int, ...] = tuple(
    getattr(signal, name) for name in ("SIGINT", "SIGTERM", "SIGQUIT", "SIGABRT") if hasattr(signal, name)
)


class ShutdownState(enum.IntEnum):
    RUNNING = 0
    STOP_REQUESTED = 1
    FORCED_EXIT = 2


def _signal_name(signum: int) -> str:
    try:
        return signal.Signals(signum).name
    except ValueError:
        return str(signum)


def _immediate_exit(status: int) -> None:
    flush_logging()
    os._exit(status)


@contextlib.contextmanager
def _signals_blocked() -> Iterator[None]:
    if not hasattr(signal, "pthread_sigmask"):
        yield
        return
    previous = signal.pthread_sigmask(signal.SIG_BLOCK, signal.valid_signals())
    try:
        yield
    finally:
        signal.pthread_sigmask(signal.SIG_SETMASK, previous)


class ShutdownController:
    """Owns the stop flag and the signal handler that drives it.

    ``exit_fn`` is the immediate-exit primitive used on escalation; by default
    it flushes logging and calls ``os._exit`` so no teardown code runs.
    """

    def __init__(
        self,
        *,
        exit_fn: Callable[[int], Any] = _immediate_exit,
        signals: tuple[int, ...] = TERMINATION_SIGNALS,
    ) -> None:
        self._state = ShutdownState.RUNNING
        self._exit = exit_fn
        self._signals = signals
        self._previous: dict[int, Any] = {}

    @property
    def state(self) -> ShutdownState:
        return self._state

    def is_stop_requested(self) -> bool:
        return self._state is not ShutdownState.RUNNING

    def install_handlers(self, config: ProcessConfig | None = None) -> None:
        for signum in self._signals:
            self._previous[signum] = signal.signal(signum, self.handle_signal)
        logger.debug(
            "signal_handlers_installed",
            extra={
                "signals": [_signal_name(s) for s in self._signals],
                "verbosity": int(config.verbosity) if config is not None else None,
            },
        )

    def restore_handlers(self) -> None:
        while self._previous:
            signum, handler = self._previous.popitem()
            signal.signal(signum, handler if handler is not None else signal.SIG_DFL)

    def handle_signal(self, signum: int, frame: FrameType | None = None) -> None:
        with _signals_blocked():
            self._on_signal(signum)

    def _on_signal(self, signum: int) -> None:
        name = _signal_name(signum)
        logger.info("signal_received", extra={"signal": name, "signum": signum})

        if signum not in self._signals:
            logger.error("exiting_on_signal", extra={"signal": name, "signum": signum})
            self._exit(EXIT_FAILURE)
            return

        if self._state is ShutdownState.RUNNING:
            self._state = ShutdownState.STOP_REQUESTED
            return

        self._state = ShutdownState.FORCED_EXIT
        logger.error(
            "forced_exit",
            extra={"signal": name, "reason": "termination signal repeated before shutdown finished"},
        )
        self._exit(EXIT_FAILURE)


_controller = ShutdownController()


def default_controller() -> ShutdownController:
    return _controller


def install_handlers(config: ProcessConfig) -> None:
    _controller.install_handlers(config)
