"""Process lifecycle and main entrypoint.

This module is the executable entry for ``ofconfig-server``. It:
- parses options and loads settings
- installs the termination-signal handlers
- daemonizes and brings the datastore up on the engine
- waits for a stop request, then tears everything down
"""

from __future__ import annotations

import enum
import logging
import logging.handlers
import sys
import time
from typing import Callable, Sequence

from ofconfig_server.config.loader import load_settings
from ofconfig_server.config.model import ServerSettings
from ofconfig_server.config.options import ProcessConfig, configure
from ofconfig_server.core.errors import ConfigError, DaemonizeError
from ofconfig_server.engine.base import Engine, InitMode
from ofconfig_server.engine.local import LocalEngine
from ofconfig_server.observability.context import add_error, set_state
from ofconfig_server.observability.logging import configure_logging
from ofconfig_server.runtime.bringup import DatastoreBringup, ResourceStack
from ofconfig_server.runtime.daemon import daemonize
from ofconfig_server.runtime.shutdown import ShutdownController, default_controller, install_handlers


logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_CONFIG_ERROR = 2

ENGINE_MODE = InitMode.ALL | InitMode.MULTILAYER


class LifecycleState(str, enum.Enum):
    INIT = "INIT"
    DAEMONIZING = "DAEMONIZING"
    BRINGING_UP = "BRINGING_UP"
    STEADY_STATE = "STEADY_STATE"
    TEARING_DOWN = "TEARING_DOWN"
    DONE = "DONE"


def _enter(state: LifecycleState) -> None:
    set_state(state.value)
    logger.debug("lifecycle_state", extra={"lifecycle": state.value})


def _setup_logging(config: ProcessConfig, settings: ServerSettings, *, foreground: bool) -> None:
    configure_logging(
        config.verbosity,
        foreground=foreground,
        ident=settings.syslog_ident,
        syslog_address=settings.syslog_address,
        syslog_facility=logging.handlers.SysLogHandler.facility_names[settings.syslog_facility],
    )


def _wait_for_stop(controller: ShutdownController, interval_s: float, sleep: Callable[[float], None]) -> None:
    while not controller.is_stop_requested():
        sleep(interval_s)


def run(
    config: ProcessConfig,
    settings: ServerSettings | None = None,
    *,
    engine: Engine | None = None,
    controller: ShutdownController | None = None,
    daemonizer: Callable[[], None] = daemonize,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """Bring the server up, wait for a stop request and tear down.

    Returns the process exit status. A repeated termination signal never
    returns here: the shutdown controller ends the process directly.
    """

    settings = settings or ServerSettings()
    engine = engine if engine is not None else LocalEngine()
    controller = controller or default_controller()

    _enter(LifecycleState.INIT)
    _setup_logging(config, settings, foreground=True)

    _enter(LifecycleState.DAEMONIZING)
    if not config.run_foreground:
        try:
            daemonizer()
        except DaemonizeError as e:
            logger.error("Going to background failed (%s)", e, extra={"errno": e.cause.errno})
            return EXIT_FAILURE
        _setup_logging(config, settings, foreground=False)

    status = EXIT_SUCCESS
    resources = ResourceStack()

    _enter(LifecycleState.BRINGING_UP)
    resources.push("engine", engine.close)
    error: str | None = None
    try:
        rc = engine.init(ENGINE_MODE)
    except Exception as e:  # noqa: BLE001
        error = str(e)
        rc = -1

    if rc < 0:
        add_error("Engine initialization failed.")
        logger.error("Engine initialization failed.", extra={"error": error, "error_code": rc})
        status = EXIT_FAILURE
    elif not DatastoreBringup(engine, settings, resources).run():
        status = EXIT_FAILURE
    else:
        logger.info("OF-CONFIG server successfully initialized.")
        _enter(LifecycleState.STEADY_STATE)
        _wait_for_stop(controller, settings.poll_interval_s, sleep)
        logger.info("stop_requested")

    _enter(LifecycleState.TEARING_DOWN)
    resources.unwind()

    _enter(LifecycleState.DONE)
    return status


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entrypoint referenced by pyproject.toml.

    ``--help`` and bad options exit with status 0 before anything else runs.
    """

    try:
        config = configure(argv)
    except SystemExit as e:
        # Usage text has already been printed to stdout.
        code = e.code
        return int(code) if isinstance(code, int) else EXIT_FAILURE

    try:
        settings = load_settings(config.config_path)
    except ConfigError as e:
        sys.stderr.write(f"ConfigError: {e}\n")
        return EXIT_CONFIG_ERROR

    install_handlers(config)
    return run(config, settings, controller=default_controller())
