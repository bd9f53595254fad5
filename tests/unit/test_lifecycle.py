from __future__ import annotations

import errno
import signal
from pathlib import Path

import pytest

from ofconfig_server.config.model import FeatureToggle, ServerSettings
from ofconfig_server.config.options import ProcessConfig
from ofconfig_server.core.errors import DaemonizeError
from ofconfig_server.engine.local import LocalEngine
from ofconfig_server.observability.logging import Verbosity
from ofconfig_server.runtime import lifecycle
from ofconfig_server.runtime.shutdown import ShutdownController

from fakes import ScriptedEngine


FOREGROUND = ProcessConfig(run_foreground=True, verbosity=Verbosity.DEBUG)
DAEMON = ProcessConfig(run_foreground=False, verbosity=Verbosity.DEBUG)

# Engine calls of a complete bring-up with the default settings.
BRINGUP_CALLS = [
    "init",
    "add_model",
    "new_datastore",
    "set_backing_path",
    "add_model",
    "enable_feature",
    "enable_feature",
    "init_datastore",
    "consolidate",
    "device_init",
]

STEP_FAILURES = [
    ("init", 1),
    ("add_model", 1),
    ("new_datastore", 1),
    ("set_backing_path", 1),
    ("add_model", 2),
    ("enable_feature", 1),
    ("enable_feature", 2),
    ("init_datastore", 1),
    ("consolidate", 1),
    ("device_init", 1),
]


def _no_daemon() -> None:
    raise AssertionError("foreground run must not daemonize")


def _failing_sleep(_: float) -> None:
    raise AssertionError("wait loop must not be entered")


def _exit_raises(status: int) -> None:
    raise SystemExit(status)


def _nth_index(calls: list[str], name: str, occurrence: int) -> int:
    seen = 0
    for i, call in enumerate(calls):
        if call == name:
            seen += 1
            if seen == occurrence:
                return i
    raise ValueError(name)


@pytest.mark.parametrize("fail_at", STEP_FAILURES)
def test_failure_at_step_stops_bringup_and_releases(fail_at: tuple[str, int], settings: ServerSettings) -> None:
    engine = ScriptedEngine(fail_at=fail_at)

    status = lifecycle.run(
        FOREGROUND,
        settings,
        engine=engine,
        controller=ShutdownController(exit_fn=_exit_raises),
        daemonizer=_no_daemon,
        sleep=_failing_sleep,
    )

    attempted = BRINGUP_CALLS[: _nth_index(BRINGUP_CALLS, *fail_at) + 1]
    datastore_created = "new_datastore" in attempted and fail_at != ("new_datastore", 1)
    released = ["free_datastore", "close"] if datastore_created else ["close"]

    assert status == lifecycle.EXIT_FAILURE
    assert engine.calls == attempted + released


def test_step_failure_logs_step_message(settings: ServerSettings, caplog: pytest.LogCaptureFixture) -> None:
    engine = ScriptedEngine(fail_at=("init_datastore", 1))

    with caplog.at_level("DEBUG"):
        lifecycle.run(
            FOREGROUND,
            settings,
            engine=engine,
            controller=ShutdownController(exit_fn=_exit_raises),
            daemonizer=_no_daemon,
            sleep=_failing_sleep,
        )

    failures = [r for r in caplog.records if getattr(r, "step", None) == "init_datastore" and r.levelname == "ERROR"]
    assert len(failures) == 1
    assert failures[0].getMessage() == "Initiating ietf-netconf-server datastore failed."
    assert failures[0].error_code == -3


@pytest.mark.parametrize("raises", [True, False])
def test_engine_init_failure_is_logged(
    raises: bool, settings: ServerSettings, caplog: pytest.LogCaptureFixture
) -> None:
    class RejectingInit(ScriptedEngine):
        def init(self, mode: object) -> int:
            if raises:
                return super().init(mode)
            self.calls.append("init")
            return -1

    engine = RejectingInit(fail_at=("init", 1))

    with caplog.at_level("DEBUG"):
        status = lifecycle.run(
            FOREGROUND,
            settings,
            engine=engine,
            controller=ShutdownController(exit_fn=_exit_raises),
            daemonizer=_no_daemon,
            sleep=_failing_sleep,
        )

    assert status == lifecycle.EXIT_FAILURE
    assert engine.calls == ["init", "close"]
    failures = [r for r in caplog.records if r.levelname == "ERROR"]
    assert [r.getMessage() for r in failures] == ["Engine initialization failed."]
    assert failures[0].error_code == -1


def test_main_installs_handlers_before_run(monkeypatch: pytest.MonkeyPatch) -> None:
    order: list[str] = []

    monkeypatch.setattr(lifecycle, "install_handlers", lambda config: order.append("install_handlers"))

    def fake_run(config: ProcessConfig, settings: ServerSettings, *, controller: ShutdownController) -> int:
        order.append("run")
        assert controller is lifecycle.default_controller()
        assert config.run_foreground is True
        return lifecycle.EXIT_SUCCESS

    monkeypatch.setattr(lifecycle, "run", fake_run)

    assert lifecycle.main(["-f"]) == lifecycle.EXIT_SUCCESS
    assert order == ["install_handlers", "run"]


def test_stop_signal_ends_wait_loop_and_tears_down(settings: ServerSettings, scripted_engine: ScriptedEngine) -> None:
    ctl = ShutdownController(exit_fn=_exit_raises)
    sleeps: list[float] = []

    def sleep(interval: float) -> None:
        sleeps.append(interval)
        if len(sleeps) == 3:
            ctl.handle_signal(signal.SIGTERM)

    status = lifecycle.run(
        FOREGROUND,
        settings,
        engine=scripted_engine,
        controller=ctl,
        daemonizer=_no_daemon,
        sleep=sleep,
    )

    assert status == lifecycle.EXIT_SUCCESS
    assert sleeps == [settings.poll_interval_s] * 3
    assert scripted_engine.calls == BRINGUP_CALLS + ["free_datastore", "close"]


def test_repeated_signal_exits_without_teardown(settings: ServerSettings, scripted_engine: ScriptedEngine) -> None:
    ctl = ShutdownController(exit_fn=_exit_raises)

    def sleep(_: float) -> None:
        ctl.handle_signal(signal.SIGINT)
        ctl.handle_signal(signal.SIGTERM)

    with pytest.raises(SystemExit) as ei:
        lifecycle.run(
            FOREGROUND,
            settings,
            engine=scripted_engine,
            controller=ctl,
            daemonizer=_no_daemon,
            sleep=sleep,
        )

    assert ei.value.code == 1
    assert "close" not in scripted_engine.calls
    assert "free_datastore" not in scripted_engine.calls


def test_daemonize_failure_makes_no_engine_calls(settings: ServerSettings, scripted_engine: ScriptedEngine) -> None:
    def broken_daemon() -> None:
        raise DaemonizeError(OSError(errno.EAGAIN, "Resource temporarily unavailable"))

    status = lifecycle.run(
        DAEMON,
        settings,
        engine=scripted_engine,
        controller=ShutdownController(exit_fn=_exit_raises),
        daemonizer=broken_daemon,
        sleep=_failing_sleep,
    )

    assert status == lifecycle.EXIT_FAILURE
    assert scripted_engine.calls == []


def test_daemon_mode_detaches_before_engine_init(settings: ServerSettings, scripted_engine: ScriptedEngine) -> None:
    ctl = ShutdownController(exit_fn=_exit_raises)
    ctl.handle_signal(signal.SIGTERM)
    order: list[str] = []

    def daemon() -> None:
        order.append("daemonize")
        assert scripted_engine.calls == []

    status = lifecycle.run(
        DAEMON,
        settings,
        engine=scripted_engine,
        controller=ctl,
        daemonizer=daemon,
        sleep=_failing_sleep,
    )

    assert status == lifecycle.EXIT_SUCCESS
    assert order == ["daemonize"]
    assert scripted_engine.calls[0] == "init"


def test_run_against_local_engine(settings: ServerSettings) -> None:
    engine = LocalEngine()
    ctl = ShutdownController(exit_fn=_exit_raises)

    status = lifecycle.run(
        FOREGROUND,
        settings,
        engine=engine,
        controller=ctl,
        daemonizer=_no_daemon,
        sleep=lambda _: ctl.handle_signal(signal.SIGTERM),
    )

    assert status == lifecycle.EXIT_SUCCESS
    assert settings.backing_path.exists()
    assert engine.initialized is False


def test_local_engine_undeclared_feature_fails_run(confdir: Path) -> None:
    settings = ServerSettings(
        confdir=confdir,
        syslog_address=("127.0.0.1", 9),
        features=(
            FeatureToggle("ietf-netconf-server", "ssh"),
            FeatureToggle("ietf-netconf-server", "telnet"),
        ),
    )
    engine = LocalEngine()

    status = lifecycle.run(
        FOREGROUND,
        settings,
        engine=engine,
        controller=ShutdownController(exit_fn=_exit_raises),
        daemonizer=_no_daemon,
        sleep=_failing_sleep,
    )

    assert status == lifecycle.EXIT_FAILURE
    assert not settings.backing_path.exists()
    assert engine.initialized is False


def test_main_help_touches_nothing(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    def unexpected(*args: object, **kwargs: object) -> int:
        raise AssertionError("run must not be reached")

    monkeypatch.setattr(lifecycle, "run", unexpected)

    assert lifecycle.main(["-h"]) == 0
    assert lifecycle.main(["--no-such-flag"]) == 0
    assert "usage:" in capsys.readouterr().out


def test_main_reports_settings_error(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    monkeypatch.delenv("OFC_MISSING", raising=False)
    monkeypatch.chdir(tmp_path)
    bad = tmp_path / "server.yaml"
    bad.write_text("confdir: ${OFC_MISSING}\n", encoding="utf-8")

    def unexpected(*args: object, **kwargs: object) -> int:
        raise AssertionError("run must not be reached")

    monkeypatch.setattr(lifecycle, "run", unexpected)

    assert lifecycle.main(["-f", "-c", str(bad)]) == lifecycle.EXIT_CONFIG_ERROR
    assert "OFC_MISSING" in capsys.readouterr().err
