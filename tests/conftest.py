from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Iterator

import pytest


def pytest_configure() -> None:
    # Shared fakes live next to this file.
    here = str(Path(__file__).resolve().parent)
    if here not in sys.path:
        sys.path.insert(0, here)


@pytest.fixture
def scripted_engine():  # noqa: ANN201
    from fakes import ScriptedEngine

    return ScriptedEngine()


@pytest.fixture
def confdir(tmp_path: Path) -> Path:
    from fakes import SERVER_YIN, X509_YIN

    root = tmp_path / "ofconfig"
    models = root / "ietf-netconf-server"
    models.mkdir(parents=True)
    (models / "ietf-netconf-server.yin").write_text(SERVER_YIN, encoding="utf-8")
    (models / "ietf-x509-cert-to-name.yin").write_text(X509_YIN, encoding="utf-8")
    return root


@pytest.fixture
def settings(confdir: Path):  # noqa: ANN201
    from ofconfig_server.config.model import ServerSettings

    # UDP syslog target so tests never depend on a local /dev/log socket.
    return ServerSettings(confdir=confdir, poll_interval_s=0.01, syslog_address=("127.0.0.1", 9))


@pytest.fixture(autouse=True)
def _isolated_logging() -> Iterator[None]:
    from ofconfig_server.observability import logging as obs_logging
    from ofconfig_server.observability.context import reset_context

    root = logging.getLogger()
    level = root.level
    reset_context()
    yield
    while obs_logging._installed:
        handler = obs_logging._installed.pop()
        root.removeHandler(handler)
        handler.close()
    root.setLevel(level)
    reset_context()
