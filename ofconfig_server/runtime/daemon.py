from __future__ import annotations

import os
import sys

from ofconfig_server.core.errors import DaemonizeError


def daemonize() -> None:
    """Detach from the controlling terminal, like ``daemon(0, 0)``.

    The parent process exits with status 0 once the child exists. The child
    leads a new session, works from ``/`` and has its standard streams on
    ``/dev/null``.

    Raises:
        DaemonizeError: If forking, creating the session or redirecting the
            standard streams fails. Raised in the calling process when the
            fork itself fails.
    """

    try:
        pid = os.fork()
    except OSError as e:
        raise DaemonizeError(e) from e

    if pid > 0:
        os._exit(0)

    try:
        os.setsid()
        os.chdir("/")
        for stream in (sys.stdout, sys.stderr):
            stream.flush()
        fd = os.open(os.devnull, os.O_RDWR)
        try:
            for target in (0, 1, 2):
                os.dup2(fd, target)
        finally:
            if fd > 2:
                os.close(fd)
    except OSError as e:
        raise DaemonizeError(e) from e
