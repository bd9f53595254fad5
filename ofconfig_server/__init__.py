"""OF-CONFIG server process supervisor.

This package hosts the daemon entrypoint (options, settings, signal handling
and the ordered datastore bring-up) plus the engine capability interface it
drives.
"""

from __future__ import annotations

__all__ = [
    "__version__",
]

__version__ = "0.1.0"
