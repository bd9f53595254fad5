"""Process options and server settings.

- Command-line options and the ``OFC_VERBOSE`` default (``options``)
- YAML settings with strict ${ENV_VAR} expansion (``loader``)
"""

from __future__ import annotations

from ofconfig_server.config.loader import load_config, load_settings
from ofconfig_server.config.model import FeatureToggle, ServerSettings
from ofconfig_server.config.options import ProcessConfig, configure
from ofconfig_server.core.errors import ConfigError

__all__ = [
    "ConfigError",
    "FeatureToggle",
    "ProcessConfig",
    "ServerSettings",
    "configure",
    "load_config",
    "load_settings",
]
