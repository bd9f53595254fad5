from __future__ import annotations

import logging.handlers
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, MutableMapping, Sequence

import yaml
from dotenv import load_dotenv

from ofconfig_server.config.model import FeatureToggle, ServerSettings
from ofconfig_server.core.errors import ConfigError


_ENV_PLACEHOLDER_RE = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


@dataclass(frozen=True, slots=True)
class _UnresolvedEnvRef:
    var_name: str
    key_path: str
    reason: str  # "missing" | "empty"


def _deep_merge(base: MutableMapping[str, Any], overlay: Mapping[str, Any]) -> MutableMapping[str, Any]:
    """Merge ``overlay`` into ``base``; nested mappings merge, anything else is replaced."""

    for k, v in overlay.items():
        if isinstance(v, Mapping) and isinstance(base.get(k), Mapping):
            base[k] = _deep_merge(dict(base[k]), v)
        else:
            base[k] = v
    return base


def _read_yaml(path: Path) -> Mapping[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
        data = yaml.safe_load(text) if text.strip() else {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to read YAML settings: {e}", path=str(path)) from e

    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ConfigError("Top-level YAML must be a mapping", path=str(path))
    return data


def _expand(obj: Any, key_path: str, unresolved: list[_UnresolvedEnvRef]) -> Any:
    if isinstance(obj, str):

        def repl(match: re.Match[str]) -> str:
            name = match.group(1)
            value = os.getenv(name)
            if value is None or value == "":
                reason = "missing" if value is None else "empty"
                unresolved.append(_UnresolvedEnvRef(var_name=name, key_path=key_path, reason=reason))
                return match.group(0)
            return value

        return _ENV_PLACEHOLDER_RE.sub(repl, obj)

    if isinstance(obj, Mapping):
        return {
            str(k): _expand(v, f"{key_path}.{k}" if key_path else str(k), unresolved)
            for k, v in obj.items()
        }

    if isinstance(obj, list):
        return [_expand(v, f"{key_path}[{i}]", unresolved) for i, v in enumerate(obj)]

    return obj


def load_config(
    paths: Path | Sequence[Path],
    *,
    load_dotenv_file: bool = True,
    dotenv_path: Path | None = None,
) -> dict[str, Any]:
    """Load YAML settings files with strict ${ENV_VAR} expansion.

    Args:
        paths: One or more YAML files; later files override earlier ones.
        load_dotenv_file: Whether to load a .env file before expansion.
        dotenv_path: Optional explicit .env path. Defaults to ``./.env``.

    Raises:
        ConfigError: If a file cannot be read or parsed, or a referenced
            environment variable is missing or empty.
    """

    file_list = [paths] if isinstance(paths, Path) else list(paths)
    if not file_list:
        raise ConfigError("No settings files provided")

    if load_dotenv_file:
        # Never overrides variables already set in the process environment.
        load_dotenv(dotenv_path or Path.cwd() / ".env", override=False)

    merged: dict[str, Any] = {}
    for p in file_list:
        merged = dict(_deep_merge(merged, _read_yaml(p)))

    unresolved: list[_UnresolvedEnvRef] = []
    expanded = _expand(merged, "", unresolved)
    if unresolved:
        lines = ["Unresolved environment variables in settings:"]
        for ref in unresolved:
            lines.append(f"- {ref.var_name} ({ref.reason}) at {ref.key_path or '<root>'}")
        raise ConfigError("\n".join(lines), path=",".join(str(p) for p in file_list))

    return expanded


def _section(raw: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = raw.get(key)
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError("must be a mapping", path=key)
    return value


def _text(value: Any, *, key: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ConfigError("must be a non-empty string", path=key)
    return value


def _path(value: Any, *, key: str) -> Path:
    return Path(_text(value, key=key))


def _features(raw: Any) -> tuple[FeatureToggle, ...]:
    if not isinstance(raw, Mapping):
        raise ConfigError("must map module names to feature lists", path="features")
    out: list[FeatureToggle] = []
    for module, names in raw.items():
        if not isinstance(names, list) or not all(isinstance(n, str) and n for n in names):
            raise ConfigError("must be a list of feature names", path=f"features.{module}")
        out.extend(FeatureToggle(str(module), n) for n in names)
    return tuple(out)


def _syslog_address(value: Any) -> str | tuple[str, int]:
    if not isinstance(value, str) or not value:
        raise ConfigError("must be a socket path or host:port", path="logging.syslog_address")
    if value.startswith("/"):
        return value
    host, sep, port = value.rpartition(":")
    if not sep or not host or not port.isdigit():
        raise ConfigError(f"invalid address {value!r}", path="logging.syslog_address")
    return host, int(port)


def load_settings(path: Path | None, **kwargs: Any) -> ServerSettings:
    """Build :class:`ServerSettings` from a YAML file, or defaults when ``path`` is None."""

    if path is None:
        return ServerSettings()

    raw = load_config(path, **kwargs)
    defaults = ServerSettings()

    ds = _section(raw, "datastore")
    runtime = _section(raw, "runtime")
    log = _section(raw, "logging")

    extra_raw = ds.get("extra_models")
    if extra_raw is None:
        extra_models = defaults.extra_models
    elif isinstance(extra_raw, list):
        extra_models = tuple(_path(p, key="datastore.extra_models") for p in extra_raw)
    else:
        raise ConfigError("must be a list of paths", path="datastore.extra_models")

    try:
        poll = float(runtime.get("poll_interval_s", defaults.poll_interval_s))
    except (TypeError, ValueError) as e:
        raise ConfigError("must be a number", path="runtime.poll_interval_s") from e
    if poll <= 0:
        raise ConfigError("must be > 0", path="runtime.poll_interval_s")

    facility = str(log.get("facility", defaults.syslog_facility))
    if facility not in logging.handlers.SysLogHandler.facility_names:
        raise ConfigError(f"unknown syslog facility {facility!r}", path="logging.facility")

    return ServerSettings(
        confdir=_path(raw["confdir"], key="confdir") if "confdir" in raw else defaults.confdir,
        server_model=_path(ds["model"], key="datastore.model") if "model" in ds else defaults.server_model,
        extra_models=extra_models,
        datastore_path=_path(ds["path"], key="datastore.path") if "path" in ds else defaults.datastore_path,
        callback_table=_text(ds["callbacks"], key="datastore.callbacks") if "callbacks" in ds else defaults.callback_table,
        features=_features(raw["features"]) if "features" in raw else defaults.features,
        poll_interval_s=poll,
        syslog_ident=_text(log["ident"], key="logging.ident") if "ident" in log else defaults.syslog_ident,
        syslog_address=(
            _syslog_address(log["syslog_address"]) if "syslog_address" in log else defaults.syslog_address
        ),
        syslog_facility=facility,
    )
