from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path


DEFAULT_CONFDIR = Path("/etc/ofconfig")


@dataclass(frozen=True, slots=True)
class FeatureToggle:
    module: str
    feature: str


def _default_features() -> tuple[FeatureToggle, ...]:
    return (
        FeatureToggle("ietf-netconf-server", "ssh"),
        FeatureToggle("ietf-netconf-server", "inbound-ssh"),
    )


@dataclass(frozen=True, slots=True)
class ServerSettings:
    """Paths and knobs for the datastore bring-up.

    Relative model and datastore paths are resolved against ``confdir`` by
    :meth:`resolve`.
    """

    confdir: Path = DEFAULT_CONFDIR
    server_model: Path = Path("ietf-netconf-server/ietf-netconf-server.yin")
    extra_models: tuple[Path, ...] = (Path("ietf-netconf-server/ietf-x509-cert-to-name.yin"),)
    datastore_path: Path = Path("ietf-netconf-server/datastore.xml")
    callback_table: str = "ietf-netconf-server"
    features: tuple[FeatureToggle, ...] = field(default_factory=_default_features)
    poll_interval_s: float = 1.0
    syslog_ident: str = "ofconfig-server"
    syslog_address: str | tuple[str, int] = "/dev/log"
    syslog_facility: str = "daemon"

    def resolve(self, path: Path) -> Path:
        return path if path.is_absolute() else self.confdir / path

    @property
    def server_model_path(self) -> Path:
        return self.resolve(self.server_model)

    @property
    def extra_model_paths(self) -> tuple[Path, ...]:
        return tuple(self.resolve(p) for p in self.extra_models)

    @property
    def backing_path(self) -> Path:
        return self.resolve(self.datastore_path)
