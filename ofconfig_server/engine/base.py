from __future__ import annotations

import enum
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Mapping, Protocol


class InitMode(enum.IntFlag):
    NOTIF = 0x02
    NACM = 0x04
    MONITORING = 0x08
    WD = 0x10
    VALIDATE = 0x20
    URL = 0x40
    ALL = NOTIF | NACM | MONITORING | WD | VALIDATE | URL
    MULTILAYER = 0x100
    SINGLELAYER = 0x200


class DatastoreKind(enum.Enum):
    FILE = "file"
    EMPTY = "empty"


@dataclass(frozen=True, slots=True)
class CallbackTable:
    """Named set of transaction-apply callbacks handed to a datastore.

    The supervisor never calls these; they belong to the engine.
    """

    name: str
    callbacks: Mapping[str, Callable[..., Any]] = field(default_factory=dict)


class Engine(Protocol):
    """Capability surface the supervisor drives during bring-up and teardown.

    Failing operations raise :class:`~ofconfig_server.core.errors.EngineError`;
    ``init_datastore`` may also report failure with a negative id, and
    ``consolidate``/``device_init`` with a non-zero code.
    """

    def init(self, mode: InitMode) -> int: ...

    def add_model(self, path: Path) -> None: ...

    def new_datastore(self, kind: DatastoreKind, model_path: Path, callbacks: CallbackTable) -> object: ...

    def set_backing_path(self, datastore: object, path: Path) -> None: ...

    def enable_feature(self, module: str, feature: str) -> None: ...

    def init_datastore(self, datastore: object) -> int: ...

    def consolidate(self) -> int: ...

    def device_init(self, datastore_id: int) -> int: ...

    def free_datastore(self, datastore: object) -> None: ...

    def close(self) -> None: ...
