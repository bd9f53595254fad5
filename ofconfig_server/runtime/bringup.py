"""Ordered datastore bring-up.

Each step runs only if every earlier step succeeded. Resources are pushed on a
:class:`ResourceStack` as soon as they are acquired, so whatever the outcome
the lifecycle can release them in reverse acquisition order.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

from ofconfig_server.config.model import ServerSettings
from ofconfig_server.core.errors import EngineError
from ofconfig_server.engine.base import CallbackTable, DatastoreKind, Engine
from ofconfig_server.observability.context import add_error


logger = logging.getLogger(__name__)


class ResourceStack:
    """Acquired resources, each with the action that releases it."""

    def __init__(self) -> None:
        self._entries: list[tuple[str, Callable[[], Any]]] = []

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def names(self) -> list[str]:
        return [name for name, _ in self._entries]

    def push(self, name: str, release: Callable[[], Any]) -> None:
        self._entries.append((name, release))

    def unwind(self) -> None:
        """Release everything, newest first.

        A failing release is logged and does not stop the remaining ones.
        """

        while self._entries:
            name, release = self._entries.pop()
            try:
                release()
            except Exception:  # noqa: BLE001
                logger.exception("release_failed", extra={"resource": name})
            else:
                logger.debug("released", extra={"resource": name})


@dataclass(frozen=True, slots=True)
class BringupStep:
    name: str
    error_message: str
    action: Callable[[], None]


class DatastoreBringup:
    """Acquires and initializes the server datastore on an engine.

    Steps, in order: register extra models, create the datastore, bind its
    backing file, re-register extra models, enable features, initialize the
    datastore, consolidate models, device-initialize the datastore.
    """

    def __init__(self, engine: Engine, settings: ServerSettings, resources: ResourceStack) -> None:
        self._engine = engine
        self._settings = settings
        self._resources = resources
        self.datastore: object | None = None
        self.datastore_id = -1

    def steps(self) -> list[BringupStep]:
        label = self._settings.callback_table
        return [
            BringupStep("add_models", "Registering data models failed.", self._add_models),
            BringupStep("new_datastore", f"Creating {label} datastore failed.", self._new_datastore),
            BringupStep("set_backing_path", f"Binding {label} datastore file failed.", self._set_backing_path),
            BringupStep("readd_models", "Registering data models failed.", self._add_models),
            BringupStep("enable_features", "Enabling data model features failed.", self._enable_features),
            BringupStep("init_datastore", f"Initiating {label} datastore failed.", self._init_datastore),
            BringupStep("consolidate", "Consolidating data models failed.", self._consolidate),
            BringupStep("device_init", f"Initiating {label} module failed.", self._device_init),
        ]

    def run(self) -> bool:
        """Run the steps in order; stop at the first failure and return False."""

        for step in self.steps():
            try:
                step.action()
            except EngineError as e:
                self._report(step, e, code=e.code)
                return False
            except Exception as e:  # noqa: BLE001
                logger.exception("bringup_step_crashed", extra={"step": step.name})
                self._report(step, e, code=None)
                return False
            logger.debug("bringup_step_done", extra={"step": step.name})
        return True

    def _report(self, step: BringupStep, exc: Exception, *, code: int | None) -> None:
        add_error(step.error_message)
        logger.error(
            step.error_message,
            extra={"step": step.name, "error": str(exc), "error_code": code},
        )

    def _add_models(self) -> None:
        for path in self._settings.extra_model_paths:
            self._engine.add_model(path)

    def _new_datastore(self) -> None:
        ds = self._engine.new_datastore(
            DatastoreKind.FILE,
            self._settings.server_model_path,
            CallbackTable(name=self._settings.callback_table),
        )
        if ds is None:
            raise EngineError("engine returned no datastore")
        self.datastore = ds
        self._resources.push("datastore", lambda: self._engine.free_datastore(ds))

    def _set_backing_path(self) -> None:
        self._engine.set_backing_path(self.datastore, self._settings.backing_path)

    def _enable_features(self) -> None:
        for toggle in self._settings.features:
            self._engine.enable_feature(toggle.module, toggle.feature)

    def _init_datastore(self) -> None:
        self.datastore_id = self._engine.init_datastore(self.datastore)
        if self.datastore_id < 0:
            raise EngineError(
                f"datastore id {self.datastore_id} reported by the engine",
                code=self.datastore_id,
            )

    def _consolidate(self) -> None:
        rc = self._engine.consolidate()
        if rc != 0:
            raise EngineError("model consolidation reported failure", code=rc)

    def _device_init(self) -> None:
        rc = self._engine.device_init(self.datastore_id)
        if rc != 0:
            raise EngineError("device initialization reported failure", code=rc)
