"""File-backed engine adapter.

Implements the :class:`~ofconfig_server.engine.base.Engine` surface against
YIN model files and a datastore XML file on local disk. It keeps enough
bookkeeping to reject the same mistakes a native NETCONF datastore library
rejects (unknown models, undeclared features, unresolved imports, corrupt
backing files) but carries no protocol traffic.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path

from ofconfig_server.core.errors import EngineError
from ofconfig_server.engine.base import CallbackTable, DatastoreKind, InitMode


logger = logging.getLogger(__name__)

YIN_NS = "urn:ietf:params:xml:ns:yang:yin:1"
FILE_DS_NS = "urn:cesnet:tmc:datastores:file"

_EMPTY_FILE_DATASTORE = (
    f'<?xml version="1.0" encoding="UTF-8"?>\n'
    f'<datastores xmlns="{FILE_DS_NS}">\n'
    '  <running lock=""/>\n'
    '  <startup lock=""/>\n'
    '  <candidate modified="false" lock=""/>\n'
    "</datastores>\n"
)


@dataclass(frozen=True, slots=True)
class YinModel:
    name: str
    path: Path
    features: frozenset[str]
    imports: tuple[str, ...]


@dataclass(slots=True, eq=False)
class LocalDatastore:
    kind: DatastoreKind
    model: YinModel
    callbacks: CallbackTable
    backing_path: Path | None = None
    id: int = -1


def parse_yin(path: Path) -> YinModel:
    """Read module name, declared features and imports from a YIN file."""

    try:
        root = ET.parse(path).getroot()
    except (OSError, ET.ParseError) as e:
        raise EngineError(f"Cannot read data model {path}: {e}") from e

    if root.tag != f"{{{YIN_NS}}}module" or not root.get("name"):
        raise EngineError(f"{path} is not a YIN module")

    features = frozenset(
        el.get("name", "") for el in root.findall(f"{{{YIN_NS}}}feature") if el.get("name")
    )
    imports = tuple(el.get("module", "") for el in root.findall(f"{{{YIN_NS}}}import") if el.get("module"))
    return YinModel(name=root.get("name", ""), path=path, features=features, imports=imports)


@dataclass
class LocalEngine:
    _mode: InitMode | None = None
    _models: dict[str, YinModel] = field(default_factory=dict)
    _datastores: list[LocalDatastore] = field(default_factory=list)
    _enabled: set[tuple[str, str]] = field(default_factory=set)
    _next_id: int = 1

    @property
    def initialized(self) -> bool:
        return self._mode is not None

    @property
    def models(self) -> dict[str, YinModel]:
        return dict(self._models)

    def feature_enabled(self, module: str, feature: str) -> bool:
        return (module, feature) in self._enabled

    def _require_init(self) -> None:
        if self._mode is None:
            raise EngineError("engine is not initialized")

    def _register(self, model: YinModel) -> None:
        if model.name in self._models:
            logger.debug("model_already_registered", extra={"yang_module": model.name, "path": str(model.path)})
            return
        self._models[model.name] = model
        logger.debug("model_registered", extra={"yang_module": model.name, "path": str(model.path)})

    def init(self, mode: InitMode) -> int:
        if self._mode is not None:
            raise EngineError("engine is already initialized")
        if (mode & InitMode.MULTILAYER) and (mode & InitMode.SINGLELAYER):
            raise EngineError("MULTILAYER and SINGLELAYER are mutually exclusive")
        self._mode = mode
        logger.debug("engine_initialized", extra={"mode": int(mode)})
        return int(mode)

    def add_model(self, path: Path) -> None:
        self._require_init()
        self._register(parse_yin(path))

    def new_datastore(self, kind: DatastoreKind, model_path: Path, callbacks: CallbackTable) -> LocalDatastore:
        self._require_init()
        if not isinstance(kind, DatastoreKind):
            raise EngineError(f"unsupported datastore kind {kind!r}")
        model = parse_yin(model_path)
        self._register(model)
        ds = LocalDatastore(kind=kind, model=self._models[model.name], callbacks=callbacks)
        self._datastores.append(ds)
        return ds

    def set_backing_path(self, datastore: object, path: Path) -> None:
        ds = self._lookup(datastore)
        if ds.kind is not DatastoreKind.FILE:
            raise EngineError(f"datastore of kind {ds.kind.value!r} has no backing file")
        ds.backing_path = path

    def enable_feature(self, module: str, feature: str) -> None:
        self._require_init()
        model = self._models.get(module)
        if model is None:
            raise EngineError(f"module {module!r} is not registered")
        if feature not in model.features:
            raise EngineError(f"module {module!r} does not declare feature {feature!r}")
        self._enabled.add((module, feature))

    def init_datastore(self, datastore: object) -> int:
        ds = self._lookup(datastore)
        if ds.kind is DatastoreKind.FILE:
            if ds.backing_path is None:
                logger.error("datastore_without_backing_path", extra={"yang_module": ds.model.name})
                return -1
            if not ds.backing_path.exists():
                try:
                    ds.backing_path.parent.mkdir(parents=True, exist_ok=True)
                    ds.backing_path.write_text(_EMPTY_FILE_DATASTORE, encoding="utf-8")
                except OSError as e:
                    logger.error(
                        "datastore_file_create_failed",
                        extra={"path": str(ds.backing_path), "error": str(e)},
                    )
                    return -1
        ds.id = self._next_id
        self._next_id += 1
        return ds.id

    def consolidate(self) -> int:
        self._require_init()
        rc = 0
        for model in self._models.values():
            missing = [name for name in model.imports if name not in self._models]
            if missing:
                logger.error("unresolved_imports", extra={"yang_module": model.name, "missing": missing})
                rc = 1
        return rc

    def device_init(self, datastore_id: int) -> int:
        self._require_init()
        ds = next((d for d in self._datastores if d.id == datastore_id and d.id >= 0), None)
        if ds is None:
            raise EngineError(f"no initialized datastore with id {datastore_id}")
        if ds.backing_path is not None:
            try:
                ET.parse(ds.backing_path)
            except (OSError, ET.ParseError) as e:
                raise EngineError(f"Corrupt datastore file {ds.backing_path}: {e}") from e
        return 0

    def free_datastore(self, datastore: object) -> None:
        ds = self._lookup(datastore)
        self._datastores.remove(ds)

    def close(self) -> None:
        self._datastores.clear()
        self._models.clear()
        self._enabled.clear()
        self._mode = None
        logger.debug("engine_closed")

    def _lookup(self, datastore: object) -> LocalDatastore:
        self._require_init()
        for ds in self._datastores:
            if ds is datastore:
                return ds
        raise EngineError("unknown datastore handle")
