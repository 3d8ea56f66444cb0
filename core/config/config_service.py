"""Typed, layered configuration loader with precedence handling."""
from __future__ import annotations

import os
import configparser
from dataclasses import dataclass, fields
from pathlib import Path
from threading import RLock
from typing import Any, Callable, Dict, Optional, Tuple

from core.config.bootstrap import bootstrap_db_path

# --------------------------------------------------------------------------- #
#  Paths & default definitions
# --------------------------------------------------------------------------- #

def _find_project_root() -> Path:
    here = Path(__file__).resolve()
    for parent in here.parents:
        if (parent / "theses").is_dir():
            return parent
    return here.parent

PROJECT_ROOT = _find_project_root()
CONFIG_DIR = PROJECT_ROOT / "core" / "config"
ENV_PREFIX = "THESES_"


_DEFAULTS: Dict[str, Dict[str, Any]] = {
    "Database": {
        "path": bootstrap_db_path().as_posix(),
    },
    "Storage": {
        "root": (PROJECT_ROOT / "storage" / "theses").as_posix(),
    },
    "Policy": {
        "directory": (PROJECT_ROOT / "theses" / "policies").as_posix(),
    },
    "Workflow": {
        "max_plagiarism_attempts": "3",
        "plagiarism_threshold": "15.0",
        "require_plagiarism_clearance": "false",
        "review_pdf_enabled": "true",
    },
    "Logging": {
        "level": "INFO",
        "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
    },
}


# --------------------------------------------------------------------------- #
#  Datamodels
# --------------------------------------------------------------------------- #

@dataclass
class DatabaseConfig:
    path: Path


@dataclass
class StorageConfig:
    root: Path


@dataclass
class PolicyConfig:
    directory: Path


@dataclass
class WorkflowConfig:
    max_plagiarism_attempts: int = 3
    plagiarism_threshold: float = 15.0
    require_plagiarism_clearance: bool = False
    review_pdf_enabled: bool = True


@dataclass
class LoggingConfig:
    level: str = "INFO"
    format: str = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


@dataclass
class AppConfig:
    database: DatabaseConfig
    storage: StorageConfig
    policy: PolicyConfig
    workflow: WorkflowConfig
    logging: LoggingConfig


# --------------------------------------------------------------------------- #
#  Helpers
# --------------------------------------------------------------------------- #

_TYPES = {"Path": Path, "str": str, "int": int, "float": float, "bool": bool}


def _read_ini(path: Path) -> Dict[str, Dict[str, Any]]:
    # no interpolation: log formats contain '%'
    cp = configparser.ConfigParser(interpolation=None)
    cp.read(path, encoding="utf-8")
    return {section: dict(cp.items(section)) for section in cp.sections()}


def _apply(target: Dict[str, Dict[str, Any]], source: Dict[str, Dict[str, Any]],
           layer: str, origin: str,
           sources: Dict[Tuple[str, str], Dict[str, str]]) -> None:
    for section, items in source.items():
        sec = target.setdefault(section, {})
        for key, value in items.items():
            sec[key] = value
            sources[(section, key)] = {"layer": layer, "source": origin}


def _cast(value: Any, typ: Any) -> Any:
    if isinstance(typ, str):
        # string annotations under postponed evaluation
        typ = _TYPES.get(typ, str)
    if typ is Path:
        return Path(str(value)).expanduser()
    if typ is bool:
        if isinstance(value, bool):
            return value
        return str(value).strip().lower() in {"1", "true", "yes", "on"}
    if typ is int:
        return int(value)
    if typ is float:
        return float(value)
    return typ(value)


def _build_dataclass(cls: type, data: Dict[str, Any]) -> Any:
    kwargs = {}
    for field in fields(cls):
        val = data.get(field.name, field.default)
        kwargs[field.name] = _cast(val, field.type)
    return cls(**kwargs)


def _env_overlays(environ: Optional[Dict[str, str]] = None) -> Dict[str, Dict[str, Any]]:
    """``THESES_<SECTION>__<KEY>`` variables, e.g. ``THESES_WORKFLOW__PLAGIARISM_THRESHOLD``."""
    result: Dict[str, Dict[str, Any]] = {}
    for env_key, value in (os.environ if environ is None else environ).items():
        if not env_key.startswith(ENV_PREFIX):
            continue
        remainder = env_key[len(ENV_PREFIX):]
        parts = remainder.split("__", 1)
        if len(parts) != 2:
            continue
        section, key = parts
        section = section.title()
        key = key.lower()
        result.setdefault(section, {})[key] = value
    return result


def _user_config_path() -> Path:
    if os.name == "nt":
        appdata = os.environ.get("APPDATA") or (Path.home() / "AppData" / "Roaming")
        return Path(appdata) / "Theses" / "user.ini"
    return Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config")) / "theses" / "user.ini"


# --------------------------------------------------------------------------- #
#  ConfigService
# --------------------------------------------------------------------------- #


class ConfigService:
    """Facade merging layered configuration with type safety.

    Precedence, lowest first: embedded defaults, ``defaults.ini``,
    environment, ``machine.ini``, ``user.ini``.
    """

    def __init__(
        self,
        config_dir: Optional[Path] = None,
        user_ini: Optional[Path] = None,
        environ: Optional[Dict[str, str]] = None,
    ) -> None:
        self._lock = RLock()
        self._config_dir = Path(config_dir) if config_dir else CONFIG_DIR
        self._user_ini = Path(user_ini) if user_ini else _user_config_path()
        self._environ = environ
        self.reload()

    @property
    def defaults_ini(self) -> Path:
        return self._config_dir / "defaults.ini"

    @property
    def machine_ini(self) -> Path:
        return self._config_dir / "machine.ini"

    # ------------------------------------------------------------------ #
    def reload(self) -> None:
        with self._lock:
            merged: Dict[str, Dict[str, Any]] = {}
            sources: Dict[Tuple[str, str], Dict[str, str]] = {}

            # Layer 0: embedded defaults
            _apply(merged, _DEFAULTS, "code", "embedded", sources)

            # Layer 1: defaults.ini
            if self.defaults_ini.exists():
                _apply(merged, _read_ini(self.defaults_ini), "defaults.ini", str(self.defaults_ini), sources)

            # Layer 2: environment variables
            _apply(merged, _env_overlays(self._environ), "env", "os.environ", sources)

            # Layer 3: machine config
            if self.machine_ini.exists():
                _apply(merged, _read_ini(self.machine_ini), "machine", str(self.machine_ini), sources)

            # Layer 4: user overrides
            if self._user_ini.exists():
                _apply(merged, _read_ini(self._user_ini), "user", str(self._user_ini), sources)

            self._merged = merged
            self._sources = sources

            self.database = _build_dataclass(DatabaseConfig, merged.get("Database", {}))
            self.storage = _build_dataclass(StorageConfig, merged.get("Storage", {}))
            self.policy = _build_dataclass(PolicyConfig, merged.get("Policy", {}))
            self.workflow = _build_dataclass(WorkflowConfig, merged.get("Workflow", {}))
            self.logging = _build_dataclass(LoggingConfig, merged.get("Logging", {}))

    # ------------------------------------------------------------------ #
    def app_config(self) -> AppConfig:
        with self._lock:
            return AppConfig(
                database=self.database,
                storage=self.storage,
                policy=self.policy,
                workflow=self.workflow,
                logging=self.logging,
            )

    def get(self, section: str, key: str, *, cast: Callable[[Any], Any] | type = str) -> Any:
        val = self._merged.get(section, {}).get(key)
        if val is None:
            return None
        if isinstance(cast, type):
            return _cast(val, cast)
        return cast(val)

    def meta_source(self, section: str, key: str) -> Dict[str, str] | None:
        return self._sources.get((section, key))
