"""ConfigurationStore — the YAML configuration document.

The document is the one shared mutable resource of the daemon.  It holds the
named projects, the lock record and the poll settings, and is rewritten in
full (last writer wins) whenever the lock record or a trigger baseline
changes.

Project and settings sections are kept as the raw mappings read from YAML so
that keys the daemon does not understand survive a rewrite untouched; typed
views are produced on demand through the pydantic models in
:mod:`tripwire.config`.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from tripwire import __config_version__
from tripwire.config import (
    DEFAULT_LOG_FILE,
    DEFAULT_SLEEP_MINUTES,
    DocumentSettings,
    ProjectConfig,
)
from tripwire.exceptions import (
    ConfigurationError,
    ConfigurationNotFoundError,
    ConfigurationSchemaError,
    InvalidSettingError,
    PersistenceError,
)
from tripwire.logging import get_logger

log = get_logger(__name__)


def _describe(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err["loc"]) or "<root>"
        parts.append(f"{loc}: {err['msg']}")
    return "; ".join(parts)


class ConfigurationStore:
    """Load, query and persist the configuration document.

    Usage::

        store = ConfigurationStore(Path("tripwire.yml"))
        store.load()
        for name in store.project_names():
            project = store.get_project(name)
        store.lock_holder = os.getpid()
        store.save()
    """

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)
        self._data: dict[str, Any] = {}

    # ---------------------------------------------------------------------------
    # Document lifecycle
    # ---------------------------------------------------------------------------

    @property
    def path(self) -> Path:
        return self._path

    @property
    def location(self) -> str:
        """Where the document lives, for diagnostic messages."""
        return str(self._path)

    def exists(self) -> bool:
        return self._path.is_file()

    def load(self) -> None:
        """Read the document from disk, replacing any in-memory state."""
        if not self.exists():
            raise ConfigurationNotFoundError(self.location)
        try:
            with self._path.open(encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except OSError as exc:
            raise ConfigurationError(
                f"Error reading configuration file ({self.location}): {exc}",
                context={"path": self.location},
            ) from exc
        except yaml.YAMLError as exc:
            raise ConfigurationError(
                f"Error parsing configuration file ({self.location}): {exc}",
                context={"path": self.location},
            ) from exc

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Configuration file ({self.location}) must contain a mapping at the top level",
                context={"path": self.location},
            )
        self._data = data
        log.debug("configuration_loaded", path=self.location)

    def save(self) -> None:
        """Overwrite the document on disk with the in-memory state."""
        try:
            text = yaml.safe_dump(self._data, sort_keys=False, default_flow_style=False)
            self._path.write_text(text, encoding="utf-8")
        except (OSError, yaml.YAMLError) as exc:
            raise PersistenceError(self.location, str(exc)) from exc
        log.debug("configuration_saved", path=self.location)

    @classmethod
    def create_default(cls, path: Path | str) -> "ConfigurationStore":
        """Write a fresh document with default settings and no projects.

        Refuses to overwrite an existing file.
        """
        store = cls(path)
        if store._path.exists():
            raise ConfigurationError(
                f"Configuration file ({store.location}) already exists",
                context={"path": store.location},
            )
        store._data = {
            "version": __config_version__,
            "settings": {
                "locked": 0,
                "sleepMinutes": DEFAULT_SLEEP_MINUTES,
                "logfile": DEFAULT_LOG_FILE,
            },
            "projects": {},
        }
        store.save()
        return store

    # ---------------------------------------------------------------------------
    # Settings
    # ---------------------------------------------------------------------------

    def _settings_section(self) -> dict[str, Any]:
        section = self._data.get("settings")
        if section is None:
            section = self._data["settings"] = {}
        if not isinstance(section, dict):
            raise InvalidSettingError("settings", "must be a mapping")
        return section

    def settings(self) -> DocumentSettings:
        """Return the validated ``settings`` section."""
        try:
            return DocumentSettings.model_validate(self._settings_section())
        except ValidationError as exc:
            first = exc.errors()[0]
            key = str(first["loc"][0]) if first["loc"] else "settings"
            raise InvalidSettingError(f"settings.{key}", _describe(exc)) from exc

    @property
    def lock_holder(self) -> int:
        raw = self._settings_section().get("locked", 0)
        if raw is None:
            return 0
        try:
            return int(raw)
        except (TypeError, ValueError) as exc:
            raise InvalidSettingError("settings.locked", f"{raw!r} is not a process id") from exc

    @lock_holder.setter
    def lock_holder(self, holder: int) -> None:
        self._settings_section()["locked"] = int(holder)

    def sleep_interval(self) -> float:
        """Return the poll interval in seconds."""
        return self.settings().sleep_minutes * 60.0

    def logfile_path(self) -> Path | None:
        """Return the log file path, resolved against the document's directory."""
        logfile = self.settings().logfile
        if not logfile:
            return None
        p = Path(logfile).expanduser()
        if not p.is_absolute():
            p = self._path.parent / p
        return p

    # ---------------------------------------------------------------------------
    # Projects
    # ---------------------------------------------------------------------------

    def _projects_section(self) -> dict[str, Any]:
        section = self._data.get("projects")
        if section is None:
            return {}
        if not isinstance(section, dict):
            raise ConfigurationError(
                f"'projects' in {self.location} must be a mapping",
                context={"path": self.location},
            )
        return section

    def project_names(self) -> list[str]:
        """Return project names in declaration order."""
        return [str(name) for name in self._projects_section()]

    def has_project(self, name: str) -> bool:
        return name in self._projects_section()

    def get_project(self, name: str) -> ProjectConfig:
        """Decode one project.

        Raises:
            KeyError: the project is not defined.
            ConfigurationSchemaError: the stored shape cannot be decoded.
        """
        section = self._projects_section()
        if name not in section:
            raise KeyError(name)
        raw = section[name]
        if raw is None:
            return ProjectConfig()
        if not isinstance(raw, dict):
            raise ConfigurationSchemaError(name, f"expected a mapping, got {type(raw).__name__}")
        try:
            return ProjectConfig.model_validate(raw)
        except ValidationError as exc:
            raise ConfigurationSchemaError(name, _describe(exc)) from exc

    def put_project(self, name: str, project: ProjectConfig) -> None:
        """Overwrite one project's known fields in memory, keeping unknown keys."""
        projects = self._data.get("projects")
        if not isinstance(projects, dict):
            projects = self._data["projects"] = {}
        current = projects.get(name)
        updated: dict[str, Any] = dict(current) if isinstance(current, dict) else {}
        for field_name, value in project.model_dump().items():
            if value:
                updated[field_name] = list(value)
            else:
                updated.pop(field_name, None)
        projects[name] = updated
