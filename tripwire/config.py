"""tripwire — Configuration models.

Two kinds of configuration exist:

1. The **configuration document** (``tripwire.yml`` by default) — a YAML file
   holding the named projects, the lock record and the poll settings.  It is
   read *and written* by the daemon, so its shapes are plain pydantic models
   validated on demand by :mod:`tripwire.store`.

2. **Daemon settings** — process-level options that never live in the
   document (release API endpoint, token, back-off durations).  Loaded from
   environment variables prefixed with ``TRIPWIRE_``.

Example document::

    version: "1.0"
    settings:
      locked: 0
      sleepMinutes: 5
      logfile: tripwire.log
    projects:
      build:
        commands: [make]
      deploy:
        triggers: [release=acme/widget/1.0.0]
        depends_on: [build]
        environment: [TARGET=prod]
        commands: [./deploy.sh]
        cleanup: [./rollback.sh]
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, PositiveFloat, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_CONFIG_FILE = Path("tripwire.yml")
DEFAULT_LOG_FILE = "tripwire.log"
DEFAULT_SLEEP_MINUTES = 5.0


# ---------------------------------------------------------------------------
# Document shapes
# ---------------------------------------------------------------------------


class ProjectConfig(BaseModel):
    """One named project as stored under ``projects:`` in the document."""

    model_config = ConfigDict(extra="ignore")

    triggers: list[str] = Field(default_factory=list)
    depends_on: list[str] = Field(default_factory=list)
    environment: list[str] = Field(
        default_factory=list,
        description="KEY=VALUE entries injected into every command of this project.",
    )
    commands: list[str] = Field(default_factory=list)
    cleanup: list[str] = Field(
        default_factory=list,
        description="Kill sequence, run best-effort when an active run is cancelled.",
    )

    @field_validator("triggers", "depends_on", "commands", "cleanup", mode="before")
    @classmethod
    def none_is_empty(cls, v: object) -> object:
        return [] if v is None else v

    @field_validator("environment", mode="before")
    @classmethod
    def split_environment_block(cls, v: object) -> object:
        # A YAML block scalar holds one entry per line.
        if v is None:
            return []
        if isinstance(v, str):
            return [line.strip() for line in v.splitlines() if line.strip()]
        return v

    @field_validator("environment")
    @classmethod
    def check_environment_entries(cls, v: list[str]) -> list[str]:
        for entry in v:
            key, sep, _ = entry.partition("=")
            if not sep or not key.strip():
                raise ValueError(f"environment entry {entry!r} is not KEY=VALUE")
        return v

    def environment_map(self) -> dict[str, str]:
        """Return the declared environment as a dict, later entries winning."""
        env: dict[str, str] = {}
        for entry in self.environment:
            key, _, value = entry.partition("=")
            env[key.strip()] = value
        return env


class DocumentSettings(BaseModel):
    """The ``settings:`` section of the document."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    locked: int = Field(default=0, ge=0, description="PID of the lock holder, 0 when unlocked.")
    sleep_minutes: PositiveFloat = Field(default=DEFAULT_SLEEP_MINUTES, alias="sleepMinutes")
    logfile: str | None = None

    @field_validator("locked", mode="before")
    @classmethod
    def none_is_unlocked(cls, v: object) -> object:
        return 0 if v is None else v


# ---------------------------------------------------------------------------
# Daemon settings
# ---------------------------------------------------------------------------


class DaemonSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="TRIPWIRE_",
        case_sensitive=False,
        extra="ignore",
    )

    config: Path = Field(
        default=DEFAULT_CONFIG_FILE,
        description="Path to the configuration document.",
    )
    github_api_url: str = Field(
        default="https://api.github.com",
        description="Base URL of the GitHub REST API (override for GitHub Enterprise).",
    )
    github_token: str | None = Field(
        default=None,
        description="Optional token; raises the anonymous API rate limit.",
    )
    http_timeout_seconds: Annotated[float, Field(gt=0, le=600)] = 30.0
    rate_limit_backoff_seconds: Annotated[float, Field(ge=0)] = Field(
        default=300.0,
        description="Sleep applied after the release source reports a rate limit.",
    )
    kill_grace_seconds: Annotated[float, Field(ge=0, le=300)] = Field(
        default=10.0,
        description="Seconds between SIGTERM and SIGKILL when cancelling a command.",
    )
    log_format: Literal["console", "json"] = "console"


# Module-level singleton, replaced by ``override_settings()`` in tests.
_settings: DaemonSettings | None = None


def get_settings() -> DaemonSettings:
    global _settings
    if _settings is None:
        _settings = DaemonSettings()
    return _settings


def override_settings(settings: DaemonSettings | None) -> None:
    """Replace the module-level singleton. Used in tests."""
    global _settings
    _settings = settings
