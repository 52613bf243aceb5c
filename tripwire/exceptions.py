"""tripwire — Exception hierarchy.

All exceptions raised by the daemon inherit from TripwireError so that the
poll loop can classify failures and decide whether to skip, back off, or
abort.

Hierarchy:
    TripwireError
    ├── ConfigurationError
    │   ├── ConfigurationNotFoundError
    │   ├── ConfigurationSchemaError
    │   └── InvalidSettingError
    ├── PersistenceError
    ├── LockError
    ├── TriggerError
    │   ├── TriggerFormatError
    │   ├── VersionParseError
    │   └── ReleaseLookupError
    │       └── RateLimitedError
    └── ExecutionError
        ├── CommandExecutionError
        └── DependencyResolutionError
"""

from __future__ import annotations

from typing import Any


class TripwireError(Exception):
    """Base exception for all tripwire errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context: dict[str, Any] = context or {}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context})"


# ---------------------------------------------------------------------------
# Configuration document
# ---------------------------------------------------------------------------


class ConfigurationError(TripwireError):
    """The configuration document could not be read or parsed."""


class ConfigurationNotFoundError(ConfigurationError):
    """The configuration document does not exist."""

    def __init__(self, path: str) -> None:
        super().__init__(
            f"Configuration file ({path}) not found",
            context={"path": path},
        )
        self.path = path


class ConfigurationSchemaError(ConfigurationError):
    """A project's stored shape cannot be decoded."""

    def __init__(self, project: str, reason: str) -> None:
        super().__init__(
            f"Error understanding project '{project}': {reason}",
            context={"project": project, "reason": reason},
        )
        self.project = project
        self.reason = reason


class InvalidSettingError(ConfigurationError):
    """A required setting is missing or has an unusable value."""

    def __init__(self, key: str, reason: str) -> None:
        super().__init__(
            f"Invalid setting '{key}': {reason}",
            context={"key": key, "reason": reason},
        )
        self.key = key


class PersistenceError(TripwireError):
    """Writing the configuration document failed."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(
            f"Cannot write configuration file ({path}): {reason}",
            context={"path": path, "reason": reason},
        )
        self.path = path


class LockError(TripwireError):
    """The configuration document is held by another live process."""

    def __init__(self, holder: int, reason: str) -> None:
        super().__init__(
            f"Configuration cannot be locked, held by process {holder}: {reason}",
            context={"holder": holder, "reason": reason},
        )
        self.holder = holder


# ---------------------------------------------------------------------------
# Trigger evaluation
# ---------------------------------------------------------------------------


class TriggerError(TripwireError):
    """Base for all trigger evaluation errors."""


class TriggerFormatError(TriggerError):
    """A trigger string has the right type but malformed parameters."""

    def __init__(self, trigger: str, reason: str) -> None:
        super().__init__(
            f"Malformed trigger '{trigger}': {reason}",
            context={"trigger": trigger, "reason": reason},
        )
        self.trigger = trigger


class VersionParseError(TriggerError):
    """A version identifier is not a valid semantic version."""

    def __init__(self, value: str, reason: str = "") -> None:
        super().__init__(
            f"'{value}' is not a valid semantic version" + (f": {reason}" if reason else ""),
            context={"value": value, "reason": reason},
        )
        self.value = value


class ReleaseLookupError(TriggerError):
    """The release source could not report the latest version."""

    def __init__(self, owner: str, repo: str, reason: str) -> None:
        super().__init__(
            f"Error getting latest release for {owner}/{repo}: {reason}",
            context={"owner": owner, "repo": repo, "reason": reason},
        )
        self.owner = owner
        self.repo = repo
        self.reason = reason


class RateLimitedError(ReleaseLookupError):
    """The release source refused the request (rate limit or abuse detection)."""


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


class ExecutionError(TripwireError):
    """Base for failures while running a project's pipeline."""


class CommandExecutionError(ExecutionError):
    """A command could not be spawned or exited with a non-zero status."""

    def __init__(self, command: str, reason: str, return_code: int | None = None) -> None:
        super().__init__(
            f"Error running command {command}: {reason}",
            context={"command": command, "reason": reason, "return_code": return_code},
        )
        self.command = command
        self.return_code = return_code


class DependencyResolutionError(ExecutionError):
    """A declared dependency does not resolve to a usable project."""

    def __init__(self, project: str, dependency: str, reason: str) -> None:
        super().__init__(
            f"Project '{project}' dependency '{dependency}' cannot be resolved: {reason}",
            context={"project": project, "dependency": dependency, "reason": reason},
        )
        self.project = project
        self.dependency = dependency
