"""Trigger data models.

Key classes
-----------
TriggerType        — recognised trigger variants
Trigger            — one parsed trigger string (``type`` or ``type=params``)
ReleaseParams      — decoded ``owner/repo/version`` params of a release trigger
EvaluationContext  — transient result of evaluating one trigger

Trigger strings quick-reference
-------------------------------
always                          — fires every poll cycle, never rewritten
on_demand                       — never fires while polling
release=owner/repo/version      — fires when owner/repo publishes a version
                                  greater than ``version``; rewritten to the
                                  new version after a successful run
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from tripwire.exceptions import TriggerFormatError


class TriggerType(str, Enum):
    """Category of trigger, taken from the text before ``=``."""

    ALWAYS = "always"
    ON_DEMAND = "on_demand"
    RELEASE = "release"


@dataclass(frozen=True)
class Trigger:
    """A trigger string split into its type name and parameters.

    ``raw`` is kept verbatim: the baseline rewrite replaces the exact stored
    string, so it must never be normalised.
    """

    raw: str
    type_name: str
    params: str = ""

    @classmethod
    def parse(cls, raw: str) -> "Trigger":
        type_name, _, params = raw.partition("=")
        return cls(raw=raw, type_name=type_name.strip(), params=params.strip())

    @property
    def type(self) -> TriggerType | None:
        """The recognised variant, or None for an unknown type name."""
        try:
            return TriggerType(self.type_name)
        except ValueError:
            return None


@dataclass(frozen=True)
class ReleaseParams:
    owner: str
    repo: str
    version: str

    @classmethod
    def parse(cls, trigger: Trigger) -> "ReleaseParams":
        parts = trigger.params.split("/")
        if len(parts) != 3 or not all(p.strip() for p in parts):
            raise TriggerFormatError(trigger.raw, "expected release=owner/repo/version")
        owner, repo, version = (p.strip() for p in parts)
        return cls(owner=owner, repo=repo, version=version)

    @property
    def slug(self) -> str:
        return f"{self.owner}/{self.repo}"

    def render(self, version: str) -> str:
        """Return the trigger string with *version* as the new baseline."""
        return f"{TriggerType.RELEASE.value}={self.owner}/{self.repo}/{version}"


@dataclass
class EvaluationContext:
    """Transient outcome of evaluating one trigger.

    ``environment`` holds the derived entries injected into every command of
    the run.  ``rewritten`` is the trigger string to persist once the whole
    pipeline succeeds (None when the trigger keeps no baseline).
    """

    trigger: Trigger
    fire: bool
    old_value: str | None = None
    new_value: str | None = None
    environment: dict[str, str] = field(default_factory=dict)
    rewritten: str | None = None

    @property
    def changes_baseline(self) -> bool:
        return self.fire and self.rewritten is not None and self.rewritten != self.trigger.raw
