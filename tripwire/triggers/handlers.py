"""Trigger handlers — one evaluation strategy per TriggerType.

A handler turns a parsed :class:`Trigger` into an :class:`EvaluationContext`.
Handlers raise classified :mod:`tripwire.exceptions` errors and never decide
what the loop does about them; that policy lives in the orchestrator.

Adding a trigger type means adding a TriggerType member, a handler subclass,
and an entry in :data:`HANDLER_TYPES`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from tripwire.logging import get_logger
from tripwire.releases import ReleaseSource
from tripwire.triggers.models import EvaluationContext, ReleaseParams, Trigger, TriggerType
from tripwire.triggers.versions import parse_version

log = get_logger(__name__)


class BaseTriggerHandler(ABC):
    """Abstract base for all trigger handlers."""

    trigger_type: TriggerType

    def __init__(self, release_source: ReleaseSource) -> None:
        self._releases = release_source

    @abstractmethod
    async def evaluate(self, trigger: Trigger) -> EvaluationContext:
        """Decide whether *trigger* fires this cycle."""


class AlwaysHandler(BaseTriggerHandler):
    trigger_type = TriggerType.ALWAYS

    async def evaluate(self, trigger: Trigger) -> EvaluationContext:
        return EvaluationContext(trigger=trigger, fire=True)


class OnDemandHandler(BaseTriggerHandler):
    """Never fires while polling; the project only runs as someone's dependency."""

    trigger_type = TriggerType.ON_DEMAND

    async def evaluate(self, trigger: Trigger) -> EvaluationContext:
        log.debug("on_demand_trigger_ignored")
        return EvaluationContext(trigger=trigger, fire=False)


class ReleaseHandler(BaseTriggerHandler):
    """Fire when the upstream repository publishes a newer semantic version."""

    trigger_type = TriggerType.RELEASE

    async def evaluate(self, trigger: Trigger) -> EvaluationContext:
        params = ReleaseParams.parse(trigger)
        old = parse_version(params.version)

        log.debug("fetching_latest_release", repository=params.slug)
        new_value = await self._releases.latest_version(params.owner, params.repo)
        new = parse_version(new_value)
        fire = new > old

        context = EvaluationContext(
            trigger=trigger,
            fire=fire,
            old_value=params.version,
            new_value=new_value,
        )
        if fire:
            log.debug("newer_release_found", old_value=params.version, new_value=new_value)
            context.environment = {
                "VERSION": new_value,
                "TAG_NAME": new_value,
                "PREVIOUS_VERSION": params.version,
                "RELEASE_OWNER": params.owner,
                "RELEASE_REPO": params.repo,
            }
            context.rewritten = params.render(new_value)
        return context


HANDLER_TYPES: dict[TriggerType, type[BaseTriggerHandler]] = {
    TriggerType.ALWAYS: AlwaysHandler,
    TriggerType.ON_DEMAND: OnDemandHandler,
    TriggerType.RELEASE: ReleaseHandler,
}
