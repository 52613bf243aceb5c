"""TriggerEvaluator — classify a trigger string and dispatch to its handler."""

from __future__ import annotations

from tripwire.logging import get_logger
from tripwire.releases import ReleaseSource
from tripwire.triggers.handlers import HANDLER_TYPES, BaseTriggerHandler
from tripwire.triggers.models import EvaluationContext, Trigger, TriggerType

log = get_logger(__name__)


class TriggerEvaluator:
    """Evaluate trigger strings through a TriggerType → handler lookup table.

    Usage::

        evaluator = TriggerEvaluator(release_source)
        context = await evaluator.evaluate("release=acme/widget/1.0.0")
        if context is not None and context.fire:
            ...

    ``evaluate`` returns None for unknown trigger types (logged as a
    warning) and propagates the classified errors raised by handlers.
    """

    def __init__(
        self,
        release_source: ReleaseSource,
        handler_types: dict[TriggerType, type[BaseTriggerHandler]] | None = None,
    ) -> None:
        types = handler_types if handler_types is not None else HANDLER_TYPES
        self._handlers: dict[TriggerType, BaseTriggerHandler] = {
            trigger_type: cls(release_source) for trigger_type, cls in types.items()
        }

    def supports(self, trigger_type: TriggerType | None) -> bool:
        return trigger_type is not None and trigger_type in self._handlers

    async def evaluate(self, raw: str) -> EvaluationContext | None:
        trigger = Trigger.parse(raw)
        trigger_type = trigger.type
        if trigger_type is None or not self.supports(trigger_type):
            log.warning("unknown_trigger_type_ignored", trigger_type=trigger.type_name)
            return None
        return await self._handlers[trigger_type].evaluate(trigger)
