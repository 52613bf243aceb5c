"""Orchestrator — the poll loop.

Per trigger the loop walks this state machine::

    Idle → Evaluating(project, trigger) → Skipped
                                        → Firing → Running → Committed
                                                           → NotPersisted
                                                           → Aborted
         ← ─────────────────────────────────────────────────┘

Projects are visited in document order and triggers in declaration order.
After a full pass the loop sleeps for the configured interval.

Error policy
------------
ConfigurationSchemaError        skip every trigger of the project
RateLimitedError                sleep the back-off, continue with the next trigger
ReleaseLookupError              skip the trigger
VersionParseError / format      skip the trigger
ExecutionError                  Aborted: no baseline rewrite
PersistenceError on commit      NotPersisted: old baseline kept, the trigger re-fires
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Awaitable, Callable

from tripwire.exceptions import (
    ConfigurationSchemaError,
    ExecutionError,
    PersistenceError,
    RateLimitedError,
    ReleaseLookupError,
    TriggerError,
)
from tripwire.lock import ConfigLock
from tripwire.logging import bind_run_context, clear_run_context, get_logger
from tripwire.orchestration.executor import DependencyExecutor
from tripwire.store import ConfigurationStore
from tripwire.triggers.evaluator import TriggerEvaluator
from tripwire.triggers.models import EvaluationContext

log = get_logger(__name__)

Sleeper = Callable[[float], Awaitable[None]]


class TriggerOutcome(str, Enum):
    """Terminal state of one trigger evaluation."""

    SKIPPED = "skipped"
    COMMITTED = "committed"
    ABORTED = "aborted"
    NOT_PERSISTED = "not_persisted"
    RATE_LIMITED = "rate_limited"


class Orchestrator:
    """Evaluate every trigger of every project, forever.

    Usage::

        orchestrator = Orchestrator(store, lock, evaluator, executor, holder_id=os.getpid())
        await orchestrator.run_forever(interval=300)
    """

    def __init__(
        self,
        store: ConfigurationStore,
        lock: ConfigLock,
        evaluator: TriggerEvaluator,
        executor: DependencyExecutor,
        holder_id: int,
        rate_limit_backoff: float = 300.0,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self._store = store
        self._lock = lock
        self._evaluator = evaluator
        self._executor = executor
        self._holder_id = holder_id
        self._backoff = rate_limit_backoff
        self._sleep = sleep

    # ---------------------------------------------------------------------------
    # Loop
    # ---------------------------------------------------------------------------

    async def run_forever(self, interval: float) -> None:
        while True:
            await self.run_once()
            log.debug("sleeping", seconds=interval)
            await self._sleep(interval)

    async def run_once(self) -> dict[tuple[str, str], TriggerOutcome]:
        """One pass over all projects; returns the outcome of each trigger."""
        outcomes: dict[tuple[str, str], TriggerOutcome] = {}
        for name in self._store.project_names():
            outcomes.update(await self.check_project(name))
        return outcomes

    async def check_project(self, name: str) -> dict[tuple[str, str], TriggerOutcome]:
        outcomes: dict[tuple[str, str], TriggerOutcome] = {}
        bind_run_context(project=name)
        try:
            log.info("checking_project")
            try:
                project = self._store.get_project(name)
            except (KeyError, ConfigurationSchemaError) as exc:
                reason = exc.reason if isinstance(exc, ConfigurationSchemaError) else "not defined"
                log.error("project_not_understood", error=reason, path=self._store.location)
                log.error("project_triggers_skipped")
                return outcomes

            for raw in project.triggers:
                try:
                    outcomes[(name, raw)] = await self.process_trigger(name, raw)
                except asyncio.CancelledError:
                    raise
                except Exception:
                    log.exception("trigger_unexpected_error", trigger=raw)
                    outcomes[(name, raw)] = TriggerOutcome.ABORTED
        finally:
            clear_run_context()
        return outcomes

    # ---------------------------------------------------------------------------
    # One trigger
    # ---------------------------------------------------------------------------

    async def process_trigger(self, name: str, raw: str) -> TriggerOutcome:
        bind_run_context(project=name, trigger=raw)

        try:
            evaluation = await self._evaluator.evaluate(raw)
        except RateLimitedError as exc:
            log.error("release_source_rate_limited", error=exc.message, backoff_seconds=self._backoff)
            await self._sleep(self._backoff)
            return TriggerOutcome.RATE_LIMITED
        except ReleaseLookupError as exc:
            log.error("release_lookup_failed", error=exc.message)
            return TriggerOutcome.SKIPPED
        except TriggerError as exc:
            log.error("trigger_evaluation_failed", error=exc.message)
            return TriggerOutcome.SKIPPED

        if evaluation is None or not evaluation.fire:
            log.debug(
                "trigger_not_fired",
                old_value=evaluation.old_value if evaluation else None,
                new_value=evaluation.new_value if evaluation else None,
            )
            return TriggerOutcome.SKIPPED

        log.info("trigger_fired", old_value=evaluation.old_value, new_value=evaluation.new_value)

        # Re-read: an earlier trigger of the same project may have rewritten it.
        project = self._store.get_project(name)
        try:
            await self._executor.run(name, project, evaluation)
        except ExecutionError as exc:
            log.error("trigger_run_aborted", error=exc.message, **exc.context)
            return TriggerOutcome.ABORTED

        if evaluation.changes_baseline and not self._commit(name, evaluation):
            log.error("trigger_run_not_persisted", old_value=evaluation.old_value)
            return TriggerOutcome.NOT_PERSISTED
        log.info("trigger_run_succeeded")
        return TriggerOutcome.COMMITTED

    def _commit(self, name: str, evaluation: EvaluationContext) -> bool:
        """Persist the trigger's new baseline; False if it was not written."""
        if not self._lock.is_held_by(self._holder_id):
            log.error("baseline_not_persisted", reason="lock not held", holder=self._lock.holder)
            return False

        previous = self._store.get_project(name)
        raw = evaluation.trigger.raw
        if raw not in previous.triggers:
            log.warning("baseline_not_persisted", reason="trigger no longer configured")
            return False

        updated = previous.model_copy(
            update={"triggers": [evaluation.rewritten if t == raw else t for t in previous.triggers]}
        )
        self._store.put_project(name, updated)
        try:
            self._store.save()
        except PersistenceError as exc:
            self._store.put_project(name, previous)
            log.error("baseline_persist_failed", error=exc.message)
            return False

        log.debug("baseline_updated", rewritten=evaluation.rewritten)
        return True
