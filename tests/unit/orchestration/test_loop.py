"""Unit tests — orchestration/loop.py (Orchestrator)."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Mapping, Sequence
from unittest.mock import patch

import pytest

from tripwire.exceptions import CommandExecutionError, PersistenceError, RateLimitedError, ReleaseLookupError
from tripwire.lock import ConfigLock
from tripwire.orchestration.context import RunContext
from tripwire.orchestration.executor import DependencyExecutor
from tripwire.orchestration.loop import Orchestrator, TriggerOutcome
from tripwire.store import ConfigurationStore
from tripwire.triggers.evaluator import TriggerEvaluator

HOLDER = 4242


class FakeSupervisor:
    def __init__(self, fail_on: str | None = None) -> None:
        self.fail_on = fail_on
        self.runs: list[tuple[str, dict[str, str]]] = []

    async def run_sequence(self, commands: Sequence[str], env: Mapping[str, str]) -> None:
        for line in commands:
            self.runs.append((line, dict(env)))
            if line == self.fail_on:
                raise CommandExecutionError(line, "exit status 2", 2)

    @property
    def commands(self) -> list[str]:
        return [line for line, _ in self.runs]


class Harness:
    def __init__(self, store: ConfigurationStore, release_source: Any, fail_on: str | None = None) -> None:
        self.store = store
        self.context = RunContext()
        self.supervisor = FakeSupervisor(fail_on)
        self.lock = ConfigLock(store, pid_alive=lambda pid: False)
        self.lock.acquire(HOLDER)
        self.sleeps: list[float] = []
        self.orchestrator = Orchestrator(
            store=store,
            lock=self.lock,
            evaluator=TriggerEvaluator(release_source),
            executor=DependencyExecutor(store, self.supervisor, self.context, process_environment={}),  # type: ignore[arg-type]
            holder_id=HOLDER,
            rate_limit_backoff=42.0,
            sleep=self._sleep,
        )

    async def _sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)


@pytest.fixture
def harness(make_store: Callable[..., ConfigurationStore], release_source: Any) -> Callable[..., Harness]:
    def _make(projects: dict[str, Any], fail_on: str | None = None) -> Harness:
        return Harness(make_store(projects), release_source, fail_on)

    return _make


@pytest.mark.unit
class TestReleaseTrigger:
    async def test_newer_release_runs_and_rewrites_baseline(
        self, harness, release_source, read_config: Callable[..., dict[str, Any]]
    ) -> None:
        release_source.releases["acme/widget"] = "1.1.0"
        h = harness({"deploy": {"triggers": ["release=acme/widget/1.0.0"], "commands": ["./deploy"], "owner": "ops"}})

        outcomes = await h.orchestrator.run_once()

        assert outcomes == {("deploy", "release=acme/widget/1.0.0"): TriggerOutcome.COMMITTED}
        assert h.supervisor.commands == ["./deploy"]
        assert h.supervisor.runs[0][1]["VERSION"] == "1.1.0"
        doc = read_config()
        assert doc["projects"]["deploy"]["triggers"] == ["release=acme/widget/1.1.0"]
        assert doc["projects"]["deploy"]["owner"] == "ops"
        assert doc["settings"]["locked"] == HOLDER

    async def test_rewritten_trigger_does_not_refire(self, harness, release_source) -> None:
        release_source.releases["acme/widget"] = "1.1.0"
        h = harness({"deploy": {"triggers": ["release=acme/widget/1.0.0"], "commands": ["./deploy"]}})

        await h.orchestrator.run_once()
        second = await h.orchestrator.run_once()

        assert second == {("deploy", "release=acme/widget/1.1.0"): TriggerOutcome.SKIPPED}
        assert h.supervisor.commands == ["./deploy"]

    async def test_same_release_skips(self, harness, release_source) -> None:
        release_source.releases["acme/widget"] = "1.0.0"
        h = harness({"deploy": {"triggers": ["release=acme/widget/1.0.0"], "commands": ["./deploy"]}})

        outcomes = await h.orchestrator.run_once()

        assert outcomes[("deploy", "release=acme/widget/1.0.0")] is TriggerOutcome.SKIPPED
        assert h.supervisor.commands == []

    async def test_failed_run_keeps_baseline(
        self, harness, release_source, read_config: Callable[..., dict[str, Any]]
    ) -> None:
        release_source.releases["acme/widget"] = "1.1.0"
        h = harness(
            {"deploy": {"triggers": ["release=acme/widget/1.0.0"], "commands": ["./deploy", "./notify"]}},
            fail_on="./deploy",
        )

        outcomes = await h.orchestrator.run_once()

        assert outcomes[("deploy", "release=acme/widget/1.0.0")] is TriggerOutcome.ABORTED
        assert h.supervisor.commands == ["./deploy"]
        assert read_config()["projects"]["deploy"]["triggers"] == ["release=acme/widget/1.0.0"]
        assert h.context.running is False

    async def test_two_release_triggers_in_one_project(
        self, harness, release_source, read_config: Callable[..., dict[str, Any]]
    ) -> None:
        release_source.releases["acme/widget"] = "1.1.0"
        release_source.releases["acme/gadget"] = "3.0.0"
        h = harness(
            {
                "deploy": {
                    "triggers": ["release=acme/widget/1.0.0", "release=acme/gadget/2.0.0"],
                    "commands": ["./deploy"],
                }
            }
        )

        await h.orchestrator.run_once()

        assert read_config()["projects"]["deploy"]["triggers"] == [
            "release=acme/widget/1.1.0",
            "release=acme/gadget/3.0.0",
        ]
        assert h.supervisor.commands == ["./deploy", "./deploy"]


@pytest.mark.unit
class TestErrorPolicy:
    async def test_rate_limit_backs_off_and_continues(self, harness, release_source) -> None:
        release_source.releases["acme/widget"] = RateLimitedError("acme", "widget", "429")
        h = harness(
            {
                "deploy": {"triggers": ["release=acme/widget/1.0.0"], "commands": ["./deploy"]},
                "nightly": {"triggers": ["always"], "commands": ["./nightly"]},
            }
        )

        outcomes = await h.orchestrator.run_once()

        assert outcomes[("deploy", "release=acme/widget/1.0.0")] is TriggerOutcome.RATE_LIMITED
        assert outcomes[("nightly", "always")] is TriggerOutcome.COMMITTED
        assert h.sleeps == [42.0]
        assert h.supervisor.commands == ["./nightly"]

    async def test_lookup_error_skips(self, harness, release_source) -> None:
        release_source.releases["acme/widget"] = ReleaseLookupError("acme", "widget", "404 Not Found")
        h = harness({"deploy": {"triggers": ["release=acme/widget/1.0.0"], "commands": ["./deploy"]}})

        outcomes = await h.orchestrator.run_once()

        assert outcomes[("deploy", "release=acme/widget/1.0.0")] is TriggerOutcome.SKIPPED
        assert h.sleeps == []

    async def test_bad_trigger_and_unknown_type_skip(self, harness, release_source) -> None:
        h = harness({"deploy": {"triggers": ["release=acme", "cron=@daily"], "commands": ["./deploy"]}})

        outcomes = await h.orchestrator.run_once()

        assert set(outcomes.values()) == {TriggerOutcome.SKIPPED}
        assert h.supervisor.commands == []

    async def test_undecodable_project_skipped(self, harness) -> None:
        h = harness(
            {
                "broken": {"triggers": "always", "commands": {"x": 1}},
                "nightly": {"triggers": ["always"], "commands": ["./nightly"]},
            }
        )

        outcomes = await h.orchestrator.run_once()

        assert outcomes == {("nightly", "always"): TriggerOutcome.COMMITTED}

    async def test_dependency_only_project_never_polled(self, harness) -> None:
        h = harness(
            {
                "build": {"triggers": ["on_demand"], "commands": ["make"]},
                "release": {"triggers": ["always"], "depends_on": ["build"], "commands": ["./ship"]},
            }
        )

        outcomes = await h.orchestrator.run_once()

        assert outcomes[("build", "on_demand")] is TriggerOutcome.SKIPPED
        assert h.supervisor.commands == ["make", "./ship"]

    async def test_unexpected_error_marks_trigger_aborted(self, harness) -> None:
        h = harness({"nightly": {"triggers": ["always"], "commands": ["./nightly"]}})

        with patch.object(DependencyExecutor, "run", side_effect=RuntimeError("boom")):
            outcomes = await h.orchestrator.run_once()

        assert outcomes[("nightly", "always")] is TriggerOutcome.ABORTED


@pytest.mark.unit
class TestCommit:
    async def test_persistence_failure_keeps_old_baseline(self, harness, release_source) -> None:
        release_source.releases["acme/widget"] = "1.1.0"
        h = harness({"deploy": {"triggers": ["release=acme/widget/1.0.0"], "commands": ["./deploy"]}})

        with patch.object(h.store, "save", side_effect=PersistenceError(h.store.location, "read-only")):
            outcomes = await h.orchestrator.run_once()

        assert outcomes[("deploy", "release=acme/widget/1.0.0")] is TriggerOutcome.NOT_PERSISTED
        assert h.store.get_project("deploy").triggers == ["release=acme/widget/1.0.0"]
        assert h.supervisor.commands == ["./deploy"]

    async def test_unpersisted_trigger_fires_again(self, harness, release_source) -> None:
        release_source.releases["acme/widget"] = "1.1.0"
        h = harness({"deploy": {"triggers": ["release=acme/widget/1.0.0"], "commands": ["./deploy"]}})

        with patch.object(h.store, "save", side_effect=PersistenceError(h.store.location, "read-only")):
            await h.orchestrator.run_once()
        second = await h.orchestrator.run_once()

        assert second == {("deploy", "release=acme/widget/1.0.0"): TriggerOutcome.COMMITTED}
        assert h.supervisor.commands == ["./deploy", "./deploy"]

    async def test_not_persisted_without_lock(
        self, harness, release_source, read_config: Callable[..., dict[str, Any]]
    ) -> None:
        release_source.releases["acme/widget"] = "1.1.0"
        h = harness({"deploy": {"triggers": ["release=acme/widget/1.0.0"], "commands": ["./deploy"]}})
        h.lock.release()

        outcomes = await h.orchestrator.run_once()

        assert outcomes[("deploy", "release=acme/widget/1.0.0")] is TriggerOutcome.NOT_PERSISTED
        assert read_config()["projects"]["deploy"]["triggers"] == ["release=acme/widget/1.0.0"]

    async def test_always_trigger_never_rewritten(
        self, harness, read_config: Callable[..., dict[str, Any]]
    ) -> None:
        h = harness({"nightly": {"triggers": ["always"], "commands": ["./nightly"]}})

        outcomes = await h.orchestrator.run_once()

        assert outcomes[("nightly", "always")] is TriggerOutcome.COMMITTED
        assert read_config()["projects"]["nightly"]["triggers"] == ["always"]


@pytest.mark.unit
class TestRunForever:
    async def test_sleeps_between_passes(self, make_store: Callable[..., ConfigurationStore], release_source) -> None:
        store = make_store({"nightly": {"triggers": ["always"], "commands": ["./nightly"]}})
        supervisor = FakeSupervisor()
        context = RunContext()
        lock = ConfigLock(store, pid_alive=lambda pid: False)
        lock.acquire(HOLDER)
        sleeps: list[float] = []

        async def stop_after_two(seconds: float) -> None:
            sleeps.append(seconds)
            if len(sleeps) == 2:
                raise asyncio.CancelledError

        orchestrator = Orchestrator(
            store=store,
            lock=lock,
            evaluator=TriggerEvaluator(release_source),
            executor=DependencyExecutor(store, supervisor, context, process_environment={}),  # type: ignore[arg-type]
            holder_id=HOLDER,
            sleep=stop_after_two,
        )

        with pytest.raises(asyncio.CancelledError):
            await orchestrator.run_forever(300.0)

        assert sleeps == [300.0, 300.0]
        assert supervisor.commands == ["./nightly", "./nightly"]
