"""DependencyExecutor — run a firing project's dependencies, then the project.

Dependency resolution is exactly one level deep: a dependency contributes its
``commands``, ``environment`` and ``cleanup`` only.  Its own ``triggers`` and
``depends_on`` are never consulted, so cycles cannot recurse.

Environment composition (later layers override earlier ones)::

    derived entries from the EvaluationContext
        ↓
    the running project's (or dependency's) own ``environment``
        ↓
    the daemon's process environment

Kill-sequence selection::

    project.cleanup            while the run starts
    dependency.cleanup         while that dependency runs, if it declares one
    project.cleanup            once the dependency phase ends (success or failure)

On cancellation the sequence active at that moment is left in the
RunContext for the ShutdownController.
"""

from __future__ import annotations

import asyncio
import os
from typing import Mapping

from tripwire.config import ProjectConfig
from tripwire.exceptions import ConfigurationSchemaError, DependencyResolutionError, ExecutionError
from tripwire.logging import get_logger
from tripwire.orchestration.context import RunContext
from tripwire.orchestration.supervisor import ProcessSupervisor
from tripwire.store import ConfigurationStore
from tripwire.triggers.models import EvaluationContext

log = get_logger(__name__)


def compose_environment(*layers: Mapping[str, str]) -> dict[str, str]:
    env: dict[str, str] = {}
    for layer in layers:
        env.update(layer)
    return env


class DependencyExecutor:
    def __init__(
        self,
        store: ConfigurationStore,
        supervisor: ProcessSupervisor,
        context: RunContext,
        process_environment: Mapping[str, str] | None = None,
    ) -> None:
        self._store = store
        self._supervisor = supervisor
        self._context = context
        # None means "read os.environ at run time".
        self._process_env = process_environment

    def environment_for(self, evaluation: EvaluationContext, project: ProjectConfig) -> dict[str, str]:
        process_env = os.environ if self._process_env is None else self._process_env
        return compose_environment(evaluation.environment, project.environment_map(), process_env)

    async def run(self, name: str, project: ProjectConfig, evaluation: EvaluationContext) -> None:
        """Run *project*'s dependencies and then its own commands.

        Raises:
            ExecutionError: the first command or dependency failure.  The
                project's own commands do not run after a dependency failure.
        """
        env = self.environment_for(evaluation, project)
        self._context.begin(name, project.cleanup, env)
        try:
            await self._run_dependencies(name, project, env, evaluation)
            log.info("running_project_commands", commands=len(project.commands))
            await self._supervisor.run_sequence(project.commands, env)
        except asyncio.CancelledError:
            raise
        except BaseException:
            self._context.end()
            raise
        self._context.end()

    async def _run_dependencies(
        self,
        name: str,
        project: ProjectConfig,
        env: dict[str, str],
        evaluation: EvaluationContext,
    ) -> None:
        for dep_name in project.depends_on:
            try:
                await self._run_dependency(name, dep_name, evaluation)
            except ExecutionError:
                self._restore(name, project, env)
                raise
            self._restore(name, project, env)

    async def _run_dependency(self, owner: str, dep_name: str, evaluation: EvaluationContext) -> None:
        try:
            dependency = self._store.get_project(dep_name)
        except KeyError:
            raise DependencyResolutionError(owner, dep_name, "no such project") from None
        except ConfigurationSchemaError as exc:
            raise DependencyResolutionError(owner, dep_name, exc.reason) from exc

        env = self.environment_for(evaluation, dependency)
        if dependency.cleanup:
            log.info("kill_sequence_switched", dependency=dep_name, commands=len(dependency.cleanup))
            self._context.use_kill_sequence(dep_name, dependency.cleanup, env)
        else:
            self._context.project = dep_name

        log.info("running_dependency", dependency=dep_name, commands=len(dependency.commands))
        try:
            await self._supervisor.run_sequence(dependency.commands, env)
        except ExecutionError as exc:
            log.error("dependency_failed", dependency=dep_name, error=exc.message)
            raise
        log.info("dependency_succeeded", dependency=dep_name)

    def _restore(self, name: str, project: ProjectConfig, env: dict[str, str]) -> None:
        self._context.use_kill_sequence(name, project.cleanup, env)
