"""RunContext — the explicit active-run state shared by the orchestration layer.

There is exactly one RunContext per daemon.  It is written by the
DependencyExecutor and ProcessSupervisor while a pipeline runs, and read by
the ShutdownController after the orchestrator task has been cancelled.  All
access happens on the event loop thread, so no locking is needed.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field


@dataclass
class RunContext:
    running: bool = False
    project: str | None = None
    """Project or dependency whose commands are currently executing."""

    active_process: asyncio.subprocess.Process | None = None
    active_command: str | None = None

    kill_sequence: list[str] = field(default_factory=list)
    """Cleanup commands to run if the active run is cancelled."""

    kill_environment: dict[str, str] = field(default_factory=dict)

    def begin(self, project: str, kill_sequence: list[str], environment: dict[str, str]) -> None:
        self.running = True
        self.use_kill_sequence(project, kill_sequence, environment)

    def use_kill_sequence(
        self, project: str, kill_sequence: list[str], environment: dict[str, str]
    ) -> None:
        """Make *kill_sequence* the one applied on cancellation.

        The previous list is replaced wholesale, never merged.
        """
        self.project = project
        self.kill_sequence = list(kill_sequence)
        self.kill_environment = dict(environment)

    def end(self) -> None:
        self.running = False
        self.project = None
        self.active_process = None
        self.active_command = None
        self.kill_sequence = []
        self.kill_environment = {}
