"""tripwire — orchestration layer.

Package structure
-----------------
orchestration/
  context.py     — RunContext (active command, kill sequence, current project)
  supervisor.py  — ProcessSupervisor (sequential command execution)
  executor.py    — DependencyExecutor (one-level dependencies, environment)
  loop.py        — Orchestrator (poll loop state machine)
  shutdown.py    — ShutdownController (signal-driven cancellation)
"""

from tripwire.orchestration.context import RunContext
from tripwire.orchestration.executor import DependencyExecutor, compose_environment
from tripwire.orchestration.loop import Orchestrator, TriggerOutcome
from tripwire.orchestration.shutdown import ShutdownController
from tripwire.orchestration.supervisor import ProcessSupervisor, tokenize

__all__ = [
    "DependencyExecutor",
    "Orchestrator",
    "ProcessSupervisor",
    "RunContext",
    "ShutdownController",
    "TriggerOutcome",
    "compose_environment",
    "tokenize",
]
