"""ProcessSupervisor — run command lines one after another.

Security notes:
  - Commands are always started with ``create_subprocess_exec``; no shell.
  - A command line is split on whitespace only.  Quotes, escapes, globs and
    variable references are passed through literally, so an argument cannot
    contain a space.  Keep configured commands simple or wrap them in a
    script.
  - stdin is not connected; stdout/stderr are inherited so operators see the
    child's output live.
  - There is no per-command timeout.  A hung command blocks the loop until
    the daemon itself is signalled.
"""

from __future__ import annotations

import asyncio
from typing import Mapping, Sequence

from tripwire.exceptions import CommandExecutionError
from tripwire.logging import get_logger
from tripwire.orchestration.context import RunContext

log = get_logger(__name__)


def tokenize(line: str) -> list[str]:
    """Split a command line into program and arguments."""
    return line.split()


class ProcessSupervisor:
    """Spawn commands sequentially and record the active one in a RunContext.

    Usage::

        supervisor = ProcessSupervisor(context)
        await supervisor.run_sequence(["make", "make install"], env)

    If the awaiting task is cancelled while a command runs, the child gets
    SIGTERM, then SIGKILL after ``kill_grace_seconds``, before the
    cancellation propagates.
    """

    def __init__(self, context: RunContext, kill_grace_seconds: float = 10.0) -> None:
        self._context = context
        self._grace = kill_grace_seconds

    async def run_sequence(self, commands: Sequence[str], env: Mapping[str, str]) -> None:
        """Run *commands* in order, stopping at the first failure."""
        for line in commands:
            await self.run_command(line, env)

    async def run_command(self, line: str, env: Mapping[str, str]) -> None:
        argv = tokenize(line)
        if not argv:
            return
        command = " ".join(argv)
        log.debug("running_command", command=command)

        # Shielded: the child may already exist when a cancellation lands.
        spawn = asyncio.ensure_future(
            asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                env=dict(env),
            )
        )
        try:
            proc = await asyncio.shield(spawn)
        except asyncio.CancelledError:
            await self._abandon_spawn(spawn, command)
            raise
        except OSError as exc:
            raise CommandExecutionError(command, str(exc)) from exc

        self._context.active_process = proc
        self._context.active_command = command
        try:
            return_code = await proc.wait()
        except asyncio.CancelledError:
            await self._terminate(proc, command)
            raise
        finally:
            self._context.active_process = None
            self._context.active_command = None

        if return_code != 0:
            raise CommandExecutionError(command, f"exit status {return_code}", return_code)
        log.debug("command_succeeded", command=command)

    async def run_kill_sequence(self, commands: Sequence[str], env: Mapping[str, str]) -> None:
        """Run cleanup commands best-effort: a failing one is logged and skipped."""
        for line in commands:
            log.debug("running_kill_command", command=line)
            try:
                await self.run_command(line, env)
            except CommandExecutionError as exc:
                log.error("kill_command_failed", command=exc.command, error=exc.message)

    async def _abandon_spawn(self, spawn: asyncio.Future[asyncio.subprocess.Process], command: str) -> None:
        try:
            proc = await spawn
        except OSError:
            return
        self._context.active_process = proc
        self._context.active_command = command
        try:
            await self._terminate(proc, command)
        finally:
            self._context.active_process = None
            self._context.active_command = None

    async def _terminate(self, proc: asyncio.subprocess.Process, command: str) -> None:
        if proc.returncode is not None:
            return
        log.warning("terminating_command", command=command, pid=proc.pid)
        try:
            proc.terminate()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(proc.wait(), timeout=self._grace)
        except asyncio.TimeoutError:
            log.warning("killing_command", command=command, pid=proc.pid)
            try:
                proc.kill()
            except ProcessLookupError:
                return
            await proc.wait()
