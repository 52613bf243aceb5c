"""ShutdownController — turn OS signals into one sequential cancellation routine.

Signal handlers only enqueue the signal number.  The controller task consumes
the queue concurrently with the orchestrator task:

    SIGHUP           logged and ignored
    SIGINT/SIGTERM   1. cancel the orchestrator task and wait for it
                        (the supervisor terminates the active child)
                     2. run the active kill sequence, if a run was in flight
                     3. release the configuration lock
                     4. report the exit status (non-zero if the orchestrator
                        task had crashed)
"""

from __future__ import annotations

import asyncio
import os
import signal

from tripwire.exceptions import TripwireError
from tripwire.exit_codes import ExitCode
from tripwire.lock import ConfigLock
from tripwire.logging import get_logger
from tripwire.orchestration.context import RunContext
from tripwire.orchestration.supervisor import ProcessSupervisor

log = get_logger(__name__)

TERMINATION_SIGNALS = (signal.SIGINT, signal.SIGTERM)
IGNORED_SIGNALS = (signal.SIGHUP,)


def _signal_name(signum: int) -> str:
    try:
        return signal.Signals(signum).name
    except ValueError:
        return str(signum)


class ShutdownController:
    def __init__(self, context: RunContext, supervisor: ProcessSupervisor, lock: ConfigLock) -> None:
        self._context = context
        self._supervisor = supervisor
        self._lock = lock
        self._signals: asyncio.Queue[int] = asyncio.Queue()
        self._installed: list[int] = []

    # ---------------------------------------------------------------------------
    # Signal channel
    # ---------------------------------------------------------------------------

    def install(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Route termination and ignorable signals into the controller's queue."""
        loop = loop or asyncio.get_running_loop()
        for sig in (*TERMINATION_SIGNALS, *IGNORED_SIGNALS):
            loop.add_signal_handler(sig, self.notify, int(sig))
            self._installed.append(int(sig))
        log.debug("signal_handling_installed")

    def uninstall(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        loop = loop or asyncio.get_running_loop()
        for sig in self._installed:
            loop.remove_signal_handler(sig)
        self._installed.clear()

    def notify(self, signum: int) -> None:
        self._signals.put_nowait(signum)

    async def wait_for_termination(self) -> int:
        """Block until a termination signal arrives; return its number."""
        while True:
            signum = await self._signals.get()
            if signum in IGNORED_SIGNALS:
                log.info("signal_ignored", signal=_signal_name(signum), pid=os.getpid())
                continue
            log.info("shutdown_requested", signal=_signal_name(signum))
            return signum

    # ---------------------------------------------------------------------------
    # Cancellation routine
    # ---------------------------------------------------------------------------

    async def shutdown(self, orchestrator_task: asyncio.Task[None] | None) -> ExitCode:
        crashed = False
        if orchestrator_task is not None:
            if not orchestrator_task.done():
                orchestrator_task.cancel()
                try:
                    await orchestrator_task
                except asyncio.CancelledError:
                    pass
                except Exception:
                    log.exception("orchestrator_failed_during_shutdown")
                    crashed = True
            elif not orchestrator_task.cancelled():
                crashed = orchestrator_task.exception() is not None

        if self._context.running:
            log.info(
                "running_kill_sequence",
                project=self._context.project,
                commands=len(self._context.kill_sequence),
            )
            await self._supervisor.run_kill_sequence(
                self._context.kill_sequence, self._context.kill_environment
            )
            self._context.end()

        try:
            self._lock.release()
        except TripwireError as exc:
            log.error("unlock_failed", error=exc.message)
            return ExitCode.UNLOCK_FAILED

        if crashed:
            log.error("exiting_after_orchestrator_failure")
            return ExitCode.ORCHESTRATOR_FAILED
        log.info("exiting_gracefully")
        return ExitCode.OK
