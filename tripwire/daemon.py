"""Daemon bootstrap — validate the document, lock it, and run the poll loop.

Startup sequence::

    configure stdout logging
        ↓
    load the configuration document          → CONFIG_NOT_FOUND
        ↓
    read settings.logfile, open it           → MISSING_SETTINGS / LOGFILE_UNAVAILABLE
        ↓
    read settings.sleepMinutes               → BAD_SLEEP_INTERVAL
        ↓
    require at least one project             → NO_PROJECTS
        ↓
    acquire the lock with our PID            → LOCK_FAILED
        ↓
    orchestrator task + signal listener task
        ↓
    ShutdownController.shutdown()            → OK / UNLOCK_FAILED

Settings are validated before the lock is taken so that a bad document
never leaves a lock record behind.
"""

from __future__ import annotations

import asyncio
import os
from pathlib import Path

from tripwire import __version__
from tripwire.config import DaemonSettings
from tripwire.exceptions import (
    ConfigurationError,
    ConfigurationNotFoundError,
    InvalidSettingError,
    TripwireError,
)
from tripwire.exit_codes import ExitCode
from tripwire.lock import ConfigLock
from tripwire.logging import configure_logging, get_logger
from tripwire.orchestration.context import RunContext
from tripwire.orchestration.executor import DependencyExecutor
from tripwire.orchestration.loop import Orchestrator
from tripwire.orchestration.shutdown import ShutdownController
from tripwire.orchestration.supervisor import ProcessSupervisor
from tripwire.releases import GitHubReleaseSource, ReleaseSource
from tripwire.store import ConfigurationStore
from tripwire.triggers.evaluator import TriggerEvaluator

log = get_logger(__name__)


def load_store(path: Path) -> tuple[ConfigurationStore | None, ExitCode]:
    """Load the document at *path*, logging why it could not be read."""
    store = ConfigurationStore(path)
    try:
        store.load()
    except ConfigurationNotFoundError:
        log.error("configuration_not_found", path=store.location)
        log.info("configuration_hint", hint="run `tripwire daemon setup` to create one")
        return None, ExitCode.CONFIG_NOT_FOUND
    except ConfigurationError as exc:
        log.error("configuration_unreadable", path=store.location, error=exc.message)
        return None, ExitCode.CONFIG_NOT_FOUND
    return store, ExitCode.OK


class Daemon:
    """Wire the components around a loaded, locked-to-be document.

    Usage::

        daemon = Daemon(store, settings)
        exit_code = asyncio.run(daemon.run(interval=300))
    """

    def __init__(
        self,
        store: ConfigurationStore,
        settings: DaemonSettings,
        release_source: ReleaseSource | None = None,
        holder_id: int | None = None,
    ) -> None:
        self._store = store
        self._settings = settings
        self._release_source = release_source
        self._holder_id = holder_id if holder_id is not None else os.getpid()

        self.context = RunContext()
        self.supervisor = ProcessSupervisor(self.context, settings.kill_grace_seconds)
        self.lock = ConfigLock(store)

    def acquire_lock(self) -> bool:
        try:
            self.lock.acquire(self._holder_id)
        except TripwireError as exc:
            log.error("configuration_lock_failed", path=self._store.location, error=exc.message)
            return False
        log.debug("configuration_lock_acquired", path=self._store.location)
        return True

    async def run(self, interval: float) -> ExitCode:
        """Run until a termination signal; the lock must already be held."""
        owns_source = self._release_source is None
        source: ReleaseSource = self._release_source or GitHubReleaseSource.from_settings(self._settings)

        orchestrator = Orchestrator(
            store=self._store,
            lock=self.lock,
            evaluator=TriggerEvaluator(source),
            executor=DependencyExecutor(self._store, self.supervisor, self.context),
            holder_id=self._holder_id,
            rate_limit_backoff=self._settings.rate_limit_backoff_seconds,
        )
        controller = ShutdownController(self.context, self.supervisor, self.lock)
        controller.install()

        loop_task = asyncio.create_task(orchestrator.run_forever(interval), name="orchestrator_loop")
        signal_task = asyncio.create_task(controller.wait_for_termination(), name="signal_listener")
        try:
            done, _ = await asyncio.wait({loop_task, signal_task}, return_when=asyncio.FIRST_COMPLETED)
            if loop_task in done and not loop_task.cancelled() and loop_task.exception() is not None:
                log.error("orchestrator_crashed", error=str(loop_task.exception()))
            return await controller.shutdown(loop_task)
        finally:
            controller.uninstall()
            if not signal_task.done():
                signal_task.cancel()
                try:
                    await signal_task
                except asyncio.CancelledError:
                    pass
            if owns_source and isinstance(source, GitHubReleaseSource):
                await source.close()


def start_daemon(
    config_path: Path,
    settings: DaemonSettings,
    debug: bool = False,
) -> ExitCode:
    """Run the full startup sequence and the daemon; return the exit code."""
    level = "debug" if debug else "info"
    configure_logging(level=level, format=settings.log_format)

    store, code = load_store(config_path)
    if store is None:
        return code

    try:
        logfile = store.logfile_path()
    except InvalidSettingError as exc:
        log.error("invalid_settings", key=exc.key, error=exc.message)
        return ExitCode.BAD_SLEEP_INTERVAL if exc.key == "settings.sleepMinutes" else ExitCode.MISSING_SETTINGS
    if logfile is None:
        log.error("logfile_not_defined", hint="set settings.logfile in the configuration file")
        return ExitCode.MISSING_SETTINGS

    try:
        configure_logging(level=level, format=settings.log_format, log_file=str(logfile))
    except OSError as exc:
        log.error("logfile_open_failed", path=str(logfile), error=str(exc))
        return ExitCode.LOGFILE_UNAVAILABLE
    log.info("daemon_started", version=__version__, pid=os.getpid(), config=store.location)

    interval = store.sleep_interval()

    try:
        projects = store.project_names()
    except ConfigurationError as exc:
        log.error("projects_unreadable", error=exc.message)
        return ExitCode.NO_PROJECTS
    if not projects:
        log.error("no_projects_defined", path=store.location)
        return ExitCode.NO_PROJECTS

    daemon = Daemon(store, settings)
    if not daemon.acquire_lock():
        return ExitCode.LOCK_FAILED

    return asyncio.run(daemon.run(interval))


def unlock(config_path: Path) -> ExitCode:
    """Force the lock record back to 0 (operator recovery after a failed shutdown)."""
    store, code = load_store(config_path)
    if store is None:
        return code
    try:
        ConfigLock(store).release()
    except TripwireError as exc:
        log.error("unlock_failed", path=store.location, error=exc.message)
        return ExitCode.UNLOCK_FAILED
    log.info("configuration_unlocked", path=store.location)
    return ExitCode.OK


def setup(config_path: Path) -> ExitCode:
    """Create a default configuration document."""
    try:
        store = ConfigurationStore.create_default(config_path)
    except TripwireError as exc:
        log.error("setup_failed", path=str(config_path), error=exc.message)
        return ExitCode.SETUP_FAILED
    log.info("configuration_created", path=store.location)
    return ExitCode.OK
