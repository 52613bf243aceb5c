"""tripwire — Structured logging configuration.

structlog renders every record; stdlib ``logging`` routes them.  Two sinks
exist:

    stdout        console renderer (or JSON with ``--log-format json``)
    settings.logfile   always JSON, opened in append mode

While a trigger is evaluated and run, the project name and the raw trigger
string are bound to the current task and appear on every record as
``project`` and ``trigger``.
"""

from __future__ import annotations

import logging
import sys
from contextvars import ContextVar

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

_current_project: ContextVar[str | None] = ContextVar("tripwire_project", default=None)
_current_trigger: ContextVar[str | None] = ContextVar("tripwire_trigger", default=None)

_QUIET_LOGGERS = ("httpx", "httpcore", "asyncio")


def bind_run_context(project: str | None = None, trigger: str | None = None) -> None:
    """Tag subsequent records of this task with *project* and/or *trigger*."""
    if project is not None:
        _current_project.set(project)
    if trigger is not None:
        _current_trigger.set(trigger)


def clear_run_context() -> None:
    _current_project.set(None)
    _current_trigger.set(None)


# ---------------------------------------------------------------------------
# Processors
# ---------------------------------------------------------------------------


def _add_run_context(_logger: WrappedLogger, _method: str, event_dict: EventDict) -> EventDict:
    # Explicit keyword arguments take precedence over the bound values.
    project = _current_project.get()
    if project is not None:
        event_dict.setdefault("project", project)
    trigger = _current_trigger.get()
    if trigger is not None:
        event_dict.setdefault("trigger", trigger)
    return event_dict


def _pre_chain() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        _add_run_context,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]


def _formatter(renderer: Processor, pre_chain: list[Processor]) -> logging.Formatter:
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=pre_chain,
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
    )


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


def configure_logging(
    level: str = "info",
    format: str = "console",
    log_file: str | None = None,
) -> None:
    """Install the stdout sink and, if *log_file* is given, the file sink.

    Safe to call more than once: the daemon calls it first with stdout only,
    then again once ``settings.logfile`` has been read.  Previously installed
    handlers are closed and replaced.

    Args:
        level:    debug, info, warning, error or critical.
        format:   ``"console"`` or ``"json"`` for the stdout sink.
        log_file: Path appended to as JSON lines.

    Raises:
        OSError: *log_file* cannot be opened.
    """
    pre_chain = _pre_chain()
    as_json = structlog.processors.JSONRenderer()

    # Open the file first so a failure leaves the current setup untouched.
    sinks: list[logging.Handler] = []
    if log_file:
        file_sink = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_sink.setFormatter(_formatter(as_json, pre_chain))
        sinks.append(file_sink)

    stdout_renderer: Processor = (
        as_json if format == "json" else structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    )
    stdout_sink = logging.StreamHandler(sys.stdout)
    stdout_sink.setFormatter(_formatter(stdout_renderer, pre_chain))
    sinks.insert(0, stdout_sink)

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    root = logging.getLogger()
    for previous in root.handlers:
        previous.close()
    root.handlers = sinks
    root.setLevel(level.upper())

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger named *name*.

    Usage::

        log = get_logger(__name__)
        log.info("trigger_fired", old_value="1.0.0", new_value="1.1.0")
    """
    return structlog.get_logger(name)
