"""Process exit codes observable by operators and service managers."""

from __future__ import annotations

from enum import IntEnum


class ExitCode(IntEnum):
    OK = 0
    ORCHESTRATOR_FAILED = 1
    CONFIG_NOT_FOUND = 3
    BAD_SLEEP_INTERVAL = 19
    SETUP_FAILED = 30
    MISSING_SETTINGS = 120
    LOGFILE_UNAVAILABLE = 124
    NO_PROJECTS = 148
    LOCK_FAILED = 211
    UNLOCK_FAILED = 212
