"""Shared pytest fixtures for the tripwire test suite."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Generator

import pytest
import yaml

from tripwire.config import DaemonSettings, override_settings
from tripwire.store import ConfigurationStore


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@pytest.fixture
def test_settings(tmp_path: Path) -> Generator[DaemonSettings, None, None]:
    settings = DaemonSettings(
        config=tmp_path / "tripwire.yml",
        github_api_url="https://github.test",
        rate_limit_backoff_seconds=0.0,
        kill_grace_seconds=2.0,
    )
    override_settings(settings)
    yield settings
    override_settings(None)


# ---------------------------------------------------------------------------
# Configuration document
# ---------------------------------------------------------------------------


def make_document(projects: dict[str, Any] | None = None, **settings: Any) -> dict[str, Any]:
    section: dict[str, Any] = {"locked": 0, "sleepMinutes": 5, "logfile": "tripwire.log"}
    section.update(settings)
    return {"version": "1.0", "settings": section, "projects": projects or {}}


@pytest.fixture
def write_config(tmp_path: Path) -> Callable[..., Path]:
    """Return a writer that dumps a document dict to ``tmp_path/tripwire.yml``."""

    def _write(document: dict[str, Any], name: str = "tripwire.yml") -> Path:
        path = tmp_path / name
        path.write_text(yaml.safe_dump(document, sort_keys=False), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def read_config(tmp_path: Path) -> Callable[..., dict[str, Any]]:
    def _read(name: str = "tripwire.yml") -> dict[str, Any]:
        return yaml.safe_load((tmp_path / name).read_text(encoding="utf-8"))

    return _read


@pytest.fixture
def make_store(write_config: Callable[..., Path]) -> Callable[..., ConfigurationStore]:
    """Write a document and return a loaded store for it."""

    def _make(projects: dict[str, Any] | None = None, **settings: Any) -> ConfigurationStore:
        store = ConfigurationStore(write_config(make_document(projects, **settings)))
        store.load()
        return store

    return _make


# ---------------------------------------------------------------------------
# Release source
# ---------------------------------------------------------------------------


class FakeReleaseSource:
    """In-memory ReleaseSource.

    ``releases`` maps ``"owner/repo"`` to a tag name, or to an exception
    instance that ``latest_version`` raises.
    """

    def __init__(self, releases: dict[str, str | Exception] | None = None) -> None:
        self.releases: dict[str, str | Exception] = dict(releases or {})
        self.calls: list[tuple[str, str]] = []

    async def latest_version(self, owner: str, repo: str) -> str:
        self.calls.append((owner, repo))
        result = self.releases[f"{owner}/{repo}"]
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def release_source() -> FakeReleaseSource:
    return FakeReleaseSource()
