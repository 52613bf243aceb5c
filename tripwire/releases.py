"""Release sources — report the latest published version of a repository.

The poll loop depends only on the :class:`ReleaseSource` protocol; the
GitHub implementation talks to the REST API with an ``httpx.AsyncClient``.

Rate limiting
-------------
GitHub answers throttled requests with ``429`` or with ``403`` carrying either
``x-ratelimit-remaining: 0`` or a message mentioning the rate limit / abuse
detection mechanism.  All of these surface as :class:`RateLimitedError` so the
loop can back off instead of treating them as ordinary lookup failures.
"""

from __future__ import annotations

from typing import Any, Protocol

import httpx

from tripwire import __version__
from tripwire.config import DaemonSettings
from tripwire.exceptions import RateLimitedError, ReleaseLookupError
from tripwire.logging import get_logger

log = get_logger(__name__)

_RATE_LIMIT_MARKERS = ("rate limit", "abuse detection", "secondary rate")


class ReleaseSource(Protocol):
    async def latest_version(self, owner: str, repo: str) -> str:
        """Return the identifier of the newest published release."""
        ...


def _error_message(resp: httpx.Response) -> str:
    try:
        body: Any = resp.json()
    except ValueError:
        return resp.text.strip()[:200]
    if isinstance(body, dict) and isinstance(body.get("message"), str):
        return body["message"]
    return resp.text.strip()[:200]


def _is_rate_limited(resp: httpx.Response, message: str) -> bool:
    if resp.status_code == 429:
        return True
    if resp.status_code != 403:
        return False
    if resp.headers.get("x-ratelimit-remaining") == "0":
        return True
    lowered = message.lower()
    return any(marker in lowered for marker in _RATE_LIMIT_MARKERS)


class GitHubReleaseSource:
    """Latest-release lookup against the GitHub REST API.

    Usage::

        async with GitHubReleaseSource(token=os.environ.get("GITHUB_TOKEN")) as source:
            tag = await source.latest_version("acme", "widget")
    """

    def __init__(
        self,
        api_url: str = "https://api.github.com",
        token: str | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": f"tripwire/{__version__}",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._http = httpx.AsyncClient(
            base_url=api_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: DaemonSettings) -> "GitHubReleaseSource":
        return cls(
            api_url=settings.github_api_url,
            token=settings.github_token,
            timeout=settings.http_timeout_seconds,
        )

    async def latest_version(self, owner: str, repo: str) -> str:
        try:
            resp = await self._http.get(
                f"/repos/{owner}/{repo}/releases",
                params={"per_page": 1, "page": 1},
            )
        except httpx.HTTPError as exc:
            raise ReleaseLookupError(owner, repo, str(exc) or type(exc).__name__) from exc

        if resp.is_error:
            message = _error_message(resp)
            reason = f"{resp.status_code} {message}".strip()
            if _is_rate_limited(resp, message):
                raise RateLimitedError(owner, repo, reason)
            raise ReleaseLookupError(owner, repo, reason)

        try:
            releases = resp.json()
        except ValueError as exc:
            raise ReleaseLookupError(owner, repo, "response is not JSON") from exc

        if not isinstance(releases, list) or not releases:
            raise ReleaseLookupError(owner, repo, "no published releases")
        latest = releases[0]
        tag = latest.get("tag_name") if isinstance(latest, dict) else None
        if not isinstance(tag, str) or not tag:
            raise ReleaseLookupError(owner, repo, "latest release has no tag_name")

        log.debug("latest_release_fetched", owner=owner, repo=repo, tag_name=tag)
        return tag

    async def close(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "GitHubReleaseSource":
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()
