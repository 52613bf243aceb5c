"""Semantic-version parsing and comparison for release triggers.

Comparison follows SemVer 2.0.0 precedence: major.minor.patch numerically,
a pre-release sorts before its release, pre-release identifiers compare
field by field, and build metadata is ignored.

Release tags in the wild are looser than the standard, so parsing accepts a
leading ``v``/``V`` and a missing minor or patch component (``1.2`` is
``1.2.0``).
"""

from __future__ import annotations

from semver import Version

from tripwire.exceptions import VersionParseError


def parse_version(value: str) -> Version:
    """Parse *value* as a semantic version or raise VersionParseError."""
    if not isinstance(value, str):
        raise VersionParseError(repr(value), "not a string")
    text = value.strip()
    if text[:1] in ("v", "V"):
        text = text[1:]
    if not text:
        raise VersionParseError(value, "empty version")
    try:
        return Version.parse(text, optional_minor_and_patch=True)
    except (ValueError, TypeError) as exc:
        raise VersionParseError(value, str(exc)) from exc


def should_fire(old: str, new: str) -> bool:
    """True iff *new* is strictly greater than *old*."""
    return parse_version(new) > parse_version(old)
