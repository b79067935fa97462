"""Advertised-name matching for the scan filter."""

from __future__ import annotations

from collections.abc import Callable


def name_matches_prefix(name: str | None, prefix: str) -> bool:
    if not name:
        return False
    return name.upper().startswith(prefix.upper())


def name_prefix_predicate(prefix: str) -> Callable[[str | None], bool]:
    def _predicate(name: str | None) -> bool:
        return name_matches_prefix(name, prefix)

    return _predicate
