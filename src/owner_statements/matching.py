"""Property name normalization and matching.

Matching is exact after normalization: names are compared with any trailing
"(OLD)"/"(NEW)" status suffix removed, all whitespace removed and case
folded. There is no fuzzy matching; names that do not resolve are collected
so the caller can show them for review.
"""

import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")

_STATUS_SUFFIX = re.compile(r"\s*\((OLD|NEW)\)\s*$", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")


def normalize_property_name(name: str | None) -> str:
    """Normalize a free-text property name for comparison."""
    if not name:
        return ""
    stripped = _STATUS_SUFFIX.sub("", str(name).strip())
    return _WHITESPACE.sub("", stripped).casefold()


@dataclass(frozen=True)
class Unmatched:
    """A name that did not resolve against the directory."""

    raw_name: str


def _default_name(entry: Any) -> str:
    return str(getattr(entry, "name", "") or "")


class PropertyDirectory(Generic[T]):
    """Index of canonical entries (properties, drafts, statements) by normalized name."""

    def __init__(
        self,
        entries: Iterable[T],
        name_of: Callable[[T], str] = _default_name,
    ):
        self._name_of = name_of
        self._index: dict[str, T] = {}
        self.unmatched: list[str] = []
        self._logger = logger.bind(component="property_directory")

        for entry in entries:
            key = normalize_property_name(name_of(entry))
            if not key:
                continue
            if key in self._index:
                self._logger.warning(
                    "duplicate_normalized_name",
                    name=name_of(entry),
                    kept=name_of(self._index[key]),
                )
                continue
            self._index[key] = entry

    def __len__(self) -> int:
        return len(self._index)

    def __contains__(self, raw_name: object) -> bool:
        return normalize_property_name(str(raw_name)) in self._index

    def names(self) -> list[str]:
        """Canonical names in registration order."""
        return [self._name_of(entry) for entry in self._index.values()]

    def lookup(self, raw_name: str | None) -> T | None:
        """Resolve a name without recording misses."""
        key = normalize_property_name(raw_name)
        if not key:
            return None
        return self._index.get(key)

    def match(self, raw_name: str | None) -> T | Unmatched:
        """Resolve a name, recording it as unmatched when it does not resolve."""
        entry = self.lookup(raw_name)
        if entry is not None:
            return entry

        name = str(raw_name or "")
        if name not in self.unmatched:
            self.unmatched.append(name)
        return Unmatched(name)
