"""
exe_matcher.py
Classification of candidate executable names against block/allow tables.
"""

import os
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, List, Optional, Tuple

import config

log = logging.getLogger(__name__)


class MatchKind(Enum):
    ALLOWED = "allowed"
    BLOCKED_EXACT = "blocked_exact"
    BLOCKED_SUBSTRING = "blocked_substring"


@dataclass(frozen=True)
class MatchResult:
    name: str
    kind: MatchKind
    pattern: Optional[str] = None

    @property
    def blocked(self) -> bool:
        return self.kind is not MatchKind.ALLOWED


# Called with every blocked MatchResult. Never needed for correctness.
BlockListener = Callable[[MatchResult], None]


def _lowered(values: Iterable[str]) -> Tuple[str, ...]:
    # dict.fromkeys keeps the first occurrence order while deduplicating
    return tuple(dict.fromkeys(v.strip().lower() for v in values if v and v.strip()))


@dataclass(frozen=True)
class PatternTables:
    """The data the matcher and scorer work from."""
    exe_blacklist: Tuple[str, ...] = ()
    bad_name_substrings: Tuple[str, ...] = ()
    good_directory_fragments: Tuple[str, ...] = ()
    priority_exe_names: Tuple[str, ...] = ()

    @classmethod
    def create(cls, exe_blacklist=(), bad_name_substrings=(),
               good_directory_fragments=(), priority_exe_names=()):
        return cls(
            exe_blacklist=_lowered(exe_blacklist),
            bad_name_substrings=_lowered(bad_name_substrings),
            good_directory_fragments=_lowered(good_directory_fragments),
            priority_exe_names=_lowered(priority_exe_names),
        )

    @classmethod
    def defaults(cls):
        return cls.create(
            exe_blacklist=config.EXE_BLACKLIST,
            bad_name_substrings=config.BAD_NAME_SUBSTRINGS,
            good_directory_fragments=config.GOOD_DIRECTORY_FRAGMENTS,
            priority_exe_names=config.PRIORITY_EXE_NAMES,
        )

    @classmethod
    def from_settings(cls, settings: dict):
        return cls.create(
            exe_blacklist=list(settings.get("exe_blacklist", [])) + list(settings.get("extra_exe_blacklist", [])),
            bad_name_substrings=(list(settings.get("bad_name_substrings", []))
                                 + list(settings.get("extra_bad_name_substrings", []))),
            good_directory_fragments=settings.get("good_directory_fragments", []),
            priority_exe_names=settings.get("priority_exe_names", []),
        )


class PathMatcher:
    """Pure name/location tests. No filesystem access."""

    def __init__(self, tables: Optional[PatternTables] = None,
                 block_listener: Optional[BlockListener] = None):
        self.tables = tables or PatternTables.defaults()
        self.block_listener = block_listener
        self._blacklist = frozenset(self.tables.exe_blacklist)

    def classify(self, exe_name_no_ext: str) -> MatchResult:
        """Classify an executable base name (without extension)."""
        name = (exe_name_no_ext or "").lower()

        if name in self._blacklist:
            result = MatchResult(name, MatchKind.BLOCKED_EXACT, name)
        else:
            result = MatchResult(name, MatchKind.ALLOWED)
            for fragment in self.tables.bad_name_substrings:
                if fragment in name:
                    result = MatchResult(name, MatchKind.BLOCKED_SUBSTRING, fragment)
                    break

        if result.blocked:
            self._report(result)
        return result

    def is_blocked(self, exe_name_no_ext: str) -> bool:
        return self.classify(exe_name_no_ext).blocked

    def is_in_good_directory(self, exe_full_path: str) -> bool:
        """True when the parent folder path contains a conventional binary folder fragment."""
        parent = os.path.dirname(exe_full_path).lower()
        return any(fragment in parent for fragment in self.tables.good_directory_fragments)

    def is_priority_name(self, exe_name_no_ext: str) -> bool:
        return (exe_name_no_ext or "").lower() in self.tables.priority_exe_names

    def _report(self, result: MatchResult) -> None:
        if self.block_listener is None:
            return
        try:
            self.block_listener(result)
        except Exception as e:
            # The audit channel must never change a classification
            log.warning(f"Block listener failed for '{result.name}': {e}")


class BlockedAudit:
    """Thread-safe collector usable as a PathMatcher block listener."""

    def __init__(self):
        self._lock = threading.Lock()
        self.entries: List[MatchResult] = []

    def __call__(self, result: MatchResult) -> None:
        with self._lock:
            self.entries.append(result)

    def drain(self) -> List[MatchResult]:
        with self._lock:
            entries, self.entries = self.entries, []
        return entries
