"""
exe_search.py
Staged, time-bounded search for executables inside one game folder.

The search tries cheap, conventional locations first and only falls back to
deeper listings when nothing was found. The last stage walks the whole tree
in a background thread that is abandoned when the folder's budget runs out.
"""

import os
import time
import fnmatch
import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import config
from cancellation_utils import CancellationManager, Deadline
from utils import path_key

log = logging.getLogger(__name__)


class SearchStage(Enum):
    """Search stages, cheapest first."""
    COMMON_SUBDIRS = "A"
    ENGINE_LAYOUTS = "B"
    ROOT_LISTING = "C"
    DEPTH_1 = "D"
    DEPTH_2 = "E"
    DEPTH_4 = "F"
    MAX_DEPTH = "G"
    FULL_WALK = "H"


# Listing stages and their fixed depth (None = caller supplied max depth)
_LISTING_STAGES: Tuple[Tuple[SearchStage, Optional[int]], ...] = (
    (SearchStage.ROOT_LISTING, 0),
    (SearchStage.DEPTH_1, 1),
    (SearchStage.DEPTH_2, 2),
    (SearchStage.DEPTH_4, 4),
    (SearchStage.MAX_DEPTH, None),
)


@dataclass(frozen=True)
class Candidate:
    path: str
    containing_folder: str

    @classmethod
    def from_path(cls, path: str) -> "Candidate":
        return cls(path, os.path.dirname(path))


@dataclass
class SearchResult:
    files: List[Candidate] = field(default_factory=list)
    truncated_by_timeout: bool = False
    stage: Optional[SearchStage] = None
    errors: List[str] = field(default_factory=list)
    elapsed_seconds: float = 0.0

    @property
    def paths(self) -> List[str]:
        return [candidate.path for candidate in self.files]


@dataclass(frozen=True)
class SearchLayout:
    """Folder names, layouts and extensions the stages probe."""
    common_subdirs: Tuple[str, ...] = tuple(config.COMMON_EXE_SUBDIRS)
    engine_layouts: Tuple[str, ...] = tuple(config.ENGINE_EXE_LAYOUTS)
    executable_extensions: Tuple[str, ...] = tuple(config.EXECUTABLE_EXTENSIONS)

    @classmethod
    def from_settings(cls, settings: dict) -> "SearchLayout":
        return cls(
            common_subdirs=tuple(settings.get("common_exe_subdirs", config.COMMON_EXE_SUBDIRS)),
            engine_layouts=tuple(settings.get("engine_exe_layouts", config.ENGINE_EXE_LAYOUTS)),
            executable_extensions=tuple(
                ext.lower() for ext in settings.get("executable_extensions", config.EXECUTABLE_EXTENSIONS)),
        )


class _DeadlineReached(Exception):
    """Raised inside a stage when the folder budget expires; carries partial results."""

    def __init__(self, found: List[str]):
        super().__init__("search deadline reached")
        self.found = found


def _entry_sort_key(entry) -> Tuple[str, str]:
    return (entry.name.lower(), entry.name)


Walker = Callable[..., object]


class BoundedSearcher:
    """
    Finds executables inside a game folder within a wall-clock budget.

    Stages run in order and the first one yielding at least one file wins:
      A  conventional single-level subfolders (Game, bin, Win64, ...)
      B  engine layouts (Engine/Binaries/Win64 and friends, with wildcards)
      C  the folder root
      D  listing down to depth 1
      E  listing down to depth 2
      F  listing down to depth 4
      G  listing down to max_depth
      H  full recursive walk, run in a worker thread and abandoned on timeout

    The searcher keeps no state between calls and can be shared by threads.
    """

    def __init__(self, layout: Optional[SearchLayout] = None,
                 safety_margin_seconds: float = config.SEARCH_SAFETY_MARGIN_SECONDS,
                 walker: Walker = os.walk,
                 clock: Callable[[], float] = time.monotonic):
        self.layout = layout or SearchLayout()
        self.safety_margin_seconds = safety_margin_seconds
        self._walker = walker
        self._clock = clock
        self._extensions = tuple(ext.lower() for ext in self.layout.executable_extensions)

    # --- Public API ---

    def find(self, folder_path: str, game_display_name: str,
             max_depth: int = config.MAX_SEARCH_DEPTH,
             timeout_seconds: float = config.FOLDER_TIMEOUT_SECONDS) -> SearchResult:
        deadline = Deadline(timeout_seconds, clock=self._clock)
        errors: List[str] = []
        result = SearchResult(errors=errors)

        if not os.path.isdir(folder_path):
            log.warning(f"Folder for '{game_display_name}' does not exist: {folder_path}")
            result.elapsed_seconds = deadline.elapsed()
            return result

        staged = [
            (SearchStage.COMMON_SUBDIRS, lambda: self._probe_common_subdirs(folder_path, deadline, errors)),
            (SearchStage.ENGINE_LAYOUTS, lambda: self._probe_engine_layouts(folder_path, deadline, errors)),
        ]
        covered_depth = -1
        for stage, depth in _LISTING_STAGES:
            depth = max_depth if depth is None else depth
            if depth <= covered_depth:
                # An earlier listing already went at least this deep
                continue
            covered_depth = depth
            staged.append((stage, lambda d=depth: self._list_to_depth(folder_path, d, deadline, errors)))

        for stage, run_stage in staged:
            if deadline.expired():
                log.info(f"'{game_display_name}': budget exhausted before stage {stage.value}")
                result.truncated_by_timeout = True
                break
            try:
                found = run_stage()
            except _DeadlineReached as reached:
                log.info(f"'{game_display_name}': budget exhausted during stage {stage.value}")
                result.truncated_by_timeout = True
                if reached.found:
                    self._fill(result, stage, reached.found)
                break
            log.debug(f"'{game_display_name}': stage {stage.value} found {len(found)} file(s)")
            if found:
                self._fill(result, stage, found)
                break
        else:
            self._run_full_walk(folder_path, game_display_name, deadline, result)

        # One unreadable folder is met by every stage
        result.errors = list(dict.fromkeys(result.errors))
        result.elapsed_seconds = deadline.elapsed()
        return result

    # --- Helpers ---

    @staticmethod
    def _fill(result: SearchResult, stage: SearchStage, paths: Sequence[str]) -> None:
        seen = set()
        for path in paths:
            key = path_key(path)
            if key in seen:
                continue
            seen.add(key)
            result.files.append(Candidate.from_path(path))
        result.stage = stage

    def _is_executable_name(self, name: str) -> bool:
        return name.lower().endswith(self._extensions)

    def _scan(self, path: str, errors: List[str]) -> list:
        """Sorted directory entries of path; missing folders are empty, other errors are recorded."""
        try:
            with os.scandir(path) as it:
                entries = list(it)
        except (FileNotFoundError, NotADirectoryError):
            return []
        except OSError as e:
            log.warning(f"Unable to read folder '{path}': {e}")
            errors.append(f"{path}: {e}")
            return []
        entries.sort(key=_entry_sort_key)
        return entries

    @staticmethod
    def _is_dir(entry) -> bool:
        try:
            return entry.is_dir(follow_symlinks=False)
        except OSError:
            return False

    def _executables_in(self, folder: str, errors: List[str]) -> List[str]:
        found = []
        for entry in self._scan(folder, errors):
            if not self._is_executable_name(entry.name):
                continue
            try:
                if entry.is_file():
                    found.append(entry.path)
            except OSError:
                continue
        return found

    def _subdirs_matching(self, folder: str, pattern: str, errors: List[str]) -> List[str]:
        """Subfolders of folder whose name matches pattern, case-insensitively."""
        pattern = pattern.lower()
        return [entry.path for entry in self._scan(folder, errors)
                if self._is_dir(entry) and fnmatch.fnmatchcase(entry.name.lower(), pattern)]

    # --- Stage A ---

    def _probe_common_subdirs(self, folder: str, deadline: Deadline, errors: List[str]) -> List[str]:
        found: List[str] = []
        subdirs_by_name: Dict[str, List[str]] = {}
        for entry in self._scan(folder, errors):
            if self._is_dir(entry):
                subdirs_by_name.setdefault(entry.name.lower(), []).append(entry.path)

        for name in self.layout.common_subdirs:
            for subdir in subdirs_by_name.get(name.lower(), []):
                if deadline.expired():
                    raise _DeadlineReached(found)
                found.extend(self._executables_in(subdir, errors))
        return found

    # --- Stage B ---

    def _probe_engine_layouts(self, folder: str, deadline: Deadline, errors: List[str]) -> List[str]:
        found: List[str] = []
        for layout in self.layout.engine_layouts:
            segments = [s for s in layout.replace('\\', '/').split('/') if s]
            current = [folder]
            for segment in segments:
                matched = []
                for parent in current:
                    if deadline.expired():
                        raise _DeadlineReached(found)
                    matched.extend(self._subdirs_matching(parent, segment, errors))
                current = matched
                if not current:
                    break
            for target in current:
                if deadline.expired():
                    raise _DeadlineReached(found)
                found.extend(self._executables_in(target, errors))
        return found

    # --- Stages C to G ---

    def _list_to_depth(self, folder: str, max_depth: int, deadline: Deadline,
                       errors: List[str]) -> List[str]:
        """Breadth-first listing; depth 0 is the folder itself."""
        found: List[str] = []
        level = [folder]
        depth = 0
        while level:
            next_level = []
            for current in level:
                if deadline.expired():
                    raise _DeadlineReached(found)
                for entry in self._scan(current, errors):
                    if self._is_dir(entry):
                        if depth < max_depth:
                            next_level.append(entry.path)
                    elif self._is_executable_name(entry.name):
                        try:
                            if entry.is_file():
                                found.append(entry.path)
                        except OSError:
                            continue
            level = next_level
            depth += 1
        return found

    # --- Stage H ---

    def _walk_all(self, folder: str, token: CancellationManager,
                  sink: List[str], errors: List[str]) -> None:
        def on_error(error):
            errors.append(str(error))

        try:
            for dirpath, dirnames, filenames in self._walker(folder, topdown=True, onerror=on_error):
                if token.check_cancelled():
                    return
                # Sorting in place also fixes the order os.walk descends in
                dirnames.sort(key=str.lower)
                for filename in sorted(filenames, key=str.lower):
                    if self._is_executable_name(filename):
                        sink.append(os.path.join(dirpath, filename))
        except OSError as e:
            errors.append(f"{folder}: {e}")

    def _run_full_walk(self, folder: str, game_display_name: str,
                       deadline: Deadline, result: SearchResult) -> None:
        remaining = deadline.remaining()
        # A short folder budget still leaves half of it to the walk
        budget = remaining - min(self.safety_margin_seconds, remaining / 2)
        if budget <= 0:
            log.info(f"'{game_display_name}': no budget left for the full walk")
            result.truncated_by_timeout = True
            return

        token = CancellationManager()
        sink: List[str] = []
        walk_errors: List[str] = []
        worker = threading.Thread(
            target=self._walk_all,
            args=(folder, token, sink, walk_errors),
            name=f"exe-walk:{game_display_name}",
            daemon=True,
        )
        log.debug(f"'{game_display_name}': starting full walk with {budget:.1f}s budget")
        worker.start()
        worker.join(timeout=budget)

        if worker.is_alive():
            # The worker stops at its next directory; nobody waits for it
            token.cancel()
            log.warning(f"'{game_display_name}': full walk timed out after {budget:.1f}s, abandoned")
            result.truncated_by_timeout = True
            result.errors.extend(list(walk_errors))
            return

        result.errors.extend(walk_errors)
        if sink:
            self._fill(result, SearchStage.FULL_WALK, sink)
