"""
selection_pipeline.py
Per-folder selection of the game executable: override table, exact name check,
staged search, scoring, tie-break and the run-wide duplicate check.
"""

import os
import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Mapping, Optional, Tuple

import config
from exe_matcher import PathMatcher, PatternTables, BlockListener
from exe_scorer import ExeScorer, ScoredCandidate, ScoreWeight
from exe_search import BoundedSearcher, SearchLayout, SearchStage
from utils import path_key

log = logging.getLogger(__name__)


class OutcomeKind(Enum):
    CHOSEN = "chosen"
    NO_EXECUTABLE_FOUND = "no_executable_found"
    ALL_CANDIDATES_BLOCKED = "all_candidates_blocked"
    DUPLICATE_EXECUTABLE = "duplicate_executable"
    ERROR = "error"


@dataclass(frozen=True)
class SelectionOutcome:
    kind: OutcomeKind
    game_name: str
    folder_path: str
    executable: Optional[str] = None
    claimed_by: Optional[str] = None
    cause: Optional[str] = None

    @classmethod
    def chosen(cls, game_name, folder_path, executable):
        return cls(OutcomeKind.CHOSEN, game_name, folder_path, executable=executable)

    @classmethod
    def no_executable_found(cls, game_name, folder_path, cause=None):
        return cls(OutcomeKind.NO_EXECUTABLE_FOUND, game_name, folder_path, cause=cause)

    @classmethod
    def all_candidates_blocked(cls, game_name, folder_path):
        return cls(OutcomeKind.ALL_CANDIDATES_BLOCKED, game_name, folder_path)

    @classmethod
    def duplicate_executable(cls, game_name, folder_path, executable, claimed_by):
        return cls(OutcomeKind.DUPLICATE_EXECUTABLE, game_name, folder_path,
                   executable=executable, claimed_by=claimed_by)

    @classmethod
    def error(cls, game_name, folder_path, cause):
        return cls(OutcomeKind.ERROR, game_name, folder_path, cause=cause)

    @property
    def is_chosen(self) -> bool:
        return self.kind is OutcomeKind.CHOSEN


@dataclass
class FolderDiagnostics:
    stage: Optional[SearchStage] = None
    timed_out: bool = False
    via_override: bool = False
    via_exact_name: bool = False
    files_found: int = 0
    ranked: List[ScoredCandidate] = field(default_factory=list)
    blocked: List[str] = field(default_factory=list)
    dropped: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    elapsed_seconds: float = 0.0


class DedupRegistry:
    """
    Executable path -> game name that claimed it, for the lifetime of one run.
    Entries are never removed. claim() is an atomic check-then-set.
    """

    def __init__(self):
        self._claims: Dict[str, Tuple[str, str]] = {}
        self._lock = threading.Lock()

    def claim(self, executable_path: str, game_name: str) -> Optional[str]:
        """
        Claim executable_path for game_name.
        Returns None on success (or if game_name already holds it),
        otherwise the name of the game holding the claim.
        """
        key = path_key(executable_path)
        with self._lock:
            existing = self._claims.get(key)
            if existing is None:
                self._claims[key] = (executable_path, game_name)
                return None
            holder = existing[1]
        return None if holder == game_name else holder

    def claimed_by(self, executable_path: str) -> Optional[str]:
        with self._lock:
            existing = self._claims.get(path_key(executable_path))
        return existing[1] if existing else None

    def snapshot(self) -> Dict[str, str]:
        with self._lock:
            return {path: game for path, game in self._claims.values()}

    def __len__(self):
        with self._lock:
            return len(self._claims)

    def __contains__(self, executable_path):
        return self.claimed_by(executable_path) is not None


@dataclass(frozen=True)
class SelectionConfig:
    max_depth: int = config.MAX_SEARCH_DEPTH
    timeout_seconds: int = config.FOLDER_TIMEOUT_SECONDS
    manual_overrides: Mapping[str, str] = field(default_factory=lambda: dict(config.MANUAL_EXE_OVERRIDES))
    executable_extensions: Tuple[str, ...] = tuple(config.EXECUTABLE_EXTENSIONS)

    @classmethod
    def from_settings(cls, settings: dict) -> "SelectionConfig":
        return cls(
            max_depth=settings.get("max_search_depth", config.MAX_SEARCH_DEPTH),
            timeout_seconds=settings.get("folder_timeout_seconds", config.FOLDER_TIMEOUT_SECONDS),
            manual_overrides=dict(settings.get("manual_overrides", config.MANUAL_EXE_OVERRIDES)),
            executable_extensions=tuple(
                ext.lower() for ext in settings.get("executable_extensions", config.EXECUTABLE_EXTENSIONS)),
        )


class SelectionPipeline:
    """Picks one executable per game folder. The registry is owned by the caller."""

    def __init__(self, registry: DedupRegistry, selection_config: Optional[SelectionConfig] = None,
                 searcher: Optional[BoundedSearcher] = None, scorer: Optional[ExeScorer] = None):
        self.registry = registry
        self.config = selection_config or SelectionConfig()
        self.searcher = searcher or BoundedSearcher()
        self.scorer = scorer or ExeScorer()

    @classmethod
    def from_settings(cls, settings: dict, registry: DedupRegistry,
                      block_listener: Optional[BlockListener] = None) -> "SelectionPipeline":
        matcher = PathMatcher(PatternTables.from_settings(settings), block_listener=block_listener)
        scorer = ExeScorer(matcher, depth_penalty_threshold=settings.get(
            "depth_penalty_threshold", config.DEPTH_PENALTY_THRESHOLD))
        searcher = BoundedSearcher(
            SearchLayout.from_settings(settings),
            safety_margin_seconds=settings.get(
                "search_safety_margin_seconds", config.SEARCH_SAFETY_MARGIN_SECONDS),
        )
        return cls(registry, SelectionConfig.from_settings(settings), searcher, scorer)

    def process(self, folder_path: str, game_name: Optional[str] = None
                ) -> Tuple[SelectionOutcome, FolderDiagnostics]:
        """Select the executable for one folder. Never raises."""
        game_name = game_name or os.path.basename(os.path.normpath(folder_path))
        diagnostics = FolderDiagnostics()
        try:
            return self._select(folder_path, game_name, diagnostics), diagnostics
        except Exception as e:
            log.error(f"Unexpected error while processing '{game_name}': {e}", exc_info=True)
            cause = f"{type(e).__name__}: {e}"
            return SelectionOutcome.error(game_name, folder_path, cause), diagnostics

    # --- Steps ---

    def _override_path(self, folder_path: str, game_name: str) -> Optional[str]:
        relative = self.config.manual_overrides.get(game_name)
        if not relative:
            return None
        candidate = os.path.normpath(os.path.join(folder_path, *relative.replace('\\', '/').split('/')))
        if os.path.isfile(candidate):
            return candidate
        log.info(f"Override for '{game_name}' points to a missing file ({candidate}), searching instead.")
        return None

    def _exact_name_path(self, folder_path: str, game_name: str) -> Optional[ScoredCandidate]:
        """'<folder>/<game name>.exe' in the folder root, matched case-insensitively."""
        wanted = {f"{game_name}{ext}".lower() for ext in self.config.executable_extensions}
        try:
            with os.scandir(folder_path) as it:
                entries = sorted((e for e in it if e.name.lower() in wanted), key=lambda e: e.name)
        except OSError:
            # The staged search reports unreadable folders
            return None
        # No listener: the staged search reports blocked names itself
        matcher = PathMatcher(self.scorer.matcher.tables)
        for entry in entries:
            try:
                if not entry.is_file():
                    continue
            except OSError:
                continue
            if not matcher.is_blocked(os.path.splitext(entry.name)[0]):
                return ScoredCandidate(entry.path, ScoreWeight.EXACT_NAME_MATCH.value)
        return None

    def _select(self, folder_path: str, game_name: str,
                diagnostics: FolderDiagnostics) -> SelectionOutcome:
        winner = self._override_path(folder_path, game_name)
        if winner:
            diagnostics.via_override = True
            diagnostics.files_found = 1
            log.debug(f"'{game_name}': using override {winner}")
        else:
            exact = self._exact_name_path(folder_path, game_name)
            if exact is not None:
                # An exact name wins outright, whatever stage would find other files first
                diagnostics.via_exact_name = True
                diagnostics.files_found = 1
                diagnostics.ranked = [exact]
                winner = exact.path
                log.debug(f"'{game_name}': exact name match {winner}")
            else:
                search = self.searcher.find(folder_path, game_name,
                                            self.config.max_depth, self.config.timeout_seconds)
                diagnostics.stage = search.stage
                diagnostics.timed_out = search.truncated_by_timeout
                diagnostics.errors = list(search.errors)
                diagnostics.elapsed_seconds = search.elapsed_seconds
                diagnostics.files_found = len(search.files)

                if not search.files:
                    cause = None
                    if search.errors:
                        cause = "; ".join(search.errors)
                    elif search.truncated_by_timeout:
                        cause = f"search timed out after {self.config.timeout_seconds}s"
                    return SelectionOutcome.no_executable_found(game_name, folder_path, cause)

                # Ties keep the search order
                diagnostics.ranked, diagnostics.blocked, diagnostics.dropped = self.scorer.rank(
                    search.paths, game_name, folder_path)
                if not diagnostics.ranked:
                    return SelectionOutcome.all_candidates_blocked(game_name, folder_path)
                winner = diagnostics.ranked[0].path

        holder = self.registry.claim(winner, game_name)
        if holder is not None:
            log.info(f"'{game_name}': {winner} already claimed by '{holder}'")
            return SelectionOutcome.duplicate_executable(game_name, folder_path, winner, holder)
        return SelectionOutcome.chosen(game_name, folder_path, winner)
