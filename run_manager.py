"""
run_manager.py
Drives one run over a library root: lists the game folders, selects an
executable for each, writes the shortcuts and the categorized result logs.
"""

import os
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from thefuzz import fuzz

import config
import shortcut_utils
from exe_matcher import BlockedAudit
from selection_pipeline import (DedupRegistry, FolderDiagnostics, OutcomeKind,
                                SelectionOutcome, SelectionPipeline)
from shortcut_utils import ShortcutResult, ShortcutStatus
from utils import path_key

log = logging.getLogger(__name__)

# thefuzz token_set_ratio needed for --only to select a folder
NAME_FILTER_MIN_RATIO = 80

LOG_FILENAMES = {
    "found": "found.log",
    "not_found": "not_found.log",
    "skipped": "skipped.log",
    "errors": "errors.log",
    "blocked": "blocked.log",
    "blocked_patterns": "blocked_patterns.log",
}


class InvalidRootError(Exception):
    """The library root is missing or not a directory."""


@dataclass
class RunCounters:
    total: int = 0
    found: int = 0
    created: int = 0
    created_with_fallback_name: int = 0
    skipped: int = 0
    not_found: int = 0
    blocked: int = 0
    errored: int = 0
    timed_out: int = 0

    def as_dict(self) -> Dict[str, int]:
        return dict(self.__dict__)


@dataclass
class FolderReport:
    outcome: SelectionOutcome
    diagnostics: FolderDiagnostics
    shortcut: Optional[ShortcutResult] = None


ProgressCallback = Callable[[int, int, FolderReport], None]


def validate_root(root_path: str) -> str:
    """Return the absolute root path or raise InvalidRootError."""
    if not root_path or not str(root_path).strip():
        raise InvalidRootError("No root path given.")
    root_path = os.path.abspath(os.path.expanduser(str(root_path).strip().strip('"')))
    if not os.path.exists(root_path):
        raise InvalidRootError(f"Root path does not exist: {root_path}")
    if not os.path.isdir(root_path):
        raise InvalidRootError(f"Root path is not a directory: {root_path}")
    return root_path


def list_game_folders(root_path: str, exclude: Tuple[str, ...] = ()) -> List[Tuple[str, str]]:
    """(display name, path) of every immediate subfolder, sorted by name."""
    excluded = {path_key(p) for p in exclude}
    folders = []
    with os.scandir(root_path) as it:
        for entry in it:
            try:
                if not entry.is_dir():
                    continue
            except OSError:
                continue
            if path_key(entry.path) in excluded:
                continue
            folders.append((entry.name, entry.path))
    folders.sort(key=lambda item: (item[0].lower(), item[0]))
    return folders


def filter_by_name(folders: List[Tuple[str, str]], query: str,
                   min_ratio: int = NAME_FILTER_MIN_RATIO) -> List[Tuple[str, str]]:
    """Keep the folders whose name fuzzily matches query."""
    query = (query or "").strip().lower()
    if not query:
        return list(folders)
    selected = []
    for name, path in folders:
        ratio = fuzz.token_set_ratio(query, name.lower())
        if ratio >= min_ratio:
            log.debug(f"Name filter: '{name}' matches '{query}' ({ratio})")
            selected.append((name, path))
    return selected


class ResultLogs:
    """Appends one line per folder to the categorized log files."""

    def __init__(self, output_dir: str):
        self.output_dir = output_dir
        self.paths = {category: os.path.join(output_dir, filename)
                      for category, filename in LOG_FILENAMES.items()}
        self._lock = threading.Lock()

    def write(self, category: str, *fields) -> None:
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        line = "\t".join([timestamp] + [str(f) for f in fields])
        with self._lock:
            try:
                with open(self.paths[category], 'a', encoding='utf-8') as f:
                    f.write(line + "\n")
            except OSError as e:
                log.error(f"Unable to write to {self.paths[category]}: {e}")


class ShortcutRun:
    """One run over a library root. The DedupRegistry lives as long as the run."""

    def __init__(self, root_path: str, settings: dict, output_dir: Optional[str] = None,
                 backend=None, dry_run: bool = False, workers: int = 1,
                 name_filter: Optional[str] = None,
                 progress: Optional[ProgressCallback] = None):
        self.root_path = validate_root(root_path)
        self.settings = settings
        self.output_dir = os.path.abspath(output_dir) if output_dir else os.path.join(
            self.root_path, settings.get("output_folder_name", config.OUTPUT_FOLDER_NAME))
        self.backend = backend
        self.dry_run = dry_run
        self.workers = max(1, int(workers or 1))
        self.name_filter = name_filter
        self.progress = progress

        self.registry = DedupRegistry()
        self.audit = BlockedAudit()
        self.pipeline = SelectionPipeline.from_settings(settings, self.registry,
                                                        block_listener=self.audit)
        self.counters = RunCounters()
        self.logs: Optional[ResultLogs] = None

    def game_folders(self) -> List[Tuple[str, str]]:
        folders = list_game_folders(self.root_path, exclude=(self.output_dir,))
        if self.name_filter:
            folders = filter_by_name(folders, self.name_filter)
        return folders

    def run(self) -> Tuple[List[FolderReport], RunCounters]:
        os.makedirs(self.output_dir, exist_ok=True)
        self.logs = ResultLogs(self.output_dir)

        folders = self.game_folders()
        self.counters.total = len(folders)
        log.info(f"Processing {len(folders)} game folder(s) in '{self.root_path}'")

        def select(item):
            name, path = item
            return self.pipeline.process(path, name)

        reports: List[FolderReport] = []
        if self.workers > 1:
            with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="folder") as pool:
                # map() yields in submission order
                selections = pool.map(select, folders)
                for index, (outcome, diagnostics) in enumerate(selections, start=1):
                    reports.append(self._finish(index, len(folders), outcome, diagnostics))
        else:
            for index, item in enumerate(folders, start=1):
                outcome, diagnostics = select(item)
                reports.append(self._finish(index, len(folders), outcome, diagnostics))

        log.info(f"Run finished: {self.counters.as_dict()}")
        return reports, self.counters

    # --- Per folder bookkeeping ---

    def _finish(self, index: int, total: int, outcome: SelectionOutcome,
                diagnostics: FolderDiagnostics) -> FolderReport:
        report = FolderReport(outcome, diagnostics)
        if outcome.is_chosen and not self.dry_run:
            report.shortcut = shortcut_utils.create_game_shortcut(
                outcome.executable, outcome.game_name, self.output_dir, backend=self.backend,
                max_name_length=self.settings.get("shortcut_name_max_length", config.SHORTCUT_NAME_MAX_LENGTH))
        self._record(report)
        if self.progress is not None:
            self.progress(index, total, report)
        return report

    def _record(self, report: FolderReport) -> None:
        outcome, diagnostics, counters = report.outcome, report.diagnostics, self.counters
        game = outcome.game_name

        if diagnostics.timed_out:
            counters.timed_out += 1

        for blocked in self.audit.drain():
            self.logs.write("blocked_patterns", blocked.name, blocked.kind.value, blocked.pattern)

        if outcome.kind is OutcomeKind.CHOSEN:
            counters.found += 1
            shortcut = report.shortcut
            if shortcut is None:
                self.logs.write("found", game, outcome.executable, "dry-run")
            elif shortcut.status is ShortcutStatus.CREATED:
                counters.created += 1
                self.logs.write("found", game, outcome.executable, shortcut.link_path)
            elif shortcut.status is ShortcutStatus.CREATED_WITH_FALLBACK_NAME:
                counters.created_with_fallback_name += 1
                self.logs.write("found", game, outcome.executable, shortcut.link_path, "fallback name")
            elif shortcut.status in (ShortcutStatus.ALREADY_EXISTS_NOOP, ShortcutStatus.ALREADY_EXISTS_CONFLICT):
                counters.skipped += 1
                self.logs.write("skipped", game, shortcut.status.value, shortcut.link_path,
                                shortcut.existing_target)
            else:
                counters.errored += 1
                self.logs.write("errors", game, "shortcut", shortcut.message)
        elif outcome.kind is OutcomeKind.DUPLICATE_EXECUTABLE:
            counters.skipped += 1
            self.logs.write("skipped", game, "duplicate", outcome.executable,
                            f"claimed by {outcome.claimed_by}")
        elif outcome.kind is OutcomeKind.NO_EXECUTABLE_FOUND:
            counters.not_found += 1
            detail = "timed out" if diagnostics.timed_out else "no executable"
            self.logs.write("not_found", game, detail, outcome.cause or "")
        elif outcome.kind is OutcomeKind.ALL_CANDIDATES_BLOCKED:
            counters.blocked += 1
            fields = [", ".join(os.path.basename(p) for p in diagnostics.blocked)]
            if diagnostics.dropped:
                fields.append(f"{len(diagnostics.dropped)} dropped by score")
            self.logs.write("blocked", game, *fields)
        else:
            counters.errored += 1
            self.logs.write("errors", game, "selection", outcome.cause)
