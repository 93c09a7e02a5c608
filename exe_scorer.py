"""
exe_scorer.py
Desirability score of a candidate executable for a game folder.
"""

import os
import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence, Tuple

import config
from exe_matcher import PathMatcher
from utils import path_depth

log = logging.getLogger(__name__)


class ScoreWeight(Enum):
    """Weights used by ExeScorer.score()."""
    BLOCKED = -1
    EXACT_NAME_MATCH = 10000
    SHIPPING_NAME_MATCH = 5000
    SHIPPING_CONTAINS_NAME = 500
    CONTAINS_GAME = 150
    CONTAINS_FOLDER_NAME = 100
    FOLDER_WORD = 20
    PRIORITY_NAME = 50
    GOOD_DIRECTORY = 30
    DEEP_PATH_PENALTY = -10


class Threshold:
    """Numeric thresholds used by the scorer."""
    MIN_FOLDER_WORD_LENGTH = 4  # words must be longer than 3 characters
    SHIPPING_SUFFIX = "-win64-shipping"


@dataclass(frozen=True)
class ScoredCandidate:
    path: str
    score: int

    @property
    def name(self) -> str:
        return os.path.basename(self.path)


def exe_base_name(exe_path: str) -> str:
    """File name without folder and extension."""
    return os.path.splitext(os.path.basename(exe_path))[0]


class ExeScorer:
    """
    Scores a candidate executable against the folder display name.

    Rules, in order:
      1. blocked name (exact blacklist or bad substring) -> -1
      2. name equals the folder name -> EXACT_NAME_MATCH
      3. name equals "<folder>-win64-shipping" -> SHIPPING_NAME_MATCH
      4. otherwise the sum of the additive bonuses and penalties below.

    The score only depends on the arguments and the pattern tables.
    """

    def __init__(self, matcher: Optional[PathMatcher] = None,
                 depth_penalty_threshold: int = config.DEPTH_PENALTY_THRESHOLD):
        self.matcher = matcher or PathMatcher()
        self.depth_penalty_threshold = depth_penalty_threshold

    def score(self, exe_path: str, folder_display_name: str, root_path: str) -> int:
        base_name = exe_base_name(exe_path)

        if self.matcher.classify(base_name).blocked:
            return ScoreWeight.BLOCKED.value

        name = base_name.lower()
        folder = (folder_display_name or "").lower().strip()

        if folder and name == folder:
            return ScoreWeight.EXACT_NAME_MATCH.value

        if folder and name == folder + Threshold.SHIPPING_SUFFIX:
            return ScoreWeight.SHIPPING_NAME_MATCH.value

        score = 0

        if folder and folder in name and "win64" in name and "shipping" in name:
            score += ScoreWeight.SHIPPING_CONTAINS_NAME.value

        if "game" in name:
            score += ScoreWeight.CONTAINS_GAME.value

        if folder and folder in name:
            score += ScoreWeight.CONTAINS_FOLDER_NAME.value

        for word in folder.split():
            if len(word) >= Threshold.MIN_FOLDER_WORD_LENGTH and word in name:
                score += ScoreWeight.FOLDER_WORD.value

        if self.matcher.is_priority_name(name):
            score += ScoreWeight.PRIORITY_NAME.value

        if self.matcher.is_in_good_directory(exe_path):
            score += ScoreWeight.GOOD_DIRECTORY.value

        if root_path and path_depth(exe_path, root_path) > self.depth_penalty_threshold:
            score += ScoreWeight.DEEP_PATH_PENALTY.value

        return score

    def rank(self, exe_paths: Sequence[str], folder_display_name: str,
             root_path: str) -> Tuple[List[ScoredCandidate], List[str], List[str]]:
        """
        Score every path. Returns (ranked, blocked, dropped): the non-negative
        candidates best first, the paths rejected by a name pattern, and the
        paths whose additive score fell below zero (deep path penalty).
        sorted() is stable: equal scores keep the order of exe_paths.
        """
        scored = [ScoredCandidate(path, self.score(path, folder_display_name, root_path))
                  for path in exe_paths]
        # Additive weights are multiples of 10, so -1 only comes from a pattern
        blocked = [c.path for c in scored if c.score == ScoreWeight.BLOCKED.value]
        dropped = [c.path for c in scored if c.score < 0 and c.score != ScoreWeight.BLOCKED.value]
        kept = [candidate for candidate in scored if candidate.score >= 0]
        ranked = sorted(kept, key=lambda candidate: candidate.score, reverse=True)
        log.debug(f"Ranked {len(ranked)}/{len(scored)} candidates for '{folder_display_name}'")
        return ranked, blocked, dropped
