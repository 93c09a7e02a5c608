from __future__ import annotations

import os
import threading
import time

import settings_manager
from exe_matcher import BlockedAudit
from exe_search import BoundedSearcher, SearchResult, SearchStage
from selection_pipeline import (DedupRegistry, OutcomeKind, SelectionConfig,
                                SelectionPipeline)


def slow_walker(top, topdown=True, onerror=None):
    while True:
        time.sleep(0.05)
        yield top, [], []


def make_pipeline(registry=None, overrides=None, timeout_seconds=30, searcher=None):
    return SelectionPipeline(
        registry if registry is not None else DedupRegistry(),
        SelectionConfig(max_depth=6, timeout_seconds=timeout_seconds, manual_overrides=overrides or {}),
        searcher=searcher or BoundedSearcher(safety_margin_seconds=0),
    )


class ExplodingSearcher:
    def find(self, *args, **kwargs):
        raise RuntimeError("disk vanished")


class UnreadableSearcher:
    def find(self, *args, **kwargs):
        return SearchResult(errors=["/games/Locked: Permission denied"])


def test_exact_name_beats_shipping_name_in_same_stage(tmp_path, touch):
    folder = tmp_path / "half-life 2"
    exact = touch(folder / "half-life 2.exe")
    touch(folder / "half-life 2-win64-shipping.exe")

    outcome, diagnostics = make_pipeline().process(str(folder))

    assert outcome.kind is OutcomeKind.CHOSEN
    assert outcome.game_name == "half-life 2"
    assert outcome.executable == str(exact)
    assert diagnostics.via_exact_name
    assert diagnostics.stage is None
    assert [c.score for c in diagnostics.ranked] == [10000]


def test_exact_name_in_root_beats_shipping_build_found_first(tmp_path, touch):
    folder = tmp_path / "Half-Life 2"
    exact = touch(folder / "half-life 2.exe")
    touch(folder / "Binaries" / "Win64" / "half-life 2-win64-shipping.exe")

    outcome, diagnostics = make_pipeline().process(str(folder))

    assert outcome.executable == str(exact)
    assert diagnostics.via_exact_name
    assert diagnostics.ranked[0].score == 10000


def test_exact_name_matches_case_insensitively(tmp_path, touch):
    folder = tmp_path / "Outer Reach"
    exact = touch(folder / "OUTER REACH.EXE")
    touch(folder / "Game" / "other.exe")

    outcome, diagnostics = make_pipeline().process(str(folder))

    assert outcome.executable == str(exact)
    assert diagnostics.via_exact_name


def test_blocked_exact_name_falls_back_to_search(tmp_path, touch):
    folder = tmp_path / "Setup"
    touch(folder / "Setup.exe")
    play = touch(folder / "play.exe")

    outcome, diagnostics = make_pipeline().process(str(folder))

    assert outcome.executable == str(play)
    assert not diagnostics.via_exact_name
    assert diagnostics.stage is SearchStage.ROOT_LISTING
    assert [os.path.basename(p) for p in diagnostics.blocked] == ["Setup.exe"]

def test_shipping_build_wins_inside_engine_layout(tmp_path, touch):
    folder = tmp_path / "Outer Reach"
    shipping = touch(folder / "OuterReach" / "Binaries" / "Win64" / "Outer Reach-Win64-Shipping.exe")
    touch(folder / "OuterReach" / "Binaries" / "Win64" / "CrashReportClient.exe")

    outcome, diagnostics = make_pipeline().process(str(folder), "Outer Reach")

    assert outcome.executable == str(shipping)
    assert diagnostics.stage is SearchStage.ENGINE_LAYOUTS
    assert len(diagnostics.blocked) == 1


def test_only_blocked_candidates(tmp_path, touch):
    folder = tmp_path / "Generic Title"
    touch(folder / "uninstall.exe")
    touch(folder / "setup.exe")

    outcome, diagnostics = make_pipeline().process(str(folder))

    assert outcome.kind is OutcomeKind.ALL_CANDIDATES_BLOCKED
    assert outcome.executable is None
    assert sorted(os.path.basename(p) for p in diagnostics.blocked) == ["setup.exe", "uninstall.exe"]
    assert diagnostics.ranked == []


def test_blocked_patterns_reach_the_listener(tmp_path, touch):
    folder = tmp_path / "Generic Title"
    touch(folder / "uninstall.exe")
    touch(folder / "setup.exe")
    audit = BlockedAudit()
    pipeline = SelectionPipeline.from_settings(settings_manager.get_default_settings(), DedupRegistry(),
                                               block_listener=audit)

    pipeline.process(str(folder))

    assert {entry.pattern for entry in audit.drain()} == {"setup", "uninstall"}


def test_timed_out_search_reports_no_executable(tmp_path):
    folder = tmp_path / "Big Game"
    folder.mkdir()
    searcher = BoundedSearcher(safety_margin_seconds=0, walker=slow_walker)
    start = time.monotonic()

    outcome, diagnostics = make_pipeline(timeout_seconds=1, searcher=searcher).process(str(folder))

    assert outcome.kind is OutcomeKind.NO_EXECUTABLE_FOUND
    assert diagnostics.timed_out
    assert "timed out" in outcome.cause
    assert time.monotonic() - start < 3


def test_empty_folder_reports_no_executable(tmp_path):
    folder = tmp_path / "Empty"
    folder.mkdir()

    outcome, diagnostics = make_pipeline().process(str(folder))

    assert outcome.kind is OutcomeKind.NO_EXECUTABLE_FOUND
    assert outcome.cause is None
    assert not diagnostics.timed_out


def test_unreadable_folder_reports_the_error(tmp_path):
    pipeline = make_pipeline(searcher=UnreadableSearcher())

    outcome, diagnostics = pipeline.process(str(tmp_path), "Locked")

    assert outcome.kind is OutcomeKind.NO_EXECUTABLE_FOUND
    assert outcome.cause == "/games/Locked: Permission denied"
    assert diagnostics.errors == ["/games/Locked: Permission denied"]


def test_processing_is_idempotent(tmp_path, touch):
    folder = tmp_path / "Portal"
    touch(folder / "bin" / "portal.exe")
    touch(folder / "bin" / "portal_dx9.exe")
    pipeline = make_pipeline()

    first, _ = pipeline.process(str(folder))
    second, _ = pipeline.process(str(folder))
    fresh, _ = make_pipeline().process(str(folder))

    assert first == second == fresh
    assert first.kind is OutcomeKind.CHOSEN


def test_equal_scores_keep_search_order(tmp_path, touch):
    folder = tmp_path / "Untitled"
    alpha = touch(folder / "alpha.exe")
    touch(folder / "beta.exe")

    outcome, diagnostics = make_pipeline().process(str(folder))

    assert diagnostics.ranked[0].score == diagnostics.ranked[1].score
    assert outcome.executable == str(alpha)


def test_override_is_used_when_file_exists(tmp_path, touch):
    folder = tmp_path / "Big Title"
    real = touch(folder / "sub" / "deep" / "real.exe")
    touch(folder / "Big Title.exe")
    pipeline = make_pipeline(overrides={"Big Title": "sub/deep/real.exe"})

    outcome, diagnostics = pipeline.process(str(folder))

    assert outcome.executable == str(real)
    assert diagnostics.via_override
    assert diagnostics.stage is None


def test_override_accepts_backslashes(tmp_path, touch):
    folder = tmp_path / "Big Title"
    real = touch(folder / "sub" / "real.exe")
    pipeline = make_pipeline(overrides={"Big Title": "sub\\real.exe"})

    outcome, _ = pipeline.process(str(folder))

    assert outcome.executable == str(real)


def test_missing_override_falls_back_to_search(tmp_path, touch):
    folder = tmp_path / "Big Title"
    exact = touch(folder / "Big Title.exe")
    pipeline = make_pipeline(overrides={"Big Title": "gone.exe"})

    outcome, diagnostics = pipeline.process(str(folder))

    assert outcome.executable == str(exact)
    assert not diagnostics.via_override
    assert diagnostics.via_exact_name


def test_shared_executable_is_claimed_once(tmp_path, touch):
    shared = touch(tmp_path / "Common" / "Play.exe")
    (tmp_path / "First").mkdir()
    (tmp_path / "Second").mkdir()
    registry = DedupRegistry()
    pipeline = make_pipeline(registry, overrides={
        "First": "../Common/Play.exe",
        "Second": "../Common/Play.exe",
    })

    first, _ = pipeline.process(str(tmp_path / "First"))
    second, _ = pipeline.process(str(tmp_path / "Second"))

    assert first.kind is OutcomeKind.CHOSEN
    assert second.kind is OutcomeKind.DUPLICATE_EXECUTABLE
    assert second.claimed_by == "First"
    assert second.executable == str(shared)
    assert registry.snapshot() == {str(shared): "First"}


def test_registry_claim_semantics():
    registry = DedupRegistry()

    assert registry.claim("/games/A/a.exe", "A") is None
    assert registry.claim("/games/A/a.exe", "A") is None
    assert registry.claim("/games/A/../A/a.exe", "B") == "A"
    assert registry.claimed_by("/games/A/a.exe") == "A"
    assert "/games/A/a.exe" in registry
    assert len(registry) == 1


def test_concurrent_claims_have_one_winner():
    registry = DedupRegistry()
    barrier = threading.Barrier(8)
    results = {}

    def claim(game):
        barrier.wait()
        results[game] = registry.claim("/games/Shared/play.exe", game)

    threads = [threading.Thread(target=claim, args=(f"Game {i}",)) for i in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    winners = [game for game, holder in results.items() if holder is None]
    assert len(results) == 8
    assert len(winners) == 1
    assert {holder for holder in results.values() if holder is not None} == {winners[0]}
    assert registry.snapshot() == {"/games/Shared/play.exe": winners[0]}

def test_unexpected_exception_becomes_error_outcome(tmp_path):
    outcome, _ = make_pipeline(searcher=ExplodingSearcher()).process(str(tmp_path), "Broken")

    assert outcome.kind is OutcomeKind.ERROR
    assert outcome.cause == "RuntimeError: disk vanished"
    assert outcome.game_name == "Broken"
