from __future__ import annotations

import os
from pathlib import Path

import pytest

from shortcut_utils import (DesktopEntryBackend, ShortcutStatus, create_game_shortcut,
                            fallback_shortcut_filename, sanitize_shortcut_filename)


class SpacesRejectedBackend(DesktopEntryBackend):
    """Fails on any link name containing a space."""

    def write(self, link_path, target_path, display_name):
        if " " in os.path.basename(link_path):
            raise OSError("invalid name")
        super().write(link_path, target_path, display_name)


class BrokenBackend:
    extension = ".lnk"

    def __init__(self):
        self.attempts = []

    def read_target(self, link_path):
        return None

    def write(self, link_path, target_path, display_name):
        self.attempts.append(os.path.basename(link_path))
        raise OSError("access denied")


@pytest.fixture
def target(tmp_path):
    return os.path.join(str(tmp_path), "games", "Foo", "foo.exe")


def test_sanitize_replaces_ampersand_and_strips_illegal_characters():
    assert sanitize_shortcut_filename('Tom & Jerry: "Best"?') == "Tom and Jerry Best"


def test_sanitize_truncates_with_ellipsis():
    name = sanitize_shortcut_filename("A" * 100, max_length=80)

    assert len(name) == 80
    assert name.endswith("...")


def test_sanitize_drops_trailing_dots():
    assert sanitize_shortcut_filename("Stalker...") == "Stalker"


def test_fallback_name_keeps_letters_and_digits():
    assert fallback_shortcut_filename("Æon: Flux 2!") == "onFlux2"
    assert fallback_shortcut_filename("!!!") == "Game"


def test_create_shortcut(tmp_path, target):
    result = create_game_shortcut(target, "Foo", str(tmp_path), backend=DesktopEntryBackend())

    assert result.status is ShortcutStatus.CREATED
    assert result.created
    assert os.path.basename(result.link_path) == "Foo.desktop"
    assert DesktopEntryBackend().read_target(result.link_path) == target


def test_existing_shortcut_with_same_target_is_left_alone(tmp_path, target):
    backend = DesktopEntryBackend()
    first = create_game_shortcut(target, "Foo", str(tmp_path), backend=backend)
    before = Path(first.link_path).read_text(encoding="utf-8")

    second = create_game_shortcut(target, "Foo", str(tmp_path), backend=backend)

    assert second.status is ShortcutStatus.ALREADY_EXISTS_NOOP
    assert not second.created
    assert Path(first.link_path).read_text(encoding="utf-8") == before


def test_existing_shortcut_with_other_target_is_a_conflict(tmp_path, target):
    backend = DesktopEntryBackend()
    create_game_shortcut(target, "Foo", str(tmp_path), backend=backend)
    other = os.path.join(str(tmp_path), "games", "Foo", "foo_v2.exe")

    result = create_game_shortcut(other, "Foo", str(tmp_path), backend=backend)

    assert result.status is ShortcutStatus.ALREADY_EXISTS_CONFLICT
    assert result.existing_target == target
    assert backend.read_target(result.link_path) == target


def test_fallback_name_used_when_primary_write_fails(tmp_path, target):
    result = create_game_shortcut(target, "Foo Bar", str(tmp_path), backend=SpacesRejectedBackend())

    assert result.status is ShortcutStatus.CREATED_WITH_FALLBACK_NAME
    assert os.path.basename(result.link_path) == "FooBar.desktop"
    assert not os.path.exists(os.path.join(str(tmp_path), "Foo Bar.desktop"))


def test_unusable_display_name_uses_generic_fallback(tmp_path, target):
    result = create_game_shortcut(target, "???", str(tmp_path), backend=DesktopEntryBackend())

    assert result.status is ShortcutStatus.CREATED_WITH_FALLBACK_NAME
    assert os.path.basename(result.link_path) == "Game.desktop"


def test_failed_when_every_name_fails(tmp_path, target):
    backend = BrokenBackend()

    result = create_game_shortcut(target, "Foo Bar", str(tmp_path), backend=backend)

    assert result.status is ShortcutStatus.FAILED
    assert result.link_path is None
    assert "access denied" in result.message
    assert backend.attempts == ["Foo Bar.lnk", "FooBar.lnk"]
    assert os.listdir(tmp_path) == []
