# shortcut_utils.py
# -*- coding: utf-8 -*-

import os
import logging
import platform
import configparser
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import config
from utils import sanitize_filename, alphanumeric_filename, path_key

log = logging.getLogger(__name__)

IS_WINDOWS = platform.system() == 'Windows'

# Import winshell ONLY on Windows
WINSHELL_AVAILABLE = False
if IS_WINDOWS:
    try:
        import winshell
        from win32com.client import Dispatch # Needed to write .lnk properties
        WINSHELL_AVAILABLE = True
    except ImportError:
        logging.warning("Library 'winshell' or 'pywin32' not found. Shortcut creation disabled on Windows.")

FALLBACK_SHORTCUT_NAME = "Game"


class ShortcutStatus(Enum):
    CREATED = "created"
    CREATED_WITH_FALLBACK_NAME = "created_with_fallback_name"
    ALREADY_EXISTS_NOOP = "already_exists_noop"
    ALREADY_EXISTS_CONFLICT = "already_exists_conflict"
    FAILED = "failed"


@dataclass(frozen=True)
class ShortcutResult:
    status: ShortcutStatus
    link_path: Optional[str]
    message: str
    existing_target: Optional[str] = None

    @property
    def created(self) -> bool:
        return self.status in (ShortcutStatus.CREATED, ShortcutStatus.CREATED_WITH_FALLBACK_NAME)


class WindowsShortcutBackend:
    """Windows .lnk files through winshell / WScript.Shell."""
    extension = ".lnk"

    def read_target(self, link_path):
        return winshell.shortcut(link_path).path

    def write(self, link_path, target_path, display_name):
        shell = Dispatch('WScript.Shell')
        shortcut = shell.CreateShortCut(link_path)
        shortcut.Targetpath = target_path
        shortcut.WorkingDirectory = os.path.dirname(target_path)
        shortcut.IconLocation = f"{target_path},0"
        shortcut.Description = f"Launch {display_name}"
        shortcut.save()


class DesktopEntryBackend:
    """freedesktop .desktop entries pointing at the same executable."""
    extension = ".desktop"

    def read_target(self, link_path):
        parser = configparser.ConfigParser(interpolation=None)
        parser.read(link_path, encoding='utf-8')
        if not parser.has_section('Desktop Entry'):
            return None
        exec_line = parser.get('Desktop Entry', 'Exec', fallback='').strip()
        if len(exec_line) >= 2 and exec_line[0] == exec_line[-1] == '"':
            exec_line = exec_line[1:-1]
        return exec_line or None

    def write(self, link_path, target_path, display_name):
        desktop_content = [
            "[Desktop Entry]",
            "Type=Application",
            f"Name={display_name}",
            f"Comment=Launch {display_name}",
            f'Exec="{target_path}"',
            f"Path={os.path.dirname(target_path)}",
            "Terminal=false",
            "Categories=Game;",
        ]
        # 'x' refuses to overwrite a file created since the existence check
        with open(link_path, 'x', encoding='utf-8') as desktop_file:
            desktop_file.write('\n'.join(desktop_content) + '\n')
        os.chmod(link_path, 0o755)


def get_default_backend():
    """Backend for the current OS, or None when shortcuts cannot be written."""
    if IS_WINDOWS:
        return WindowsShortcutBackend() if WINSHELL_AVAILABLE else None
    return DesktopEntryBackend()


def sanitize_shortcut_filename(name, max_length=config.SHORTCUT_NAME_MAX_LENGTH):
    """Filesystem-safe shortcut name: illegal characters removed, '&' -> 'and', truncated with '...'."""
    return sanitize_filename(name, max_length=max_length)


def fallback_shortcut_filename(name, max_length=config.SHORTCUT_NAME_MAX_LENGTH):
    """Letters and digits only; used when the regular name cannot be written."""
    return alphanumeric_filename(name, max_length=max_length) or FALLBACK_SHORTCUT_NAME


def _check_existing(backend, link_path, target_path) -> Optional[ShortcutResult]:
    if not os.path.lexists(link_path):
        return None
    try:
        existing_target = backend.read_target(link_path)
    except Exception as e:
        log.warning(f"Unable to read existing shortcut '{link_path}': {e}")
        existing_target = None

    if existing_target and path_key(existing_target) == path_key(target_path):
        return ShortcutResult(ShortcutStatus.ALREADY_EXISTS_NOOP, link_path,
                              "Shortcut already exists with the same target.", existing_target)
    return ShortcutResult(ShortcutStatus.ALREADY_EXISTS_CONFLICT, link_path,
                          f"Shortcut already exists and points to '{existing_target}'.", existing_target)


def create_game_shortcut(target_path, display_name, output_dir, backend=None,
                         max_name_length=config.SHORTCUT_NAME_MAX_LENGTH) -> ShortcutResult:
    """
    Create a shortcut named after display_name in output_dir pointing to target_path.
    Tries the sanitized name first, then an alphanumeric-only fallback name.
    """
    backend = backend or get_default_backend()
    if backend is None:
        msg = "Required libraries (winshell, pywin32) not found to create shortcuts on Windows."
        log.error(msg)
        return ShortcutResult(ShortcutStatus.FAILED, None, msg)

    attempts = []
    primary_name = sanitize_shortcut_filename(display_name, max_name_length)
    if primary_name:
        attempts.append((primary_name, ShortcutStatus.CREATED))
    fallback_name = fallback_shortcut_filename(display_name, max_name_length)
    if fallback_name != primary_name:
        attempts.append((fallback_name, ShortcutStatus.CREATED_WITH_FALLBACK_NAME))

    last_error = None
    for name, success_status in attempts:
        link_path = os.path.join(output_dir, name + backend.extension)

        existing = _check_existing(backend, link_path, target_path)
        if existing is not None:
            return existing

        try:
            backend.write(link_path, target_path, display_name)
        except Exception as e:
            last_error = e
            log.warning(f"Unable to create shortcut '{link_path}': {type(e).__name__} - {e}")
            continue

        msg = f"Shortcut for '{display_name}' created: {link_path}"
        log.info(msg)
        return ShortcutResult(success_status, link_path, msg)

    msg = f"Shortcut creation error for '{display_name}': {last_error}"
    log.error(msg)
    return ShortcutResult(ShortcutStatus.FAILED, None, msg)
