# utils.py
import os
import re

_ILLEGAL_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1F]')


def path_key(path):
    """Normalized key for comparing two paths on the current platform."""
    return os.path.normcase(os.path.normpath(os.path.abspath(path)))


def separator_count(path):
    """Number of path separators in the normalized form of path."""
    normalized = os.path.normpath(path)
    count = normalized.count(os.sep)
    if os.altsep:
        count += normalized.count(os.altsep)
    return count


def path_depth(path, root_path):
    """
    Depth of path below root_path, measured as the difference in separator
    count. A file directly inside root_path has depth 1.
    """
    return separator_count(path) - separator_count(root_path)


def sanitize_filename(filename, max_length=None, ellipsis="..."):
    """
    Sanitizes a string to be safe for use as a filename.
    Strips characters that are invalid on Windows (and control characters),
    replaces '&' with 'and', collapses whitespace and optionally truncates
    to max_length characters, ending with the ellipsis marker.
    Returns an empty string when nothing usable is left.
    """
    if not isinstance(filename, str):
        filename = str(filename)

    sanitized = _ILLEGAL_FILENAME_CHARS.sub('', filename)
    sanitized = sanitized.replace('&', ' and ')
    sanitized = re.sub(r'\s+', ' ', sanitized)
    # Trailing dots and spaces are dropped by Windows
    sanitized = sanitized.strip(' .')

    if max_length and len(sanitized) > max_length:
        keep = max(1, max_length - len(ellipsis))
        sanitized = sanitized[:keep].rstrip(' .') + ellipsis

    return sanitized


def alphanumeric_filename(filename, max_length=None):
    """Aggressive fallback: keep only ASCII letters and digits."""
    if not isinstance(filename, str):
        filename = str(filename)
    cleaned = re.sub(r'[^A-Za-z0-9]', '', filename)
    if max_length and len(cleaned) > max_length:
        cleaned = cleaned[:max_length]
    return cleaned
