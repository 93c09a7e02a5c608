# settings_manager.py
import json
import os
import copy
import config # Import for default values
import logging


SETTINGS_FILENAME = "settings.json"

# Keys whose value must be a list of strings
_STRING_LIST_KEYS = (
    "exe_blacklist",
    "bad_name_substrings",
    "good_directory_fragments",
    "priority_exe_names",
    "common_exe_subdirs",
    "engine_exe_layouts",
    "executable_extensions",
)

# Keys whose value must be an int >= minimum
_INT_KEYS = {
    "max_search_depth": 1,
    "folder_timeout_seconds": 1,
    "search_safety_margin_seconds": 0,
    "depth_penalty_threshold": 0,
    "shortcut_name_max_length": 8,
}


def get_default_settings_path() -> str:
    app_dir = config.get_app_data_folder()
    return os.path.join(app_dir, SETTINGS_FILENAME)


def get_default_settings() -> dict:
    """Return a fresh copy of the built-in settings."""
    return copy.deepcopy({
        "max_search_depth": config.MAX_SEARCH_DEPTH,
        "folder_timeout_seconds": config.FOLDER_TIMEOUT_SECONDS,
        "search_safety_margin_seconds": config.SEARCH_SAFETY_MARGIN_SECONDS,
        "depth_penalty_threshold": config.DEPTH_PENALTY_THRESHOLD,
        "output_folder_name": config.OUTPUT_FOLDER_NAME,
        "shortcut_name_max_length": config.SHORTCUT_NAME_MAX_LENGTH,
        "executable_extensions": config.EXECUTABLE_EXTENSIONS,
        "exe_blacklist": config.EXE_BLACKLIST,
        "bad_name_substrings": config.BAD_NAME_SUBSTRINGS,
        "good_directory_fragments": config.GOOD_DIRECTORY_FRAGMENTS,
        "priority_exe_names": config.PRIORITY_EXE_NAMES,
        "common_exe_subdirs": config.COMMON_EXE_SUBDIRS,
        "engine_exe_layouts": config.ENGINE_EXE_LAYOUTS,
        "manual_overrides": config.MANUAL_EXE_OVERRIDES,
        # Entries appended to the built-in tables instead of replacing them
        "extra_exe_blacklist": [],
        "extra_bad_name_substrings": [],
    })


def validate_settings(settings: dict, defaults: dict | None = None) -> dict:
    """Replace invalid values with defaults, logging a warning for each one."""
    if defaults is None:
        defaults = get_default_settings()

    for key, minimum in _INT_KEYS.items():
        value = settings.get(key)
        # bool is an int subclass, reject it explicitly
        if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
            logging.warning(f"Invalid {key} value ('{value}'), using default {defaults[key]}.")
            settings[key] = defaults[key]

    for key in _STRING_LIST_KEYS + ("extra_exe_blacklist", "extra_bad_name_substrings"):
        value = settings.get(key)
        if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
            logging.warning(f"'{key}' in the settings file is not a valid list of strings, using the default list.")
            settings[key] = defaults[key]

    overrides = settings.get("manual_overrides")
    if not isinstance(overrides, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in overrides.items()):
        logging.warning("'manual_overrides' in the settings file is not a valid name -> path mapping, using the default table.")
        settings["manual_overrides"] = defaults["manual_overrides"]

    folder_name = settings.get("output_folder_name")
    if not isinstance(folder_name, str) or not folder_name.strip():
        logging.warning(f"Invalid output_folder_name ('{folder_name}'), using default '{defaults['output_folder_name']}'.")
        settings["output_folder_name"] = defaults["output_folder_name"]

    # Extensions are compared lowercase with the leading dot
    settings["executable_extensions"] = [
        ext.lower() if ext.startswith('.') else f".{ext.lower()}"
        for ext in settings["executable_extensions"] if ext
    ] or list(defaults["executable_extensions"])

    return settings


def load_settings(settings_path: str | None = None):
    """Load settings from settings_path (or the app data folder).

    Returns (settings, first_launch). first_launch is True when the file is
    missing or unreadable, in which case the defaults are returned.
    """
    settings_file_path = settings_path or get_default_settings_path()
    defaults = get_default_settings()

    if not os.path.exists(settings_file_path):
        logging.info(f"Settings file '{settings_file_path}' not found, using defaults.")
        return defaults, True

    try:
        with open(settings_file_path, 'r', encoding='utf-8') as f:
            user_settings = json.load(f)
        if not isinstance(user_settings, dict):
            raise TypeError(f"settings root must be an object, got {type(user_settings).__name__}")
        logging.info(f"Settings loaded successfully from '{settings_file_path}'.")
        # User settings override defaults
        settings = get_default_settings()
        settings.update(user_settings)
        return validate_settings(settings, defaults), False
    except (json.JSONDecodeError, TypeError, OSError):
        logging.error(f"Failed to read or validate '{settings_file_path}'...", exc_info=True)
        return defaults, True


def save_settings(settings_dict: dict, settings_path: str | None = None) -> bool:
    """Write settings to disk. Returns True on success."""
    settings_file_path = settings_path or get_default_settings_path()
    try:
        folder = os.path.dirname(settings_file_path)
        if folder:
            os.makedirs(folder, exist_ok=True)
        with open(settings_file_path, 'w', encoding='utf-8') as f:
            json.dump(settings_dict, f, indent=4, ensure_ascii=False)
        logging.info(f"Settings saved to '{settings_file_path}'.")
        return True
    except (OSError, TypeError) as e:
        logging.error(f"Error saving settings to '{settings_file_path}': {e}", exc_info=True)
        return False
