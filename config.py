# config.py
import os
import logging
import platform


# --- Application name (used for the app data folder) ---
APP_NAME = "GameShortcutMaker"

# --- Find/create the app data folder ---
def get_app_data_folder():
    """Return the app data folder (%LOCALAPPDATA% on Windows) and create it
       if it does not exist. Falls back to the current directory."""
    system = platform.system()
    base_path = None
    app_folder = None

    try:
        if system == "Windows":
            base_path = os.getenv('LOCALAPPDATA')
        elif system == "Darwin":
            base_path = os.path.expanduser('~/Library/Application Support')
        elif system == "Linux":
            # XDG Base Directory Specification
            base_path = os.getenv('XDG_DATA_HOME', os.path.expanduser('~/.local/share'))

        if not base_path:
            logging.error("Unable to determine the user data folder. Using the current folder as fallback.")
            app_folder = os.path.abspath(APP_NAME)
        else:
            app_folder = os.path.join(base_path, APP_NAME)

        if not os.path.exists(app_folder):
            try:
                os.makedirs(app_folder, exist_ok=True)
                logging.info(f"Created application data folder: {app_folder}")
            except OSError as e:
                # load/save will report the failure when they touch the folder
                logging.error(f"Unable to create data folder {app_folder}: {e}.")

    except Exception as e:
        logging.error(f"Unexpected error in get_app_data_folder: {e}. Falling back to CWD.", exc_info=True)
        app_folder = os.path.abspath(APP_NAME)

    return app_folder


# --- Search limits ---
MAX_SEARCH_DEPTH = 6
FOLDER_TIMEOUT_SECONDS = 60
# Stage H gets the remaining budget minus this margin
SEARCH_SAFETY_MARGIN_SECONDS = 5
# Executables deeper than this (relative to the game folder) get a small penalty
DEPTH_PENALTY_THRESHOLD = 3

# --- Output ---
OUTPUT_FOLDER_NAME = "_Shortcuts"
SHORTCUT_NAME_MAX_LENGTH = 80

EXECUTABLE_EXTENSIONS = [
    '.exe',
]

# Exact (lowercase, no extension) names that are never the game
EXE_BLACKLIST = [
    # Uninstallers
    'unins000',
    'unins001',
    'uninst',
    'uninstaller',
    'au_',
    # Crash reporters
    'crashreportclient',
    'crashpad_handler',
    'crashsender',
    'crashsender1403',
    'bugsplat',
    'bsndrpt',
    'werfault',
    # Redistributables
    'vcredist',
    'vcredist_x86',
    'vcredist_x64',
    'vc_redist.x86',
    'vc_redist.x64',
    'dotnetfx',
    'dotnetfx35',
    'dotnetfx40',
    'ndp48-x86-x64-allos-enu',
    'physxupdateloop',
    'oalinst',
    'xnafx40_redist',
    # DirectX installers
    'dxsetup',
    'dxwebsetup',
    'directx_jun2010_redist',
    # Engines, runtimes and utility binaries
    'ue4prereqsetup_x64',
    'ueprereqsetup_x64',
    'unitycrashhandler32',
    'unitycrashhandler64',
    'easyanticheat',
    'easyanticheat_setup',
    'eac_launcher',
    'battleye',
    'beservice',
    'beservice_x64',
    'cefprocess',
    'cefsharp.browsersubprocess',
    'dowser',
    'notepad',
    'python',
    'pythonw',
    'quicksfv',
    'steam_api',
    'steamerrorreporter',
    'steamerrorreporter64',
    'zfgamebrowser',
    '7z',
    '7za',
    'dosbox',
    'winrar',
    'unrar',
]

# Any name containing one of these is never the game
BAD_NAME_SUBSTRINGS = [
    'uninstall',
    'setup',
    'settings',
    'helper',
    'config',
    'launcher',
    'language',
    'crash',
    'test',
    'service',
    'server',
    'update',
    'install',
]

# Conventional fragments of the folder that holds the game binary
GOOD_DIRECTORY_FRAGMENTS = [
    'bin',
    'binaries',
    'game',
    'app',
    'win64',
    'win32',
    'windows',
    'x64',
    'x86',
]

PRIORITY_EXE_NAMES = [
    'start',
    'play',
    'run',
    'main',
    'bin',
]

# Stage A: single-level subfolders probed first
COMMON_EXE_SUBDIRS = [
    'Game',
    'app',
    'bin',
    'binaries',
    'Windows',
    'x64',
    'Win64',
    'executable',
    'program',
    'launcher',
    'main',
]

# Stage B: engine layouts, '*' matches one unknown folder
ENGINE_EXE_LAYOUTS = [
    'Engine/Binaries/Win64',
    'Binaries/Win64',
    '*/Binaries/Win64',
    '*/Engine/Binaries/Win64',
    '*/*/Binaries/Win64',
    '*/*/Engine/Binaries/Win64',
    '*/*/*/Binaries/Win64',
    '*/*/*/Engine/Binaries/Win64',
]

# Folder display name -> executable path relative to the game folder.
# Consulted before searching; extend it from settings.json.
MANUAL_EXE_OVERRIDES = {
    'Microsoft Flight Simulator': 'FlightSimulator.exe',
    'ARK Survival Evolved': 'ShooterGame/Binaries/Win64/ShooterGame.exe',
    'Red Dead Redemption 2': 'RDR2.exe',
    'Grand Theft Auto V': 'GTA5.exe',
}
