# shortcut_maker_cli.py
# -*- coding: utf-8 -*-

import os
import sys
import logging
import argparse

from colorama import Fore, Style, init

import config
import settings_manager
from run_manager import InvalidRootError, ShortcutRun
from selection_pipeline import OutcomeKind
from shortcut_utils import ShortcutStatus


# --- Coloured print helpers ---

def print_title(text):
    """Prints a title in bright red."""
    print(f"{Style.BRIGHT}{Fore.RED}=== {text.upper()} ===")

def print_header(text):
    """Prints a section header in bright magenta."""
    print(f"\n{Style.BRIGHT}{Fore.MAGENTA}--- {text} ---{Style.RESET_ALL}")

def print_info(text):
    print(text)

def print_success(text):
    print(f"{Fore.GREEN}{text}")

def print_warning(text):
    print(f"{Fore.YELLOW}WARNING: {text}")

def print_error(text):
    print(f"{Style.BRIGHT}{Fore.RED}ERROR: {text}")

def get_input(prompt):
    """Gets user input with a specific prompt style."""
    try:
        return input(f"{Style.BRIGHT}{Fore.WHITE}> {prompt}{Style.RESET_ALL} ")
    except EOFError:
        print_error("\nInput stream closed unexpectedly. Exiting.")
        sys.exit(1)


def configure_logging(verbose=False, log_file=None):
    log_format = '%(asctime)s - %(levelname)s - %(message)s'
    log_datefmt = '%H:%M:%S'
    log_formatter = logging.Formatter(log_format, log_datefmt)
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(log_formatter)
    console_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    root_logger.addHandler(console_handler)

    if log_file:
        try:
            file_handler = logging.FileHandler(log_file, encoding='utf-8')
            file_handler.setFormatter(logging.Formatter('%(asctime)s [%(levelname)s] %(name)s: %(message)s',
                                                        '%Y-%m-%d %H:%M:%S'))
            file_handler.setLevel(logging.DEBUG)
            root_logger.addHandler(file_handler)
        except OSError as e:
            logging.warning(f"Unable to open run log '{log_file}': {e}")


def print_progress(index, total, report):
    outcome = report.outcome
    prefix = f"[{index}/{total}] {outcome.game_name}:"
    if outcome.kind is OutcomeKind.CHOSEN:
        shortcut = report.shortcut
        if shortcut is None or shortcut.created:
            suffix = " (fallback name)" if shortcut and shortcut.status is ShortcutStatus.CREATED_WITH_FALLBACK_NAME else ""
            print_success(f"{prefix} {os.path.basename(outcome.executable)}{suffix}")
        elif shortcut.status is ShortcutStatus.FAILED:
            print_error(f"{prefix} {shortcut.message}")
        else:
            print_info(f"{Fore.LIGHTBLACK_EX}{prefix} shortcut already exists ({shortcut.status.value}){Style.RESET_ALL}")
    elif outcome.kind is OutcomeKind.DUPLICATE_EXECUTABLE:
        print_warning(f"{prefix} {os.path.basename(outcome.executable)} already used by '{outcome.claimed_by}'")
    elif outcome.kind is OutcomeKind.NO_EXECUTABLE_FOUND:
        detail = " (search timed out)" if report.diagnostics.timed_out else ""
        print_warning(f"{prefix} no executable found{detail}")
    elif outcome.kind is OutcomeKind.ALL_CANDIDATES_BLOCKED:
        print_warning(f"{prefix} only blocked executables found")
    else:
        print_error(f"{prefix} {outcome.cause}")


def print_summary(counters, output_dir):
    print_header("Summary")
    print_info(f"Folders processed:           {counters.total}")
    print_success(f"Shortcuts created:           {counters.created}")
    print_success(f"Created with fallback name:  {counters.created_with_fallback_name}")
    print_info(f"Skipped:                     {counters.skipped}")
    print_info(f"Not found:                   {counters.not_found}")
    print_info(f"Only blocked executables:    {counters.blocked}")
    print_info(f"Timed out:                   {counters.timed_out}")
    print_info(f"Errors:                      {counters.errored}")
    print_info(f"\nShortcuts and logs in: {output_dir}")


def build_parser():
    parser = argparse.ArgumentParser(
        prog="game-shortcut-maker",
        description="Create a shortcut to the main executable of every game folder in a library.")
    parser.add_argument("root", nargs="?", help="Folder containing one subfolder per game.")
    parser.add_argument("--output", help=f"Shortcut folder (default: <root>/{config.OUTPUT_FOLDER_NAME}).")
    parser.add_argument("--max-depth", type=int, help="Depth of the last bounded listing stage.")
    parser.add_argument("--timeout", type=int, help="Per-folder search budget in seconds.")
    parser.add_argument("--settings", help="Path to a settings.json file.")
    parser.add_argument("--only", help="Process only folders whose name fuzzily matches this text.")
    parser.add_argument("--workers", type=int, default=1, help="Folders processed in parallel (default 1).")
    parser.add_argument("--dry-run", action="store_true", help="Select executables without writing shortcuts.")
    parser.add_argument("--verbose", action="store_true", help="Show debug logging on the console.")
    return parser


def main(argv=None):
    init(autoreset=True)
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)

    settings, first_launch = settings_manager.load_settings(args.settings)
    if first_launch and args.settings:
        print_warning(f"Settings file '{args.settings}' not usable, using defaults.")
    if args.max_depth is not None:
        settings["max_search_depth"] = args.max_depth
    if args.timeout is not None:
        settings["folder_timeout_seconds"] = args.timeout
    settings = settings_manager.validate_settings(settings)

    print_title("Game Shortcut Maker")
    root = args.root or get_input("Enter the folder containing your games: ")

    try:
        run = ShortcutRun(root, settings, output_dir=args.output, dry_run=args.dry_run,
                          workers=args.workers, name_filter=args.only, progress=print_progress)
    except InvalidRootError as e:
        print_error(str(e))
        return 1

    os.makedirs(run.output_dir, exist_ok=True)
    configure_logging(args.verbose, os.path.join(run.output_dir, "run.log"))
    logging.info(f"Root: {run.root_path} - output: {run.output_dir}")
    logging.debug(f"Settings: {settings}")

    folders = run.game_folders()
    if not folders:
        print_warning("No game folders to process.")
    else:
        print_info(f"Found {len(folders)} game folder(s).")

    _, counters = run.run()
    print_summary(counters, run.output_dir)
    return 0


if __name__ == "__main__":
    sys.exit(main())
