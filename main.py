#!/usr/bin/env python3
"""Cyberpunk 2077 Mod Loader - Entry Point"""

import argparse
import faulthandler
import logging
import os
import sys
import traceback
from logging.handlers import RotatingFileHandler
from pathlib import Path

APP_DIRNAME = "CP77ModLoader"


def default_data_dir() -> Path:
    appdata = os.environ.get("APPDATA")
    base = Path(appdata) if appdata else Path.home()
    return base / APP_DIRNAME


def setup_logging(data_dir: Path) -> tuple[logging.Logger, Path]:
    log_dir = data_dir / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "cp77modloader.log"

    handler = RotatingFileHandler(
        log_file,
        maxBytes=1 * 1024 * 1024,  # 1 MB
        backupCount=2,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter("%(asctime)s  %(levelname)-8s  %(message)s"))

    # Attached to the root logger so every module's __name__ logger reaches it
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)
    return logging.getLogger("cp77modloader"), log_dir


def install_crash_handler(logger: logging.Logger, log_dir: Path):
    # Python-level unhandled exceptions
    def handle_exception(exc_type, exc_value, exc_tb):
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_tb)
            return
        logger.critical(
            "Unhandled exception:\n%s",
            "".join(traceback.format_exception(exc_type, exc_value, exc_tb)),
        )

    sys.excepthook = handle_exception

    # C-level crashes (segfault, abort): faulthandler writes to a separate
    # file because it can't use Python logging machinery after a crash
    crash_file = log_dir / "crash.log"
    faulthandler.enable(open(crash_file, "w"), all_threads=True)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Cyberpunk 2077 Mod Loader")
    parser.add_argument("--data-dir", type=Path, default=None)
    parser.add_argument("--installation-path")
    parser.add_argument("--window-title-suffix")
    return parser.parse_args()


if __name__ == "__main__":
    args = parse_args()
    data_dir = args.data_dir or default_data_dir()

    logger, log_dir = setup_logging(data_dir)
    install_crash_handler(logger, log_dir)
    logger.info("Starting Cyberpunk 2077 Mod Loader (data dir %s)", data_dir)

    from gui import main
    main(
        data_dir,
        logger,
        installation_path_override=args.installation_path,
        window_title_suffix=args.window_title_suffix,
    )
