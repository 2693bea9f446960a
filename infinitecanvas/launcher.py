"""Infinite Canvas launcher.

Provides a stable entry point that configures logging and runs preflight
checks before importing GTK-related modules, which gives clearer error
messages on new systems.
"""

from __future__ import annotations

import logging
import os

LOG_LEVEL_ENV = "INFINITECANVAS_LOG_LEVEL"


def setup_logging() -> None:
    level_name = (os.environ.get(LOG_LEVEL_ENV) or "WARNING").upper()
    level = getattr(logging, level_name, None)
    if not isinstance(level, int):
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def main() -> int:
    setup_logging()

    from infinitecanvas.preflight import run_preflight_or_die

    run_preflight_or_die(check_deps=True)

    from infinitecanvas.app import main as app_main

    return int(app_main())


if __name__ == "__main__":
    raise SystemExit(main())
