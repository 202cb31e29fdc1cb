#!/usr/bin/env python3
"""Put the site live or into maintenance mode.

Usage::

    python -m aioffice.scripts.toggle_site up|down [--site-root DIR]

``up`` points ``www`` at ``www_up``; ``down`` points it at ``www_down``.
"""

from __future__ import annotations

import argparse
import sys
from typing import Optional, Sequence

from aioffice.config import get_settings
from aioffice.logs import configure_logging
from aioffice.site_toggle import TARGETS, SiteToggleError, toggle_site

MESSAGES = {
    "up": "Site is now UP (live)",
    "down": "Site is now DOWN (maintenance mode)",
}


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Switch the served web root.")
    parser.add_argument(
        "state",
        choices=sorted(TARGETS),
        help="up: make the site live (www -> www_up); down: maintenance mode (www -> www_down)",
    )
    parser.add_argument(
        "--site-root",
        default=str(get_settings().site_root),
        help="Directory holding www, www_up and www_down (default: %(default)s)",
    )
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    try:
        args = parse_args(argv)
    except SystemExit as exc:
        # argparse exits with 2 on usage errors; operators expect 1.
        return 0 if exc.code == 0 else 1
    configure_logging()

    try:
        target = toggle_site(args.site_root, args.state)
    except SiteToggleError as exc:
        print(f"Error: {exc}")
        return 1

    print(MESSAGES[args.state])
    print(f"   www -> {target}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
