"""Switch the served web root between the live and maintenance trees.

The web server serves ``<site root>/www``, which is a symlink to either
``www_up`` (the live pages) or ``www_down`` (the maintenance page).
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Dict, Union

import structlog

logger = structlog.get_logger(__name__)

LINK_NAME = "www"
TARGETS: Dict[str, str] = {"up": "www_up", "down": "www_down"}


class SiteToggleError(Exception):
    """Raised when the web root cannot be switched safely."""


def current_state(site_root: Union[str, os.PathLike]) -> str:
    """Return ``"up"``, ``"down"`` or ``"unknown"`` for the current link."""

    link = Path(site_root) / LINK_NAME
    if not link.is_symlink():
        return "unknown"
    target = os.readlink(link)
    for state, name in TARGETS.items():
        if Path(target).name == name:
            return state
    return "unknown"


def toggle_site(site_root: Union[str, os.PathLike], state: str) -> str:
    """Point ``www`` at the tree for ``state`` and return the verified target.

    Refuses to touch a ``www`` that is a real file or directory.
    """

    if state not in TARGETS:
        raise SiteToggleError(f"unknown state {state!r}; expected one of: {', '.join(TARGETS)}")

    root = Path(site_root)
    link = root / LINK_NAME
    for name in TARGETS.values():
        if not (root / name).is_dir():
            raise SiteToggleError(f"{root / name} does not exist")

    if link.is_symlink():
        link.unlink()
    elif link.exists():
        raise SiteToggleError(
            f"{link} exists but is not a symbolic link; resolve it manually first"
        )

    target = TARGETS[state]
    # Relative target so the tree can be moved as a whole.
    os.symlink(target, link)

    if not link.is_symlink():
        raise SiteToggleError(f"failed to create {link}")
    resolved = os.readlink(link)
    logger.info("site_toggled", site_root=str(root), state=state, target=resolved)
    return resolved
