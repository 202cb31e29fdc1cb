"""Configuration helpers for the AI Office operations tooling."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional

from platformdirs import user_data_dir

APP_NAME = "AIOffice"
DB_FILENAME = "aioffice.db"

DEFAULT_LOCK_TIMEOUT = 30.0
DEFAULT_PAGE_TEST_TIMEOUT = 60.0
DEFAULT_BASE_URL = "http://localhost:8080"


@dataclass(frozen=True)
class StoreSettings:
    """Resolved locations and limits shared by the command line tools."""

    db_path: Path
    site_root: Path
    lock_timeout: float = DEFAULT_LOCK_TIMEOUT
    page_test_timeout: float = DEFAULT_PAGE_TEST_TIMEOUT
    base_url: str = DEFAULT_BASE_URL

    @property
    def www_dir(self) -> Path:
        return self.site_root / "www"


def _get_float_env(name: str) -> Optional[float]:
    raw = os.getenv(name)
    if raw in (None, ""):
        return None
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be a number; got {raw!r}") from exc


def _resolve_db_path(site_root: Optional[Path]) -> Path:
    override = os.getenv("AIOFFICE_DB_PATH")
    if override:
        resolved = Path(override).expanduser()
        if resolved.is_dir():
            resolved = resolved / DB_FILENAME
        return resolved

    data_dir = os.getenv("AIOFFICE_DATA_DIR")
    if data_dir:
        return Path(data_dir).expanduser() / DB_FILENAME

    if site_root is not None:
        return site_root / "data" / DB_FILENAME

    return Path(user_data_dir(APP_NAME, APP_NAME)) / DB_FILENAME


@lru_cache(maxsize=1)
def get_settings() -> StoreSettings:
    """Return the active settings derived from the environment.

    The store path is resolved from ``AIOFFICE_DB_PATH``, then
    ``AIOFFICE_DATA_DIR``, then ``<AIOFFICE_SITE_ROOT>/data/aioffice.db``
    and finally the per-user data directory.  Nothing here creates files or
    directories: the migrator must be able to tell a missing store apart
    from an empty one.
    """

    raw_root = os.getenv("AIOFFICE_SITE_ROOT")
    site_root = Path(raw_root).expanduser() if raw_root else None
    lock_timeout = _get_float_env("AIOFFICE_LOCK_TIMEOUT")
    page_test_timeout = _get_float_env("AIOFFICE_PAGE_TEST_TIMEOUT")
    base_url = os.getenv("AIOFFICE_BASE_URL") or DEFAULT_BASE_URL

    return StoreSettings(
        db_path=_resolve_db_path(site_root),
        site_root=site_root if site_root is not None else Path.cwd(),
        lock_timeout=DEFAULT_LOCK_TIMEOUT if lock_timeout is None else lock_timeout,
        page_test_timeout=(
            DEFAULT_PAGE_TEST_TIMEOUT if page_test_timeout is None else page_test_timeout
        ),
        base_url=base_url.rstrip("/"),
    )
