import os
import sys

import pytest
import termcolor

# Ensure the repository root is on sys.path so tests can import the aioffice package
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from aioffice.config import get_settings  # noqa: E402
from tests.helpers import (  # noqa: E402
    APPOINTMENTS,
    MESSAGES,
    PATIENTS,
    RECORDS,
    SequentialIds,
    build_legacy_store,
)


@pytest.fixture(autouse=True)
def _reset_settings(monkeypatch):
    for name in (
        'AIOFFICE_DB_PATH',
        'AIOFFICE_DATA_DIR',
        'AIOFFICE_SITE_ROOT',
        'AIOFFICE_LOCK_TIMEOUT',
        'AIOFFICE_PAGE_TEST_TIMEOUT',
        'AIOFFICE_BASE_URL',
    ):
        monkeypatch.delenv(name, raising=False)
    # Operator output is asserted as plain text.
    monkeypatch.setenv('NO_COLOR', '1')
    monkeypatch.delenv('FORCE_COLOR', raising=False)
    termcolor.can_colorize.cache_clear()
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
    termcolor.can_colorize.cache_clear()


@pytest.fixture
def legacy_store(tmp_path):
    return build_legacy_store(
        tmp_path / 'aioffice.db',
        patients=PATIENTS,
        records=RECORDS,
        appointments=APPOINTMENTS,
        messages=MESSAGES,
    )


@pytest.fixture
def sequential_ids():
    return SequentialIds()
