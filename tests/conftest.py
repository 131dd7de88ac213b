import os
from pathlib import Path
import sys

import pytest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch):
    """Each test starts from default settings and a fresh downloader cache."""
    from swaggerdiff.domain import oasdiff_downloader
    from swaggerdiff.settings import _get_settings

    for key in list(os.environ):
        if key.startswith("SWAGGERDIFF_"):
            monkeypatch.delenv(key)
    _get_settings.cache_clear()
    oasdiff_downloader._downloaders.clear()
    yield
    _get_settings.cache_clear()
    oasdiff_downloader._downloaders.clear()
