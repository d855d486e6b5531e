"""Pytest configuration ensuring local packages are importable."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

_ROOT = Path(__file__).resolve().parents[1]
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

from tests.fakes import FakeBrowser  # noqa: E402
from workflow.session import SessionContext  # noqa: E402


@pytest.fixture
def browser() -> FakeBrowser:
    return FakeBrowser(url="https://portal.example/Login")


@pytest.fixture
def session(browser: FakeBrowser) -> SessionContext:
    return SessionContext(browser=browser)
