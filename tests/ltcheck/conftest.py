"""
Shared fixtures: isolated settings, a scripted checker and a manual timer.
"""

from typing import List

import pytest

from ltcheck.config import LTConfig
from ltcheck.languagetool.client import CheckerMatch


class FakeClient:
    """Returns scripted matches and records what it was asked to check."""

    def __init__(self, matches=None, error=None):
        self.matches: List[CheckerMatch] = list(matches or [])
        self.error = error
        self.checked = []

    def check(self, annotated, language=None):
        self.checked.append(annotated)
        if self.error is not None:
            raise self.error
        return list(self.matches)


class ManualTimer:
    """``threading.Timer`` stand-in fired explicitly by the test."""

    created: List['ManualTimer'] = []

    def __init__(self, interval, function):
        self.interval = interval
        self.function = function
        self.cancelled = False
        self.started = False
        self.daemon = False
        ManualTimer.created.append(self)

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if not self.cancelled:
            self.function()


@pytest.fixture
def lt_config() -> LTConfig:
    return LTConfig()


@pytest.fixture
def manual_timers():
    ManualTimer.created = []
    yield ManualTimer
    ManualTimer.created = []


@pytest.fixture
def make_client():
    """Factory for scripted checker clients."""
    return FakeClient
