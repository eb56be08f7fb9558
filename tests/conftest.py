from __future__ import annotations

import pytest

from fakes import FakeNotifier, FakeStorage


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()
