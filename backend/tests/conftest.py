from __future__ import annotations

import pytest

from livequiz.config import Settings
from support import FakeImages, FakeNarrator, make_settings


@pytest.fixture
def fast_settings() -> Settings:
    return make_settings()


@pytest.fixture
def narrator() -> FakeNarrator:
    return FakeNarrator()


@pytest.fixture
def images() -> FakeImages:
    return FakeImages()
