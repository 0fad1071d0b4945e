"""
Pytest configuration and shared fixtures.
"""

import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from haikubot.config import Settings
from haikubot.matcher import PatternMatcher
from haikubot.models import StrongRef
from tests.fakes import FakeTokenizer


@pytest.fixture
def settings() -> Settings:
    """Settings independent of the test environment."""
    return Settings(
        _env_file=None,
        password="app-password",
        heartbeat_url=None,
        post_retry_delay_seconds=0,
        idle_interval_seconds=0.01,
        max_idle_ticks=3,
    )


@pytest.fixture
def restore_root_logger():
    """Undo setup_logging() changes to the root logger after the test."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def matcher() -> PatternMatcher:
    """Predicate backed by the fixed morpheme table."""
    return PatternMatcher(tokenizer=FakeTokenizer())


@pytest.fixture
def posted_ref() -> StrongRef:
    return StrongRef(uri="at://did:plc:bot/app.bsky.feed.post/3kbot", cid="bafyreibot")


@pytest.fixture
def mock_poster(posted_ref) -> MagicMock:
    poster = MagicMock()
    poster.post = AsyncMock(return_value=posted_ref)
    return poster
