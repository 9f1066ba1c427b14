"""Test configuration."""
import os
import random
from pathlib import Path
from typing import List

import pytest
from dotenv import load_dotenv
from faker import Faker

# Set test environment before any imports
os.environ["ENV"] = "test"
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

# Load test environment variables
test_env_path = Path(__file__).parent.parent.parent.parent / ".env.test"
load_dotenv(test_env_path)

# Import after environment setup
from wordadventure.config import PersistenceSettings, ensure_directories
from wordadventure.models.word_models import DifficultyTier, WordItem
from wordadventure.services.catalog_service import InMemoryWordCatalog
from wordadventure.services.storage_service import InMemoryStorage, LocalBroadcastHub

HOUR_MS = 3_600_000
START_MS = 1_700_000_000_000

fake = Faker()


class FakeClock:
    """Manually advanced millisecond clock."""

    def __init__(self, start_ms: int = START_MS):
        self.now = start_ms

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


def make_words(category: str, count: int, start_id: int = 1, tier: DifficultyTier = DifficultyTier.EASY) -> List[WordItem]:
    """Create catalog words with unique fake texts."""
    texts = fake.words(nb=count, unique=True)
    return [
        WordItem(id=start_id + index, text=text, category=category, difficulty_tier=tier)
        for index, text in enumerate(texts)
    ]


@pytest.fixture(autouse=True)
def setup_test_environment():
    """Set up test environment before each test."""
    ensure_directories()
    yield


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def animals() -> List[WordItem]:
    """Category with exactly 20 easy words."""
    return make_words("animals", 20, start_id=1)


@pytest.fixture
def catalog(animals: List[WordItem]) -> InMemoryWordCatalog:
    """Catalog with three categories and all difficulty tiers."""
    words = list(animals)
    words += make_words("food", 10, start_id=101, tier=DifficultyTier.EASY)
    words += make_words("food", 10, start_id=111, tier=DifficultyTier.MEDIUM)
    words += make_words("space", 10, start_id=201, tier=DifficultyTier.MEDIUM)
    words += make_words("space", 15, start_id=211, tier=DifficultyTier.HARD)
    return InMemoryWordCatalog(words)


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def hub() -> LocalBroadcastHub:
    return LocalBroadcastHub()


@pytest.fixture
def persistence_settings() -> PersistenceSettings:
    """Short debounce windows so async tests stay fast."""
    return PersistenceSettings(
        storage_key_prefix="test.session",
        debounce_seconds=0.05,
        low_priority_factor=2.0,
        max_retries=3,
        max_snapshot_bytes=1024 * 1024,
        poll_interval_seconds=0.01,
    )


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture
def word_factory():
    """Factory creating catalog words."""
    return make_words
