"""Tests for the snapshot document format and the domain models it carries."""
import json

import pytest

from wordadventure.errors import CorruptSnapshotError
from wordadventure.models.progress_models import Goal, GoalType, ProgressCounters, ProgressSets
from wordadventure.models.snapshot_models import (
    SCHEMA_VERSION,
    FieldGroup,
    PersistedSnapshot,
    deserialize_snapshot,
    serialize_snapshot,
)
from wordadventure.models.word_models import DifficultyTier, WordHistoryEntry, WordItem, parse_word_id


@pytest.fixture
def snapshot() -> PersistedSnapshot:
    """Create a snapshot with every field populated."""
    return PersistedSnapshot(
        last_saved_at_ms=1_700_000_000_123,
        active_category="animals",
        session_number=3,
        progress_sets=ProgressSets(remembered=[1, 2], forgotten=[3], excluded=[9]),
        word_history={
            1: WordHistoryEntry(word_id=1, times_seen=2, times_correct=2, consecutive_correct=2,
                                last_seen_at_ms=5, mastery_score=0.8333333, next_eligible_at_ms=10),
        },
        dashboard_stage=DifficultyTier.MEDIUM,
        goals=[Goal(type=GoalType.DAILY, target=10, goal_id="g1", title="Ten a day")],
        progress_counters=ProgressCounters(words_completed=12, streak=2, last_active_date="2024-05-10"),
        field_group_stamps={group: 100 for group in FieldGroup},
    )


def test_serialized_layout(snapshot: PersistedSnapshot) -> None:
    """Test the stored document keys."""
    data = json.loads(serialize_snapshot(snapshot))

    assert set(data) == {
        "schemaVersion", "lastSavedAtMs", "activeCategory", "sessionNumber", "remembered",
        "forgotten", "excluded", "wordHistory", "dashboardStage", "goals",
        "progressCounters", "fieldGroupStamps",
    }
    assert data["schemaVersion"] == SCHEMA_VERSION
    assert data["remembered"] == [1, 2]
    assert data["wordHistory"]["1"]["masteryScore"] == 0.83
    assert data["fieldGroupStamps"]["ui_position"] == 100


def test_deserialize_restores_snapshot(snapshot: PersistedSnapshot) -> None:
    """Test reading a stored document back."""
    restored = deserialize_snapshot(serialize_snapshot(snapshot))

    assert restored.active_category == "animals"
    assert restored.progress_sets == snapshot.progress_sets
    assert restored.word_history[1].mastery_score == 0.83
    assert restored.goals == snapshot.goals
    assert restored.progress_counters == snapshot.progress_counters
    assert restored.dashboard_stage == DifficultyTier.MEDIUM


@pytest.mark.parametrize(
    "payload",
    [
        "{not json",
        "[]",
        "null",
        json.dumps({"schemaVersion": 99, "lastSavedAtMs": 1}),
        json.dumps({"lastSavedAtMs": 1}),
        json.dumps({"schemaVersion": SCHEMA_VERSION}),
        json.dumps({"schemaVersion": SCHEMA_VERSION, "lastSavedAtMs": 1, "remembered": "1,2"}),
        json.dumps({"schemaVersion": SCHEMA_VERSION, "lastSavedAtMs": 1, "wordHistory": {"1": {}}}),
        json.dumps({"schemaVersion": SCHEMA_VERSION, "lastSavedAtMs": 1, "dashboardStage": "extreme"}),
        '{"schemaVersion":1,"lastSavedAtMs":Infinity}',
        '{"schemaVersion":1,"lastSavedAtMs":1,"sessionNumber":-Infinity}',
        '{"schemaVersion":1,"lastSavedAtMs":1,"wordHistory":{"1":{"wordId":1,"masteryScore":NaN}}}',
        json.dumps({"schemaVersion": True, "lastSavedAtMs": 1}),
        json.dumps({"schemaVersion": 1.0, "lastSavedAtMs": 1}),
    ],
)
def test_corrupt_payloads_rejected(payload: str) -> None:
    """Test that malformed documents raise CorruptSnapshotError."""
    with pytest.raises(CorruptSnapshotError):
        deserialize_snapshot(payload)


def test_deeply_nested_payload_rejected() -> None:
    """Test that pathological nesting is reported as corruption."""
    with pytest.raises(CorruptSnapshotError):
        deserialize_snapshot("[" * 100000 + "]" * 100000)


def test_missing_stamps_default_to_save_time() -> None:
    """Test documents without group stamps."""
    restored = deserialize_snapshot(json.dumps({"schemaVersion": SCHEMA_VERSION, "lastSavedAtMs": 42}))
    assert all(restored.stamp(group) == 42 for group in FieldGroup)


def test_overlapping_sets_resolved_to_remembered() -> None:
    """Test that a word in both sets is kept as remembered."""
    restored = deserialize_snapshot(json.dumps({
        "schemaVersion": SCHEMA_VERSION,
        "lastSavedAtMs": 1,
        "remembered": [1, 2],
        "forgotten": [2, 3],
    }))
    assert restored.progress_sets.remembered == {1, 2}
    assert restored.progress_sets.forgotten == {3}


def test_progress_set_moves_keep_sets_disjoint() -> None:
    """Test atomic moves between remembered and forgotten."""
    sets = ProgressSets()
    sets.mark_forgotten(1)
    sets.mark_remembered(1)
    assert sets.remembered == {1}
    assert not sets.forgotten
    sets.mark_forgotten(1)
    assert sets.forgotten == {1}
    assert not sets.remembered


def test_has_progress() -> None:
    """Test detection of learning activity."""
    assert not PersistedSnapshot().has_progress()
    assert PersistedSnapshot(progress_sets=ProgressSets(forgotten=[1])).has_progress()
    assert PersistedSnapshot(progress_counters=ProgressCounters(words_completed=1)).has_progress()


def test_adopt_group_copies_values_and_stamp(snapshot: PersistedSnapshot) -> None:
    """Test adopting one field group from another snapshot."""
    local = PersistedSnapshot()
    local.adopt_group(snapshot, FieldGroup.PROGRESS)

    assert local.progress_sets == snapshot.progress_sets
    assert local.stamp(FieldGroup.PROGRESS) == 100
    assert local.active_category == "all"
    local.progress_sets.mark_remembered(50)
    assert 50 not in snapshot.progress_sets.remembered


def test_word_item_from_catalog_record() -> None:
    """Test catalog records using either field naming."""
    word = WordItem.from_data({"id": "4", "word": "cat", "category": "animals", "difficulty": "medium"})
    assert word == WordItem(id=4, text="cat", category="animals", difficulty_tier=DifficultyTier.MEDIUM)


@pytest.mark.parametrize("value,expected", [(3, 3), ("17", 17), (" 8 ", 8), (-1, None), ("x", None), (None, None)])
def test_parse_word_id(value, expected) -> None:
    """Test word id normalization."""
    assert parse_word_id(value) == expected


def test_invalid_counter_date_dropped_on_load() -> None:
    """Test that a bad last active date does not discard the snapshot."""
    restored = deserialize_snapshot(json.dumps({
        "schemaVersion": SCHEMA_VERSION,
        "lastSavedAtMs": 1,
        "remembered": [4],
        "progressCounters": {"wordsCompleted": 12, "streak": 3, "lastActiveDate": "garbage"},
    }))

    assert restored.progress_counters.last_active_date is None
    assert restored.progress_counters.words_completed == 12
    assert restored.progress_sets.remembered == {4}
