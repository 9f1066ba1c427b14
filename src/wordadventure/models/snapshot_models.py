"""Persisted session snapshot and its JSON document format.

One versioned document per learner profile holds every piece of durable
session state. Fields are organised into field groups; each group carries
the time it was last modified so that two writers can be merged group by
group instead of one document overwriting the other.
"""
import copy
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Tuple

from wordadventure.errors import CorruptSnapshotError
from wordadventure.models.progress_models import Goal, ProgressCounters, ProgressSets
from wordadventure.models.word_models import DifficultyTier, WordHistoryEntry

SCHEMA_VERSION = 1
FLOAT_PRECISION = 2


class FieldGroup(str, Enum):
    """Unit of conflict resolution between writers."""
    UI_POSITION = "ui_position"
    PROGRESS = "progress"
    WORD_HISTORY = "word_history"
    GOALS = "goals"


class SavePriority(str, Enum):
    """Urgency of a queued save."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


FIELD_GROUPS: Dict[FieldGroup, Tuple[str, ...]] = {
    FieldGroup.UI_POSITION: ("active_category", "session_number", "dashboard_stage"),
    FieldGroup.PROGRESS: ("progress_sets", "progress_counters"),
    FieldGroup.WORD_HISTORY: ("word_history",),
    FieldGroup.GOALS: ("goals",),
}

FIELD_TO_GROUP: Dict[str, FieldGroup] = {
    name: group for group, names in FIELD_GROUPS.items() for name in names
}


@dataclass
class PersistedSnapshot:
    """Complete durable session state."""
    schema_version: int = SCHEMA_VERSION
    last_saved_at_ms: int = 0
    active_category: str = "all"
    session_number: int = 1
    progress_sets: ProgressSets = field(default_factory=ProgressSets)
    word_history: Dict[int, WordHistoryEntry] = field(default_factory=dict)
    dashboard_stage: DifficultyTier = DifficultyTier.EASY
    goals: List[Goal] = field(default_factory=list)
    progress_counters: ProgressCounters = field(default_factory=ProgressCounters)
    field_group_stamps: Dict[FieldGroup, int] = field(default_factory=dict)

    def stamp(self, group: FieldGroup) -> int:
        """Last modification time of a field group."""
        return self.field_group_stamps.get(group, 0)

    def has_progress(self) -> bool:
        """Check if the snapshot records any learning activity."""
        return bool(
            self.progress_sets.remembered
            or self.progress_sets.forgotten
            or self.word_history
            or self.progress_counters.words_completed
        )

    def group_values(self, group: FieldGroup) -> Dict[str, Any]:
        """Deep copy of the fields belonging to a group."""
        return {name: copy.deepcopy(getattr(self, name)) for name in FIELD_GROUPS[group]}

    def adopt_group(self, other: "PersistedSnapshot", group: FieldGroup) -> None:
        """Replace one field group, stamp included, with the values of another snapshot."""
        for name, value in other.group_values(group).items():
            setattr(self, name, value)
        self.field_group_stamps[group] = other.stamp(group)

    def copy(self) -> "PersistedSnapshot":
        return copy.deepcopy(self)

    def to_data(self) -> Dict[str, Any]:
        """Convert to the JSON document layout."""
        return {
            "schemaVersion": self.schema_version,
            "lastSavedAtMs": self.last_saved_at_ms,
            "activeCategory": self.active_category,
            "sessionNumber": self.session_number,
            "remembered": sorted(self.progress_sets.remembered),
            "forgotten": sorted(self.progress_sets.forgotten),
            "excluded": sorted(self.progress_sets.excluded),
            "wordHistory": {
                str(word_id): entry.to_data() for word_id, entry in sorted(self.word_history.items())
            },
            "dashboardStage": self.dashboard_stage.value,
            "goals": [goal.to_data() for goal in self.goals],
            "progressCounters": self.progress_counters.to_data(),
            "fieldGroupStamps": {group.value: self.stamp(group) for group in FieldGroup},
        }

    @classmethod
    def from_data(cls, data: Mapping[str, Any]) -> "PersistedSnapshot":
        """Create a snapshot from a decoded JSON document.

        Raises CorruptSnapshotError when the document is not a snapshot of the
        current schema version.
        """
        if not isinstance(data, Mapping):
            raise CorruptSnapshotError("Snapshot document is not an object")
        version = data.get("schemaVersion")
        if type(version) is not int or version != SCHEMA_VERSION:
            raise CorruptSnapshotError(f"Unsupported schema version: {version!r}")

        try:
            last_saved = int(data["lastSavedAtMs"])
            history_data = data.get("wordHistory") or {}
            if not isinstance(history_data, Mapping):
                raise CorruptSnapshotError("wordHistory is not an object")
            word_history = {}
            for key, entry_data in history_data.items():
                entry = WordHistoryEntry.from_data(entry_data)
                word_history[int(key)] = entry
            stamps = {
                FieldGroup(group): int(ts)
                for group, ts in dict(data.get("fieldGroupStamps") or {}).items()
            }
            # Documents written before group stamps existed count as one write
            for group in FieldGroup:
                stamps.setdefault(group, last_saved)
            return cls(
                schema_version=SCHEMA_VERSION,
                last_saved_at_ms=last_saved,
                active_category=str(data.get("activeCategory") or "all"),
                session_number=int(data.get("sessionNumber", 1)),
                progress_sets=ProgressSets(
                    remembered=_id_list(data.get("remembered")),
                    forgotten=_id_list(data.get("forgotten")),
                    excluded=_id_list(data.get("excluded")),
                ),
                word_history=word_history,
                dashboard_stage=DifficultyTier(data.get("dashboardStage") or "easy"),
                goals=[Goal.from_data(goal) for goal in data.get("goals") or []],
                progress_counters=ProgressCounters.from_data(data.get("progressCounters") or {}),
                field_group_stamps=stamps,
            )
        except CorruptSnapshotError:
            raise
        except (KeyError, TypeError, ValueError, AttributeError, OverflowError) as e:
            raise CorruptSnapshotError(f"Malformed snapshot: {e}") from e


def _id_list(value: Any) -> List[int]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise CorruptSnapshotError("Word id set is not an array")
    return [int(item) for item in value]


def _round_floats(value: Any) -> Any:
    if isinstance(value, float):
        return round(value, FLOAT_PRECISION)
    if isinstance(value, dict):
        return {key: _round_floats(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_round_floats(item) for item in value]
    return value


def serialize_snapshot(snapshot: PersistedSnapshot) -> str:
    """Encode a snapshot as compact JSON with reduced float precision."""
    return json.dumps(_round_floats(snapshot.to_data()), separators=(",", ":"), allow_nan=False)


def deserialize_snapshot(payload: str) -> PersistedSnapshot:
    """Decode a stored payload, raising CorruptSnapshotError on bad data."""
    try:
        data = json.loads(payload)
    except (TypeError, ValueError) as e:
        raise CorruptSnapshotError(f"Snapshot is not valid JSON: {e}") from e
    except RecursionError as e:
        raise CorruptSnapshotError("Snapshot nesting is too deep") from e
    return PersistedSnapshot.from_data(data)
