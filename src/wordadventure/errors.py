"""Error taxonomy for the scheduler and persistence engine."""


class WordAdventureError(Exception):
    """Base class for engine errors."""


class InvalidInputError(WordAdventureError, ValueError):
    """Malformed input rejected before any state is mutated."""


class CorruptSnapshotError(WordAdventureError):
    """Stored snapshot could not be parsed or has the wrong schema version."""


class StorageWriteError(WordAdventureError):
    """Storage backend refused or failed a write."""


class StorageQuotaExceededError(StorageWriteError):
    """Payload does not fit into the storage quota."""


class SchedulerError(WordAdventureError):
    """Scheduling step failed; resolved by the random fallback."""


class StorageReadError(WordAdventureError):
    """Storage backend failed to read a value."""
