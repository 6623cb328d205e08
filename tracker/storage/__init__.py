from ._schema import SCHEMA_VERSION, SCHEMA_SQL
from .participants import ParticipantRepo
from .workers import WorkerRepo, TRACKED_COLUMNS
from .stats import StatsRepo
from .manager import StorageManager

__all__ = [
    "SCHEMA_VERSION",
    "SCHEMA_SQL",
    "ParticipantRepo",
    "WorkerRepo",
    "TRACKED_COLUMNS",
    "StatsRepo",
    "StorageManager",
]
