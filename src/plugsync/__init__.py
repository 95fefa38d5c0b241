"""
plugsync - chargEV check-in synchronization

Synchronizes chargepoint check-ins between the chargEV DB and a record
store, enriching chargepoints with GoingElectric details on the way.
"""

__version__ = "0.1.0"

from .config import SyncConfig
from .database import Database
from .stores import RecordStore
from .sync import CheckInsSyncManager, SyncOptions, SyncSummary

__all__ = [
    "CheckInsSyncManager",
    "Database",
    "RecordStore",
    "SyncConfig",
    "SyncOptions",
    "SyncSummary",
]
