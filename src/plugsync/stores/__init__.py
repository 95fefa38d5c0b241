from .chargev_db import ChargevDBClient
from .goingelectric import GoingElectricClient
from .record_store import QueryResult, RecordStore, RecordType

__all__ = [
    "ChargevDBClient",
    "GoingElectricClient",
    "QueryResult",
    "RecordStore",
    "RecordType",
]
