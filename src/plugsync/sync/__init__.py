from .manager import DOWNLOAD, UPLOAD, CheckInsSyncManager
from .summary import SyncOptions, SyncSummary

__all__ = ["DOWNLOAD", "UPLOAD", "CheckInsSyncManager", "SyncOptions", "SyncSummary"]
