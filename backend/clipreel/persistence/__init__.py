"""
Persistence layer for clipreel.

SQLite-backed storage for completed-compilation records and user access
tokens. In-flight jobs are never stored here.
"""

from .errors import PersistenceError
from .manager import PersistenceManager
from .records import CompilationRecord, CompilationRecordStore
from .credentials import UserCredentialStore

__all__ = [
    "PersistenceError",
    "PersistenceManager",
    "CompilationRecord",
    "CompilationRecordStore",
    "UserCredentialStore",
]
