"""
SQLite persistence manager.

Single-file SQLite database, one short-lived connection per operation.
All methods are blocking; async callers run them in the default executor.
"""

import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from .errors import PersistenceError, SchemaError


# Database schema version for migrations
SCHEMA_VERSION = 1

# Fixed-width timestamps so text comparison matches time order
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%f"


def format_timestamp(value: datetime) -> str:
    return value.strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: str) -> datetime:
    return datetime.strptime(value, TIMESTAMP_FORMAT)


class PersistenceManager:
    """
    Manages SQLite persistence.
    
    Stores:
    - Completed compilation records
    - Per-user access tokens for the clip registry
    
    Does NOT store:
    - In-flight jobs (the job registry is memory-only)
    - Output files (only their paths)
    """
    
    def __init__(self, db_path: Optional[str] = None):
        """
        Initialize persistence manager.
        
        Args:
            db_path: Path to SQLite database file (defaults to ./clipreel.db)
        """
        if db_path is None:
            db_path = str(Path.cwd() / "clipreel.db")
        
        self.db_path = str(db_path)
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
    
    @contextmanager
    def _connect(self):
        """Context manager for database connections."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row  # Access columns by name
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise PersistenceError(f"Database operation failed: {e}") from e
        finally:
            conn.close()
    
    def _ensure_schema(self):
        """Create schema if it doesn't exist."""
        with self._connect() as conn:
            cursor = conn.cursor()
            
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY,
                    applied_at TEXT NOT NULL
                )
            """)
            
            cursor.execute("SELECT version FROM schema_version ORDER BY version DESC LIMIT 1")
            row = cursor.fetchone()
            current_version = row[0] if row else 0
            
            if current_version > SCHEMA_VERSION:
                raise SchemaError(
                    f"Database schema v{current_version} is newer than supported v{SCHEMA_VERSION}"
                )
            
            if current_version < SCHEMA_VERSION:
                self._migrate_schema(conn, current_version)
    
    def _migrate_schema(self, conn, from_version: int):
        """Apply schema migrations."""
        cursor = conn.cursor()
        
        if from_version < 1:
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS compilations (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    job_id TEXT NOT NULL UNIQUE,
                    clip_count INTEGER NOT NULL,
                    format TEXT NOT NULL,
                    quality TEXT NOT NULL,
                    output_path TEXT NOT NULL,
                    status TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
            """)
            
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_compilations_user_created
                ON compilations (user_id, created_at)
            """)
            
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    user_id TEXT PRIMARY KEY,
                    access_token TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            
            cursor.execute(
                "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                (1, datetime.now().isoformat())
            )
    
    # Compilation records
    
    @staticmethod
    def _compilation_row(row) -> Dict:
        return {
            "id": row["id"],
            "user_id": row["user_id"],
            "job_id": row["job_id"],
            "clip_count": row["clip_count"],
            "format": row["format"],
            "quality": row["quality"],
            "output_path": row["output_path"],
            "status": row["status"],
            "created_at": parse_timestamp(row["created_at"]),
        }
    
    def insert_compilation(self, record_data: Dict) -> Dict:
        """
        Insert one compilation record in a single transaction.
        
        Args:
            record_data: Dict with keys: user_id, job_id, clip_count, format,
                quality, output_path, status, created_at (datetime)
                
        Returns:
            The stored row, including its generated id
        """
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                INSERT INTO compilations (
                    user_id, job_id, clip_count, format, quality,
                    output_path, status, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                record_data["user_id"],
                record_data["job_id"],
                record_data["clip_count"],
                record_data["format"],
                record_data["quality"],
                record_data["output_path"],
                record_data["status"],
                format_timestamp(record_data["created_at"]),
            ))
            record_id = cursor.lastrowid
            
            cursor.execute("SELECT * FROM compilations WHERE id = ?", (record_id,))
            return self._compilation_row(cursor.fetchone())
    
    def load_compilation(self, record_id: int) -> Optional[Dict]:
        """Load one compilation record, or None if it does not exist."""
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM compilations WHERE id = ?", (record_id,))
            row = cursor.fetchone()
            return self._compilation_row(row) if row else None
    
    def load_compilations_for_user(self, user_id: str, limit: int) -> List[Dict]:
        """Load a user's records, newest first, at most `limit` rows."""
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                SELECT * FROM compilations
                WHERE user_id = ?
                ORDER BY created_at DESC, id DESC
                LIMIT ?
            """, (user_id, limit))
            return [self._compilation_row(row) for row in cursor.fetchall()]
    
    def load_compilations_created_before(self, cutoff: datetime) -> List[Dict]:
        """Load every record created strictly before cutoff."""
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT * FROM compilations WHERE created_at < ? ORDER BY created_at",
                (format_timestamp(cutoff),)
            )
            return [self._compilation_row(row) for row in cursor.fetchall()]
    
    def delete_compilation(self, record_id: int) -> bool:
        """
        Delete one record.
        
        Returns:
            True if a row was removed
        """
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM compilations WHERE id = ?", (record_id,))
            return cursor.rowcount > 0
    
    # User credentials
    
    def save_user_token(self, user_id: str, access_token: str):
        """Save or replace a user's access token."""
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                INSERT INTO users (user_id, access_token, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    access_token = excluded.access_token,
                    updated_at = excluded.updated_at
            """, (user_id, access_token, datetime.now().isoformat()))
    
    def load_user_token(self, user_id: str) -> Optional[str]:
        """Load a user's access token, or None if the user is unknown."""
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT access_token FROM users WHERE user_id = ?", (user_id,))
            row = cursor.fetchone()
            return row["access_token"] if row else None
