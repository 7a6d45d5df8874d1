# logwarden/core/database.py
"""
Database layer for LogWarden
SQLite for users, sessions, uploaded log files and their analysis results
"""

import sqlite3
import json
import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import List, Optional, Dict, Any
from contextlib import contextmanager

from .models import User, LogFile, LogFileListing, AnalysisRecord
from .config import settings
from .errors import PersistenceError

logger = logging.getLogger(__name__)


class Database:
    """
    Handles all SQLite operations

    Tables:
    - users: Accounts (email + PBKDF2 password hash)
    - sessions: Bearer tokens (stored hashed) with expiry
    - logs: Uploaded CSV files, one row per upload
    - log_analysis_results: Latest analysis per log file (unique log_id)
    """

    def __init__(self, db_path=None):
        """
        Initialize database

        Args:
            db_path: Path to database file (or ":memory:" for in-memory DB)
        """
        if db_path is None:
            self.db_path = settings.db_path
        else:
            self.db_path = db_path  # Strings kept as-is for ":memory:"

        # An in-memory database only lives as long as its connection,
        # so keep one open instead of connecting per call
        self._memory_conn = None
        if self.db_path == ":memory:":
            self._memory_conn = sqlite3.connect(":memory:", check_same_thread=False)
            self._memory_conn.row_factory = sqlite3.Row
            self._memory_conn.execute("PRAGMA foreign_keys = ON")

        self._init_db()

    def _init_db(self):
        """
        Initialize database schema
        Creates tables if they don't exist
        """
        with self.get_connection() as conn:
            # ===== USERS TABLE =====
            conn.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    email TEXT NOT NULL UNIQUE,
                    password_hash TEXT NOT NULL,
                    role TEXT NOT NULL DEFAULT 'user',
                    is_active INTEGER NOT NULL DEFAULT 1,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    last_login TEXT
                )
            """)

            # ===== SESSIONS TABLE =====
            conn.execute("""
                CREATE TABLE IF NOT EXISTS sessions (
                    token_hash TEXT PRIMARY KEY,
                    user_id INTEGER NOT NULL,
                    created_at TEXT NOT NULL,
                    expires_at TEXT NOT NULL,
                    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
                )
            """)

            # ===== LOGS TABLE =====
            conn.execute("""
                CREATE TABLE IF NOT EXISTS logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    filename TEXT NOT NULL,
                    original_filename TEXT NOT NULL,
                    file_path TEXT NOT NULL,
                    upload_date TEXT NOT NULL,
                    analysis_result TEXT,
                    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
                )
            """)

            # ===== ANALYSIS RESULTS TABLE =====
            conn.execute("""
                CREATE TABLE IF NOT EXISTS log_analysis_results (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    log_id INTEGER NOT NULL UNIQUE,
                    total_analyzed INTEGER NOT NULL DEFAULT 0,
                    total_anomalies INTEGER NOT NULL DEFAULT 0,
                    analysis_status TEXT NOT NULL DEFAULT 'pending',
                    analysis_summary TEXT,
                    analysis_date TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    FOREIGN KEY (log_id) REFERENCES logs(id) ON DELETE CASCADE,
                    CHECK(analysis_status IN ('pending', 'completed', 'failed'))
                )
            """)

            conn.execute("CREATE INDEX IF NOT EXISTS idx_sessions_user ON sessions(user_id)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_logs_user ON logs(user_id)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_logs_upload ON logs(upload_date DESC)")

            conn.commit()

    @contextmanager
    def get_connection(self):
        """
        Context manager for database connections

        For in-memory DBs: Returns the persistent connection (doesn't close it)
        For file DBs: Creates a new connection each time (and closes it)

        sqlite3 errors inside the block are re-raised as PersistenceError.

        Usage:
            with db.get_connection() as conn:
                conn.execute(...)
        """
        if self._memory_conn:
            conn = self._memory_conn
            close = False
        else:
            try:
                conn = sqlite3.connect(str(self.db_path))
            except sqlite3.Error as e:
                raise PersistenceError(f"Cannot open database {self.db_path}: {e}") from e
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON")
            close = True

        try:
            yield conn
        except sqlite3.Error as e:
            conn.rollback()
            logger.error(f"Database error: {e}")
            raise PersistenceError(str(e)) from e
        finally:
            if close:
                conn.close()

    # ========================================
    # USER OPERATIONS
    # ========================================

    def create_user(self, email: str, password_hash: str, role: str = "user") -> User:
        """
        Create a new account

        Raises:
            ValueError: If the email is already registered
        """
        now = datetime.now().isoformat()
        with self.get_connection() as conn:
            try:
                cursor = conn.execute("""
                    INSERT INTO users (email, password_hash, role, is_active, created_at, updated_at)
                    VALUES (?, ?, ?, 1, ?, ?)
                """, (email, password_hash, role, now, now))
                conn.commit()
            except sqlite3.IntegrityError as e:
                raise ValueError(f"User with email '{email}' already exists") from e

            user_id = cursor.lastrowid

        return self.get_user(user_id)

    def get_user(self, user_id: int) -> Optional[User]:
        """Get a user by ID"""
        with self.get_connection() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
            return self._row_to_user(row) if row else None

    def get_user_by_email(self, email: str) -> Optional[User]:
        """Get an active user by email"""
        with self.get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE email = ? AND is_active = 1",
                (email,)
            ).fetchone()
            return self._row_to_user(row) if row else None

    def update_last_login(self, user_id: int) -> None:
        now = datetime.now().isoformat()
        with self.get_connection() as conn:
            conn.execute(
                "UPDATE users SET last_login = ?, updated_at = ? WHERE id = ?",
                (now, now, user_id)
            )
            conn.commit()

    # ========================================
    # SESSION OPERATIONS
    # ========================================

    def create_session(self, user_id: int, token_hash: str, ttl_hours: Optional[int] = None) -> datetime:
        """
        Store a session token digest

        Returns:
            Expiry time of the new session
        """
        now = datetime.now()
        if ttl_hours is None:
            ttl_hours = settings.session_ttl_hours
        expires_at = now + timedelta(hours=ttl_hours)
        with self.get_connection() as conn:
            conn.execute("""
                INSERT INTO sessions (token_hash, user_id, created_at, expires_at)
                VALUES (?, ?, ?, ?)
            """, (token_hash, user_id, now.isoformat(), expires_at.isoformat()))
            conn.commit()
        return expires_at

    def get_session_user(self, token_hash: str) -> Optional[User]:
        """
        Resolve a session token digest to its user

        Expired sessions are deleted on sight; inactive users don't resolve.
        """
        with self.get_connection() as conn:
            row = conn.execute("""
                SELECT u.*, s.expires_at AS session_expires_at
                FROM sessions s
                JOIN users u ON u.id = s.user_id
                WHERE s.token_hash = ? AND u.is_active = 1
            """, (token_hash,)).fetchone()

            if not row:
                return None

            if datetime.fromisoformat(row['session_expires_at']) <= datetime.now():
                conn.execute("DELETE FROM sessions WHERE token_hash = ?", (token_hash,))
                conn.commit()
                return None

            return self._row_to_user(row)

    def delete_session(self, token_hash: str) -> bool:
        """Revoke a session. Returns True if it existed"""
        with self.get_connection() as conn:
            cursor = conn.execute("DELETE FROM sessions WHERE token_hash = ?", (token_hash,))
            conn.commit()
            return cursor.rowcount > 0

    def purge_expired_sessions(self) -> int:
        """Delete all expired sessions, returns how many were removed"""
        with self.get_connection() as conn:
            cursor = conn.execute(
                "DELETE FROM sessions WHERE expires_at <= ?",
                (datetime.now().isoformat(),)
            )
            conn.commit()
            return cursor.rowcount

    # ========================================
    # LOG FILE OPERATIONS
    # ========================================

    def add_log_file(self, user_id: int, filename: str, original_filename: str, file_path: str) -> LogFile:
        """Register an uploaded file"""
        with self.get_connection() as conn:
            cursor = conn.execute("""
                INSERT INTO logs (user_id, filename, original_filename, file_path, upload_date)
                VALUES (?, ?, ?, ?, ?)
            """, (user_id, filename, original_filename, file_path, datetime.now().isoformat()))
            conn.commit()
            log_id = cursor.lastrowid

        return self.get_log_file(log_id, user_id)

    def get_log_file(self, log_id: int, user_id: Optional[int] = None) -> Optional[LogFile]:
        """
        Get an uploaded file by ID

        Args:
            log_id: Log file ID
            user_id: If given, only return the file when this user owns it
        """
        with self.get_connection() as conn:
            query = "SELECT * FROM logs WHERE id = ?"
            params: List[Any] = [log_id]
            if user_id is not None:
                query += " AND user_id = ?"
                params.append(user_id)

            row = conn.execute(query, params).fetchone()
            return self._row_to_log_file(row) if row else None

    def list_log_files(self, user_id: int) -> List[LogFileListing]:
        """A user's uploads with their analysis totals, newest first"""
        with self.get_connection() as conn:
            rows = conn.execute("""
                SELECT
                    l.id, l.original_filename, l.upload_date, l.analysis_result,
                    r.total_analyzed, r.total_anomalies, r.analysis_status,
                    r.analysis_date
                FROM logs l
                LEFT JOIN log_analysis_results r ON r.log_id = l.id
                WHERE l.user_id = ?
                ORDER BY l.upload_date DESC, l.id DESC
            """, (user_id,)).fetchall()

            return [self._row_to_listing(row) for row in rows]

    def set_log_analysis_result(self, log_id: int, analysis_result: Dict[str, Any]) -> None:
        """Mirror the latest analysis summary onto the logs row"""
        with self.get_connection() as conn:
            conn.execute(
                "UPDATE logs SET analysis_result = ? WHERE id = ?",
                (json.dumps(analysis_result), log_id)
            )
            conn.commit()

    # ========================================
    # ANALYSIS OPERATIONS
    # ========================================

    def upsert_analysis(
        self,
        log_id: int,
        total_analyzed: int,
        total_anomalies: int,
        analysis_summary: Dict[str, Any],
        status: str = "completed"
    ) -> int:
        """
        Insert or replace the analysis for a log file

        Re-analysing the same file overwrites the previous result.

        Returns:
            ID of the log_analysis_results row
        """
        now = datetime.now().isoformat()
        with self.get_connection() as conn:
            conn.execute("""
                INSERT INTO log_analysis_results (
                    log_id, total_analyzed, total_anomalies, analysis_status,
                    analysis_summary, analysis_date, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(log_id) DO UPDATE SET
                    total_analyzed = excluded.total_analyzed,
                    total_anomalies = excluded.total_anomalies,
                    analysis_status = excluded.analysis_status,
                    analysis_summary = excluded.analysis_summary,
                    analysis_date = excluded.analysis_date,
                    updated_at = excluded.updated_at
            """, (
                log_id,
                total_analyzed,
                total_anomalies,
                status,
                json.dumps(analysis_summary),
                now,
                now,
                now
            ))
            conn.commit()

            row = conn.execute(
                "SELECT id FROM log_analysis_results WHERE log_id = ?",
                (log_id,)
            ).fetchone()
            return row['id']

    def get_analysis(self, log_id: int) -> Optional[AnalysisRecord]:
        """Get the analysis of a log file, joined with its file info"""
        with self.get_connection() as conn:
            row = conn.execute("""
                SELECT r.*, l.original_filename, l.upload_date
                FROM log_analysis_results r
                JOIN logs l ON l.id = r.log_id
                WHERE r.log_id = ?
            """, (log_id,)).fetchone()

            return self._row_to_analysis(row) if row else None

    # ========================================
    # UTILITY METHODS
    # ========================================

    def get_db_size(self) -> int:
        """Get database file size in bytes"""
        if self.db_path == ":memory:":
            return 0
        path = Path(self.db_path)
        return path.stat().st_size if path.exists() else 0

    # ========================================
    # HELPER METHODS (Row -> Model)
    # ========================================

    def _row_to_user(self, row) -> User:
        """Convert database row to User model"""
        return User(
            id=row['id'],
            email=row['email'],
            password_hash=row['password_hash'],
            role=row['role'],
            is_active=bool(row['is_active']),
            created_at=datetime.fromisoformat(row['created_at']),
            updated_at=datetime.fromisoformat(row['updated_at']),
            last_login=datetime.fromisoformat(row['last_login']) if row['last_login'] else None
        )

    def _row_to_log_file(self, row) -> LogFile:
        """Convert database row to LogFile model"""
        return LogFile(
            id=row['id'],
            user_id=row['user_id'],
            filename=row['filename'],
            original_filename=row['original_filename'],
            file_path=row['file_path'],
            upload_date=datetime.fromisoformat(row['upload_date']),
            analysis_result=json.loads(row['analysis_result']) if row['analysis_result'] else None
        )

    def _row_to_listing(self, row) -> LogFileListing:
        return LogFileListing(
            id=row['id'],
            original_filename=row['original_filename'],
            upload_date=datetime.fromisoformat(row['upload_date']),
            analysis_result=json.loads(row['analysis_result']) if row['analysis_result'] else None,
            total_analyzed=row['total_analyzed'],
            total_anomalies=row['total_anomalies'],
            analysis_status=row['analysis_status'],
            analysis_date=datetime.fromisoformat(row['analysis_date']) if row['analysis_date'] else None
        )

    def _row_to_analysis(self, row) -> AnalysisRecord:
        """Convert database row to AnalysisRecord model"""
        return AnalysisRecord(
            id=row['id'],
            log_id=row['log_id'],
            total_analyzed=row['total_analyzed'],
            total_anomalies=row['total_anomalies'],
            analysis_status=row['analysis_status'],
            analysis_summary=json.loads(row['analysis_summary']) if row['analysis_summary'] else None,
            analysis_date=datetime.fromisoformat(row['analysis_date']),
            created_at=datetime.fromisoformat(row['created_at']),
            updated_at=datetime.fromisoformat(row['updated_at']),
            original_filename=row['original_filename'],
            upload_date=datetime.fromisoformat(row['upload_date'])
        )


# ===== SINGLETON INSTANCE =====
# Create a global database instance
db = Database()


def get_db() -> Database:
    """FastAPI dependency returning the global database"""
    return db
