"""
Database Layer

SQLite connection pooling and schema management for the clinic records store.
The pool hands out thread-safe connections through a context manager; the
manager owns the pool, creates the schema and exposes table statistics for the
health endpoint.
"""

import sqlite3
import logging
import threading
from pathlib import Path
from typing import List, Dict, Any, Optional, Tuple
from contextlib import contextmanager
from datetime import datetime

from .config import config
from .database_schema import get_schema_sql, get_table_descriptions

# Register datetime adapter for Python 3.12+ compatibility
sqlite3.register_adapter(datetime, lambda dt: dt.isoformat())


class DatabaseConnectionPool:
    """Thread-safe SQLite connection pool"""

    def __init__(self, db_path: Path, max_connections: int = 10, timeout: float = 30.0,
                 journal_mode: str = "WAL", foreign_keys: bool = True):
        self.db_path = db_path
        self.max_connections = max_connections
        self.timeout = timeout
        self.journal_mode = journal_mode
        self.foreign_keys = foreign_keys
        self._pool: List[sqlite3.Connection] = []
        self._pool_lock = threading.Lock()
        self._created_connections = 0
        self.logger = logging.getLogger(self.__class__.__name__)

        db_path.parent.mkdir(parents=True, exist_ok=True)

    def _create_connection(self) -> sqlite3.Connection:
        """Create a new configured database connection"""
        conn = sqlite3.connect(
            str(self.db_path),
            timeout=self.timeout,
            check_same_thread=False
        )

        conn.row_factory = sqlite3.Row  # Enable column access by name
        conn.execute(f"PRAGMA foreign_keys = {'ON' if self.foreign_keys else 'OFF'}")
        conn.execute(f"PRAGMA journal_mode = {self.journal_mode}")
        conn.execute("PRAGMA synchronous = NORMAL")
        conn.execute("PRAGMA temp_store = MEMORY")

        return conn

    @contextmanager
    def get_connection(self):
        """Get a connection from the pool"""
        conn = None
        temp_connection = False
        try:
            with self._pool_lock:
                if self._pool:
                    conn = self._pool.pop()
                elif self._created_connections < self.max_connections:
                    conn = self._create_connection()
                    self._created_connections += 1

            if conn is None:
                # Pool exhausted, create temporary connection
                conn = self._create_connection()
                temp_connection = True

            yield conn

        except Exception as e:
            self.logger.error(f"Database error: {e}")
            if conn:
                try:
                    conn.rollback()
                except sqlite3.Error as rollback_error:
                    self.logger.warning(f"Rollback failed: {rollback_error}")
            raise
        finally:
            if conn:
                if temp_connection:
                    conn.close()
                else:
                    with self._pool_lock:
                        if len(self._pool) < self.max_connections:
                            self._pool.append(conn)
                        else:
                            conn.close()
                            self._created_connections -= 1

    def close_all(self):
        """Close all connections in the pool"""
        with self._pool_lock:
            for conn in self._pool:
                try:
                    conn.close()
                except sqlite3.Error as e:
                    self.logger.warning(f"Error closing connection: {e}")
            self._pool.clear()
            self._created_connections = 0

    def get_pool_stats(self) -> Dict[str, int]:
        """Get connection pool statistics for monitoring"""
        with self._pool_lock:
            return {
                'pool_size': len(self._pool),
                'created_connections': self._created_connections,
                'max_connections': self.max_connections,
                'in_use': self._created_connections - len(self._pool)
            }


class DatabaseManager:
    """
    Owns the connection pool and the clinic schema.
    """

    def __init__(self, db_path: Path = None):
        self.db_path = db_path or config.database.path
        self.pool = DatabaseConnectionPool(
            self.db_path,
            max_connections=config.database.max_connections,
            timeout=config.database.connection_timeout,
            journal_mode=config.database.journal_mode,
            foreign_keys=config.database.enable_foreign_keys
        )

        self.logger = logging.getLogger(self.__class__.__name__)
        self.initialize_database()

    def initialize_database(self):
        """Initialize database schema"""
        try:
            with self.pool.get_connection() as conn:
                statement_count = 0
                for statement in get_schema_sql().split(';'):
                    statement = statement.strip()
                    if statement:
                        conn.execute(statement)
                        statement_count += 1
                conn.commit()
                self.logger.info(f"Database schema initialized successfully ({statement_count} statements executed)")
        except sqlite3.Error as e:
            self.logger.error(f"Failed to initialize database: {e}", exc_info=True)
            raise

    def fetch_all(self, query: str, params: Optional[Tuple] = None) -> List[sqlite3.Row]:
        """Execute a read query and return all rows"""
        with self.pool.get_connection() as conn:
            cursor = conn.execute(query, params or ())
            return cursor.fetchall()

    def fetch_one(self, query: str, params: Optional[Tuple] = None) -> Optional[sqlite3.Row]:
        """Execute a read query and return the first row"""
        with self.pool.get_connection() as conn:
            cursor = conn.execute(query, params or ())
            return cursor.fetchone()

    def execute(self, query: str, params: Optional[Tuple] = None) -> int:
        """Execute a write statement and return the last row id"""
        with self.pool.get_connection() as conn:
            cursor = conn.execute(query, params or ())
            conn.commit()
            return cursor.lastrowid

    def get_table_stats(self) -> Dict[str, Dict[str, Any]]:
        """Get row counts for every clinic table"""
        stats = {}
        for table_name, description in get_table_descriptions().items():
            row = self.fetch_one(f"SELECT COUNT(*) AS count FROM {table_name}")
            stats[table_name] = {
                'row_count': row['count'] if row else 0,
                'description': description
            }
        return stats

    def ping(self) -> bool:
        """Check that the database answers a trivial query"""
        try:
            self.fetch_one("SELECT 1")
            return True
        except sqlite3.Error as e:
            self.logger.error(f"Database ping failed: {e}")
            return False

    def close(self):
        """Close all database connections and cleanup resources"""
        self.pool.close_all()
        self.logger.info("Database manager closed - all connections released")


_db_manager: Optional[DatabaseManager] = None
_db_manager_lock = threading.Lock()


def get_database_manager() -> DatabaseManager:
    """Get the global database manager instance"""
    global _db_manager
    with _db_manager_lock:
        if _db_manager is None:
            _db_manager = DatabaseManager()
        return _db_manager
