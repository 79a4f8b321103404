"""
Database connection management.

Provides SQLite connection for data persistence.
"""

import sqlite3
from pathlib import Path

DEFAULT_DB_PATH = "grace_meter.db"


def get_connection(db_path: str = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Create and return a SQLite connection in manual transaction mode.
    
    Args:
        db_path: Path to SQLite database file
        
    Returns:
        SQLite connection; callers issue BEGIN/COMMIT themselves
    """
    path = Path(db_path)
    conn = sqlite3.connect(str(path), timeout=30, isolation_level=None)
    conn.execute("PRAGMA journal_mode = WAL")
    return conn
