"""SQLite backend for Portia's collections."""
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, List, Optional

from portia.database.store import DomainStore, MODELS
from portia.errors import BackendError
from portia.models import Record, split_emails
from shared.migrations import MigrationRunner

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent.parent / 'migrations'

# Columns that can't be compared as plain text in a WHERE clause
_POST_FILTER_ONLY = ('id', 'admin_emails', 'auto_generated')


class SQLiteStore(DomainStore):
    """One table per collection, integer autoincrement ids."""

    backend_name = 'sqlite'

    def __init__(self, db_path: str = None):
        if db_path is None:
            db_path = Path(__file__).parent / 'portia.db'
        self.db_path = str(db_path)
        self._run_migrations()

    def _run_migrations(self):
        try:
            MigrationRunner(db_path=self.db_path, migrations_dir=str(MIGRATIONS_DIR)).run_pending_migrations()
        except sqlite3.Error as e:
            raise BackendError(f"Could not migrate database at {self.db_path}", details=str(e)) from e

    def get_connection(self):
        """Get a database connection with row factory."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def connection(self):
        """Transaction scope; sqlite3 errors surface as BackendError."""
        try:
            conn = self.get_connection()
        except sqlite3.Error as e:
            raise BackendError(f"Could not open database at {self.db_path}", details=str(e)) from e

        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise BackendError('SQLite operation failed', details=str(e)) from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    # ─────────────────────────────────────────────────────────────
    # Row conversion
    # ─────────────────────────────────────────────────────────────

    @staticmethod
    def _decode(collection: str, row: sqlite3.Row) -> Record:
        return MODELS[collection].from_fields(dict(row))

    @staticmethod
    def _encode(values: Dict) -> Dict:
        encoded = {}
        for name, value in values.items():
            if name == 'admin_emails':
                value = ','.join(split_emails(value))
            elif isinstance(value, bool):
                value = int(value)
            encoded[name] = value
        return encoded

    # ─────────────────────────────────────────────────────────────
    # Backend hooks
    # ─────────────────────────────────────────────────────────────

    def _fetch_all(self, collection: str, filters: Dict) -> List[Record]:
        clauses = []
        params = []
        defaults = MODELS[collection].DEFAULTS
        for name, value in (filters or {}).items():
            # Fields with a default may be stored empty and still match it
            if name in _POST_FILTER_ONLY or defaults.get(name) not in (None, ''):
                continue
            clauses.append(f"{name} = ?")
            params.append(str(value))

        sql = f"SELECT * FROM {collection}"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY id"

        with self.connection() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [self._decode(collection, row) for row in rows]

    def _fetch_one(self, collection: str, record_id: str) -> Optional[Record]:
        if not record_id.isdigit():
            return None

        with self.connection() as conn:
            row = conn.execute(f"SELECT * FROM {collection} WHERE id = ?", (int(record_id),)).fetchone()
        return self._decode(collection, row) if row else None

    def _insert(self, collection: str, values: Dict) -> Record:
        encoded = self._encode(values)
        columns = list(encoded)
        placeholders = ', '.join('?' for _ in columns)

        with self.connection() as conn:
            cursor = conn.execute(
                f"INSERT INTO {collection} ({', '.join(columns)}) VALUES ({placeholders})",
                [encoded[c] for c in columns]
            )
            new_id = cursor.lastrowid
            row = conn.execute(f"SELECT * FROM {collection} WHERE id = ?", (new_id,)).fetchone()

        return self._decode(collection, row)

    def _replace(self, collection: str, current: Record, updated: Record, changes: Dict) -> Record:
        encoded = self._encode({k: v for k, v in updated.to_dict().items() if k != 'id'})
        assignments = ', '.join(f"{c} = ?" for c in encoded)

        with self.connection() as conn:
            conn.execute(
                f"UPDATE {collection} SET {assignments} WHERE id = ?",
                list(encoded.values()) + [int(current.id)]
            )
            row = conn.execute(f"SELECT * FROM {collection} WHERE id = ?", (int(current.id),)).fetchone()

        return self._decode(collection, row)

    def _remove(self, collection: str, current: Record):
        with self.connection() as conn:
            conn.execute(f"DELETE FROM {collection} WHERE id = ?", (int(current.id),))
