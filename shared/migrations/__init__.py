"""
SQLite schema migrations.

Migrations live as numbered Python files in a migrations/ directory
(001_initial_schema.py, 002_add_index.py, ...). Each file defines
up(conn) and optionally down(conn). Applied versions are recorded in a
schema_migrations table so startup only runs what is new.

Usage:
    from shared.migrations import MigrationRunner

    runner = MigrationRunner(db_path='portia.db', migrations_dir='portia/migrations')
    runner.run_pending_migrations()
"""
import importlib.util
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, List

logger = logging.getLogger(__name__)


class Migration:
    """One migration file."""

    def __init__(self, version: str, name: str, filepath: Path):
        self.version = version
        self.name = name
        self.filepath = filepath
        self._module = None

    @property
    def label(self) -> str:
        return f"{self.version}_{self.name}"

    @property
    def module(self):
        if self._module is None:
            spec = importlib.util.spec_from_file_location(f"migration_{self.version}", self.filepath)
            module = importlib.util.module_from_spec(spec)
            spec.loader.exec_module(module)
            self._module = module
        return self._module

    def _step(self, direction: str):
        step = getattr(self.module, direction, None)
        if step is None:
            raise ValueError(f"Migration {self.label} has no {direction}() function")
        return step

    def up(self, conn: sqlite3.Connection):
        self._step('up')(conn)

    def down(self, conn: sqlite3.Connection):
        self._step('down')(conn)


class MigrationRunner:
    """Applies pending migrations to one SQLite database."""

    def __init__(self, db_path: str, migrations_dir: str):
        self.db_path = db_path
        self.migrations_dir = Path(migrations_dir)
        self._init_migrations_table()

    @contextmanager
    def connection(self):
        conn = sqlite3.connect(self.db_path)
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_migrations_table(self):
        with self.connection() as conn:
            conn.execute('''
                CREATE TABLE IF NOT EXISTS schema_migrations (
                    version TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    applied_at TEXT DEFAULT CURRENT_TIMESTAMP
                )
            ''')

    def applied_versions(self) -> List[str]:
        with self.connection() as conn:
            rows = conn.execute('SELECT version FROM schema_migrations ORDER BY version').fetchall()
        return [row[0] for row in rows]

    def available_migrations(self) -> List[Migration]:
        migrations = []
        for filepath in sorted(self.migrations_dir.glob('*.py')):
            if filepath.name.startswith('_'):
                continue

            version, sep, name = filepath.stem.partition('_')
            if not sep or not version.isdigit():
                logger.warning(f"Skipping migration file {filepath.name} (expected NNN_name.py)")
                continue
            migrations.append(Migration(version, name, filepath))

        return sorted(migrations, key=lambda m: m.version)

    def pending_migrations(self) -> List[Migration]:
        applied = set(self.applied_versions())
        return [m for m in self.available_migrations() if m.version not in applied]

    def run_pending_migrations(self) -> int:
        """
        Apply every pending migration, each in its own transaction.

        Returns:
            Number of migrations applied
        """
        pending = self.pending_migrations()
        if not pending:
            logger.debug(f"No pending migrations for {self.db_path}")
            return 0

        for migration in pending:
            logger.info(f"Applying migration {migration.label} to {self.db_path}")
            try:
                with self.connection() as conn:
                    migration.up(conn)
                    conn.execute(
                        'INSERT INTO schema_migrations (version, name) VALUES (?, ?)',
                        (migration.version, migration.name)
                    )
            except Exception:
                logger.exception(f"Migration {migration.label} failed")
                raise

        logger.info(f"Applied {len(pending)} migration(s) to {self.db_path}")
        return len(pending)

    def rollback_last(self) -> bool:
        """Roll back the most recently applied migration. False if none applied."""
        applied = self.applied_versions()
        if not applied:
            return False

        last = applied[-1]
        migration = next((m for m in self.available_migrations() if m.version == last), None)
        if migration is None:
            raise ValueError(f"Migration file for version {last} not found")

        logger.info(f"Rolling back migration {migration.label}")
        with self.connection() as conn:
            migration.down(conn)
            conn.execute('DELETE FROM schema_migrations WHERE version = ?', (migration.version,))
        return True

    def get_status(self) -> Dict:
        applied = self.applied_versions()
        pending = self.pending_migrations()
        return {
            'applied_versions': applied,
            'pending_versions': [m.version for m in pending],
            'total_applied': len(applied),
            'total_pending': len(pending),
        }
