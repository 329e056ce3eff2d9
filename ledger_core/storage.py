"""
Storage Backend Module

Provides an abstract table-oriented storage interface with a unit-of-work
boundary, and implementations for in-memory (testing) and SQLite
(persistence). Balances are stored as integer minor units.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Any, Tuple, Union
from datetime import datetime, timezone
from enum import Enum
import sqlite3
import json
import logging
import threading
from dataclasses import dataclass, asdict
from pathlib import Path
from contextlib import contextmanager

from .errors import UnavailableError


logger = logging.getLogger("ledger.storage")

SQLITE_MAX_INTEGER = 2 ** 63 - 1
SQLITE_MIN_INTEGER = -2 ** 63


@dataclass
class StorageRecord:
    """Base class for all stored records"""
    id: str
    created_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage"""
        result = asdict(self)
        for key, value in result.items():
            if isinstance(value, datetime):
                result[key] = value.isoformat()
            elif isinstance(value, Enum):
                result[key] = value.value
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StorageRecord':
        """Create instance from dictionary"""
        data = dict(data)
        # Convert ISO strings back to datetime objects
        for key, value in data.items():
            if key.endswith('_at') and isinstance(value, str):
                data[key] = datetime.fromisoformat(value)
        return cls(**data)


class StorageInterface(ABC):
    """
    Abstract interface for storage backends

    All access is serialised through one re-entrant lock. ``atomic()`` holds
    that lock for the whole unit of work, so nested units on the same thread
    join the outer one and other threads wait (up to ``lock_timeout``).
    """

    def __init__(self, lock_timeout: float = 5.0):
        self.lock_timeout = lock_timeout
        self._lock = threading.RLock()
        self._depth = 0

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    @contextmanager
    def _locked(self):
        if not self._lock.acquire(timeout=self.lock_timeout):
            raise UnavailableError("Storage is busy, please retry")
        try:
            yield
        finally:
            self._lock.release()

    @abstractmethod
    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Insert or replace a record"""
        pass

    @abstractmethod
    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a record from storage"""
        pass

    @abstractmethod
    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load all records from a table in insertion order"""
        pass

    @abstractmethod
    def find(self, table: str, filters: Dict[str, Any],
             match_any: bool = False) -> List[Dict[str, Any]]:
        """
        Find records matching filters, in insertion order

        With match_any=False every filter must match; with match_any=True
        a record matching at least one filter is returned.
        """
        pass

    @abstractmethod
    def increment(self, table: str, record_id: str, field: str, delta: int,
                  floor: Optional[int] = None, ceiling: Optional[int] = None,
                  updated_at: Optional[datetime] = None) -> Optional[Dict[str, Any]]:
        """
        Atomically add delta to an integer field

        The update only happens when the resulting value is >= floor and
        <= ceiling (each if given). Returns the updated record, or None when
        no record matched (missing id or a bound violated).
        """
        pass

    @abstractmethod
    def count(self, table: str) -> int:
        """Count records in table"""
        pass

    @abstractmethod
    def clear_table(self, table: str) -> None:
        """Clear all records from a table"""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close storage connection"""
        pass

    def begin_transaction(self) -> None:
        """Start a database transaction (default no-op)"""
        pass

    def commit(self) -> None:
        """Commit current transaction (default no-op)"""
        pass

    def rollback(self) -> None:
        """Rollback current transaction (default no-op)"""
        pass

    @contextmanager
    def atomic(self):
        """
        Unit of work: commit on success, rollback on any exception

        Raises:
            UnavailableError: If the lock cannot be acquired in time
        """
        with self._locked():
            outermost = self._depth == 0
            if outermost:
                self.begin_transaction()
            self._depth += 1
            try:
                yield
            except BaseException:
                self._depth -= 1
                if outermost:
                    logger.debug("Rolling back unit of work")
                    self.rollback()
                raise
            self._depth -= 1
            if outermost:
                self.commit()


def _copy(record: Dict[str, Any]) -> Dict[str, Any]:
    # Deep copy to prevent external mutation
    return json.loads(json.dumps(record, default=str))


def _matches(record: Dict[str, Any], filters: Dict[str, Any], match_any: bool) -> bool:
    hits = [key in record and record[key] == value for key, value in filters.items()]
    if not hits:
        return True
    return any(hits) if match_any else all(hits)


class InMemoryStorage(StorageInterface):
    """
    In-memory storage implementation for testing

    A unit of work keeps an undo log of the records it changes, so rollback
    costs time proportional to the unit's writes rather than the dataset.
    """

    def __init__(self, lock_timeout: float = 5.0):
        super().__init__(lock_timeout)
        self._data: Dict[str, Dict[str, Dict[str, Any]]] = {}
        # (table, id) -> record before the unit first touched it (None if absent)
        self._undo: Optional[Dict[Tuple[str, str], Optional[Dict[str, Any]]]] = None
        # Tables cleared inside the unit, as they were at the time of clearing
        self._cleared: Dict[str, Dict[str, Dict[str, Any]]] = {}

    def _ensure_table(self, table: str) -> None:
        if table not in self._data:
            self._data[table] = {}

    def _remember(self, table: str, record_id: str) -> None:
        if self._undo is None or (table, record_id) in self._undo:
            return
        record = self._data[table].get(record_id)
        self._undo[(table, record_id)] = _copy(record) if record is not None else None

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        with self._locked():
            self._ensure_table(table)
            self._remember(table, record_id)
            self._data[table][record_id] = _copy(data)

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self._locked():
            self._ensure_table(table)
            record = self._data[table].get(record_id)
            if record:
                return _copy(record)
            return None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        with self._locked():
            self._ensure_table(table)
            return [_copy(record) for record in self._data[table].values()]

    def find(self, table: str, filters: Dict[str, Any],
             match_any: bool = False) -> List[Dict[str, Any]]:
        with self._locked():
            self._ensure_table(table)
            return [
                _copy(record) for record in self._data[table].values()
                if _matches(record, filters, match_any)
            ]

    def increment(self, table: str, record_id: str, field: str, delta: int,
                  floor: Optional[int] = None, ceiling: Optional[int] = None,
                  updated_at: Optional[datetime] = None) -> Optional[Dict[str, Any]]:
        with self._locked():
            self._ensure_table(table)
            record = self._data[table].get(record_id)
            if record is None:
                return None

            new_value = record[field] + delta
            if floor is not None and new_value < floor:
                return None
            if ceiling is not None and new_value > ceiling:
                return None

            self._remember(table, record_id)
            record[field] = new_value
            record['updated_at'] = (updated_at or datetime.now(timezone.utc)).isoformat()
            return _copy(record)

    def count(self, table: str) -> int:
        with self._locked():
            self._ensure_table(table)
            return len(self._data[table])

    def clear_table(self, table: str) -> None:
        with self._locked():
            self._ensure_table(table)
            if self._undo is not None:
                if table not in self._cleared:
                    self._cleared[table] = _copy(self._data[table])
                for record_id in self._data[table]:
                    self._remember(table, record_id)
            self._data[table] = {}

    def begin_transaction(self) -> None:
        self._undo = {}
        self._cleared = {}

    def commit(self) -> None:
        self._undo = None
        self._cleared = {}

    def rollback(self) -> None:
        if self._undo is None:
            return
        # Cleared tables come back first to keep their insertion order
        for table, records in self._cleared.items():
            self._data[table] = records
        for (table, record_id), record in self._undo.items():
            if record is None:
                self._data[table].pop(record_id, None)
            else:
                self._data[table][record_id] = record
        self._undo = None
        self._cleared = {}

    def close(self) -> None:
        """Close storage (no-op for in-memory)"""
        pass


class SQLiteStorage(StorageInterface):
    """SQLite storage implementation for persistence"""

    def __init__(self, db_path: Union[str, Path] = ":memory:",
                 lock_timeout: float = 5.0, busy_timeout: float = 5.0):
        super().__init__(lock_timeout)
        self.db_path = str(db_path)
        # Transactions are opened explicitly in begin_transaction
        self._connection = sqlite3.connect(
            self.db_path,
            check_same_thread=False,
            isolation_level='DEFERRED',
            timeout=busy_timeout,
        )
        self._connection.row_factory = sqlite3.Row
        self._tables = set()

        # Enable WAL mode for better concurrent access
        if self.db_path != ":memory:":
            with self._locked():
                self._connection.execute("PRAGMA journal_mode = WAL")
                self._connection.execute("PRAGMA synchronous = NORMAL")
                self._connection.commit()

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        try:
            return self._connection.execute(sql, params)
        except sqlite3.OperationalError as e:
            logger.warning("SQLite operation failed: %s", e)
            # Outside a unit of work, drop the implicit transaction the failed write opened
            if not self.in_transaction and self._connection.in_transaction:
                self._connection.rollback()
            raise UnavailableError("Storage temporarily unavailable") from e

    def _autocommit(self) -> None:
        # Writes outside a unit of work commit immediately
        if not self.in_transaction:
            try:
                self._connection.commit()
            except sqlite3.OperationalError as e:
                self._connection.rollback()
                raise UnavailableError("Storage temporarily unavailable") from e

    def _ensure_table(self, table: str) -> None:
        """Ensure table exists with proper schema"""
        if table in self._tables:
            return
        self._execute(f"""
            CREATE TABLE IF NOT EXISTS {table} (
                id TEXT PRIMARY KEY,
                data TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        self._execute(f"""
            CREATE INDEX IF NOT EXISTS idx_{table}_created_at
            ON {table}(created_at)
        """)
        self._autocommit()
        self._tables.add(table)

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        with self._locked():
            self._ensure_table(table)

            now = datetime.now(timezone.utc).isoformat()
            data_json = json.dumps(data, default=str)

            # Upsert keeps the original rowid, which preserves insertion order
            self._execute(f"""
                INSERT INTO {table} (id, data, created_at, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    data = excluded.data,
                    updated_at = excluded.updated_at
            """, (record_id, data_json, data.get('created_at', now), data.get('updated_at', now)))
            self._autocommit()

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self._locked():
            self._ensure_table(table)
            row = self._execute(f"""
                SELECT data FROM {table} WHERE id = ?
            """, (record_id,)).fetchone()
            if row:
                return json.loads(row['data'])
            return None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        with self._locked():
            self._ensure_table(table)
            cursor = self._execute(f"""
                SELECT data FROM {table} ORDER BY rowid
            """)
            return [json.loads(row['data']) for row in cursor.fetchall()]

    def find(self, table: str, filters: Dict[str, Any],
             match_any: bool = False) -> List[Dict[str, Any]]:
        """Find records matching filters (simple JSON key matching)"""
        return [
            record for record in self.load_all(table)
            if _matches(record, filters, match_any)
        ]

    def increment(self, table: str, record_id: str, field: str, delta: int,
                  floor: Optional[int] = None, ceiling: Optional[int] = None,
                  updated_at: Optional[datetime] = None) -> Optional[Dict[str, Any]]:
        if not field.isidentifier():
            raise ValueError(f"Invalid field name: {field}")

        path = f"$.{field}"
        stamp = (updated_at or datetime.now(timezone.utc)).isoformat()
        sql = f"""
            UPDATE {table}
            SET data = json_set(data, ?, json_extract(data, ?) + ?, '$.updated_at', ?),
                updated_at = ?
            WHERE id = ?
        """
        params = [path, path, delta, stamp, stamp, record_id]
        # Conditional update: the bound checks and the write are one statement.
        # The stored value is compared with a limit computed here, so SQLite
        # never evaluates a sum outside the 64-bit INTEGER range.
        if floor is not None:
            limit = floor - delta
            if limit > SQLITE_MAX_INTEGER:
                return None
            if limit >= SQLITE_MIN_INTEGER:
                sql += " AND json_extract(data, ?) >= ?"
                params.extend([path, limit])
        if ceiling is not None:
            limit = ceiling - delta
            if limit < SQLITE_MIN_INTEGER:
                return None
            if limit <= SQLITE_MAX_INTEGER:
                sql += " AND json_extract(data, ?) <= ?"
                params.extend([path, limit])

        with self._locked():
            self._ensure_table(table)
            cursor = self._execute(sql, tuple(params))
            self._autocommit()
            if cursor.rowcount == 0:
                return None
            row = self._execute(f"""
                SELECT data FROM {table} WHERE id = ?
            """, (record_id,)).fetchone()
            return json.loads(row['data'])

    def count(self, table: str) -> int:
        with self._locked():
            self._ensure_table(table)
            row = self._execute(f"""
                SELECT COUNT(*) as count FROM {table}
            """).fetchone()
            return row['count']

    def clear_table(self, table: str) -> None:
        with self._locked():
            self._ensure_table(table)
            self._execute(f"DELETE FROM {table}")
            self._autocommit()

    def begin_transaction(self) -> None:
        """Start a database transaction holding the write lock"""
        if not self._connection.in_transaction:
            self._execute("BEGIN IMMEDIATE")

    def commit(self) -> None:
        try:
            self._connection.commit()
        except sqlite3.OperationalError as e:
            self.rollback()
            raise UnavailableError("Storage temporarily unavailable") from e

    def rollback(self) -> None:
        self._connection.rollback()
        # Tables created inside the rolled-back unit are gone again
        self._tables.clear()

    def close(self) -> None:
        """Close SQLite connection"""
        with self._locked():
            if self._connection:
                self._connection.close()
                self._connection = None


def create_storage(config=None) -> StorageInterface:
    """
    Build the storage backend named by configuration

    Args:
        config: LedgerConfig instance (global configuration if omitted)
    """
    if config is None:
        from .config import get_config
        config = get_config()

    backend = config.storage_backend.lower()
    if backend == "memory":
        return InMemoryStorage(lock_timeout=config.storage_lock_timeout)
    if backend == "sqlite":
        return SQLiteStorage(
            config.database_path,
            lock_timeout=config.storage_lock_timeout,
            busy_timeout=config.sqlite_busy_timeout,
        )
    raise ValueError(f"Unknown storage backend: {config.storage_backend}")
