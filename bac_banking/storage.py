"""
Storage Backend Module

Record store for users, customers, accounts, transactions and the audit
trail. Records are JSON documents keyed by id; monetary values arrive
already converted to Decimal strings.

Both backends support atomic blocks. While a block is open the backend lock
is held by the owning thread, so other threads wait instead of interleaving
writes with a transaction that may still roll back. Nested atomic blocks
join the outermost one.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Any, Set, Union
from datetime import datetime, timezone
import sqlite3
import json
import threading
from pathlib import Path
from contextlib import contextmanager


Record = Dict[str, Any]


class StorageInterface(ABC):
    """Abstract interface for storage backends"""

    @abstractmethod
    def save(self, table: str, record_id: str, data: Record) -> None:
        """Insert or replace a record"""

    @abstractmethod
    def load(self, table: str, record_id: str) -> Optional[Record]:
        """Load a record, or None when absent"""

    @abstractmethod
    def load_all(self, table: str) -> List[Record]:
        """Load every record of a table in insertion order"""

    @abstractmethod
    def delete(self, table: str, record_id: str) -> bool:
        """Delete a record; False when it did not exist"""

    @abstractmethod
    def exists(self, table: str, record_id: str) -> bool:
        pass

    @abstractmethod
    def find(self, table: str, filters: Dict[str, Any]) -> List[Record]:
        """Records whose fields equal every filter value"""

    @abstractmethod
    def count(self, table: str) -> int:
        pass

    @abstractmethod
    def clear_table(self, table: str) -> None:
        pass

    @abstractmethod
    def close(self) -> None:
        pass

    def begin_transaction(self) -> None:
        """Open or join an atomic block (default no-op)"""

    def commit(self) -> None:
        """Leave an atomic block, keeping its writes (default no-op)"""

    def rollback(self) -> None:
        """Leave an atomic block, discarding its writes (default no-op)"""

    @contextmanager
    def atomic(self):
        """
        Group writes so they all apply or none do

        Usage:
            with storage.atomic():
                storage.save("accounts", source_id, source)
                storage.save("accounts", target_id, target)
        """
        self.begin_transaction()
        try:
            yield
        except BaseException:
            self.rollback()
            raise
        self.commit()


def _matches(record: Record, filters: Dict[str, Any]) -> bool:
    return all(key in record and record[key] == value for key, value in filters.items())


def _copy(record: Any) -> Any:
    """Detached copy, so callers never share state with the store"""
    return json.loads(json.dumps(record, default=str))


class InMemoryStorage(StorageInterface):
    """Dictionary-backed storage for tests and throwaway sessions"""

    def __init__(self):
        self._tables: Dict[str, Dict[str, Record]] = {}
        self._lock = threading.RLock()
        self._depth = 0
        self._snapshot: Optional[Dict[str, Dict[str, Record]]] = None

    def _table(self, name: str) -> Dict[str, Record]:
        return self._tables.setdefault(name, {})

    def save(self, table: str, record_id: str, data: Record) -> None:
        with self._lock:
            self._table(table)[record_id] = _copy(data)

    def load(self, table: str, record_id: str) -> Optional[Record]:
        with self._lock:
            record = self._table(table).get(record_id)
            return _copy(record) if record is not None else None

    def load_all(self, table: str) -> List[Record]:
        with self._lock:
            return [_copy(record) for record in self._table(table).values()]

    def delete(self, table: str, record_id: str) -> bool:
        with self._lock:
            return self._table(table).pop(record_id, None) is not None

    def exists(self, table: str, record_id: str) -> bool:
        with self._lock:
            return record_id in self._table(table)

    def find(self, table: str, filters: Dict[str, Any]) -> List[Record]:
        with self._lock:
            return [
                _copy(record)
                for record in self._table(table).values()
                if _matches(record, filters)
            ]

    def count(self, table: str) -> int:
        with self._lock:
            return len(self._table(table))

    def clear_table(self, table: str) -> None:
        with self._lock:
            self._tables[table] = {}

    def begin_transaction(self) -> None:
        """Snapshot every table on entry to the outermost block"""
        self._lock.acquire()
        self._depth += 1
        if self._depth == 1:
            self._snapshot = _copy(self._tables)

    def commit(self) -> None:
        if self._depth == 0:
            return
        self._depth -= 1
        if self._depth == 0:
            self._snapshot = None
        self._lock.release()

    def rollback(self) -> None:
        """Restore the snapshot when the outermost block fails"""
        if self._depth == 0:
            return
        self._depth -= 1
        if self._depth == 0 and self._snapshot is not None:
            self._tables = self._snapshot
            self._snapshot = None
        self._lock.release()

    def close(self) -> None:
        pass


class SQLiteStorage(StorageInterface):
    """
    SQLite storage, one table per record type

    Each table holds (id, data, created_at, updated_at) with the record as a
    JSON document in data. Writes outside an atomic block commit at once.
    """

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        self.db_path = str(db_path)
        # DEFERRED lets the first write of an atomic block open the transaction
        self._connection = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level='DEFERRED')
        self._connection.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._depth = 0
        self._known_tables: Set[str] = set()

        if self.db_path != ":memory:":
            with self._lock:
                self._connection.execute("PRAGMA journal_mode = WAL")
                self._connection.execute("PRAGMA synchronous = NORMAL")
                self._connection.commit()

    def _autocommit(self) -> None:
        if self._depth == 0:
            self._connection.commit()

    def _prepare(self, table: str) -> None:
        """Create the table and its index on first use"""
        if table in self._known_tables:
            return
        self._connection.execute(f"""
            CREATE TABLE IF NOT EXISTS {table} (
                id TEXT PRIMARY KEY,
                data TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        self._connection.execute(
            f"CREATE INDEX IF NOT EXISTS idx_{table}_created_at ON {table}(created_at)"
        )
        self._autocommit()
        self._known_tables.add(table)

    def _documents(self, table: str) -> List[Record]:
        cursor = self._connection.execute(
            f"SELECT data FROM {table} ORDER BY created_at, rowid"
        )
        return [json.loads(row['data']) for row in cursor.fetchall()]

    def save(self, table: str, record_id: str, data: Record) -> None:
        with self._lock:
            self._prepare(table)
            now = datetime.now(timezone.utc).isoformat()
            # created_at survives replacement so insertion order is stable
            self._connection.execute(f"""
                INSERT OR REPLACE INTO {table} (id, data, created_at, updated_at)
                VALUES (?, ?, COALESCE((SELECT created_at FROM {table} WHERE id = ?), ?), ?)
            """, (record_id, json.dumps(data, default=str), record_id, now, now))
            self._autocommit()

    def load(self, table: str, record_id: str) -> Optional[Record]:
        with self._lock:
            self._prepare(table)
            row = self._connection.execute(
                f"SELECT data FROM {table} WHERE id = ?", (record_id,)
            ).fetchone()
            return json.loads(row['data']) if row else None

    def load_all(self, table: str) -> List[Record]:
        with self._lock:
            self._prepare(table)
            return self._documents(table)

    def delete(self, table: str, record_id: str) -> bool:
        with self._lock:
            self._prepare(table)
            cursor = self._connection.execute(f"DELETE FROM {table} WHERE id = ?", (record_id,))
            self._autocommit()
            return cursor.rowcount > 0

    def exists(self, table: str, record_id: str) -> bool:
        with self._lock:
            self._prepare(table)
            row = self._connection.execute(
                f"SELECT 1 FROM {table} WHERE id = ? LIMIT 1", (record_id,)
            ).fetchone()
            return row is not None

    def find(self, table: str, filters: Dict[str, Any]) -> List[Record]:
        """Filters are matched against the decoded JSON documents"""
        with self._lock:
            self._prepare(table)
            return [record for record in self._documents(table) if _matches(record, filters)]

    def count(self, table: str) -> int:
        with self._lock:
            self._prepare(table)
            return self._connection.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]

    def clear_table(self, table: str) -> None:
        with self._lock:
            self._prepare(table)
            self._connection.execute(f"DELETE FROM {table}")
            self._autocommit()

    def begin_transaction(self) -> None:
        self._lock.acquire()
        self._depth += 1

    def commit(self) -> None:
        if self._depth == 0:
            return
        self._depth -= 1
        if self._depth == 0:
            self._connection.commit()
        self._lock.release()

    def rollback(self) -> None:
        if self._depth == 0:
            return
        self._depth -= 1
        if self._depth == 0:
            self._connection.rollback()
            # Tables created inside the transaction are gone again
            self._known_tables.clear()
        self._lock.release()

    def close(self) -> None:
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None


def create_storage(backend: str, database_path: Optional[str] = None) -> StorageInterface:
    """Build the storage backend named in configuration"""
    if backend == "memory":
        return InMemoryStorage()
    if backend == "sqlite":
        return SQLiteStorage(database_path or ":memory:")
    raise ValueError(f"Unknown storage backend: {backend}")
