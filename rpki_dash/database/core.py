"""Record store: dated snapshot collections on SQLite with thread-local connections"""
import json
import logging
import re
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Union

from .exceptions import SchemaError, StoreError
from ..processors.prefix_codec import prefix_upper_bound

logger = logging.getLogger('rpki_dash.database.core')

# Schema version for migrations
SCHEMA_VERSION = 1

COLLECTION_NAME = re.compile(r'^[A-Za-z0-9][A-Za-z0-9_-]{0,99}$')

COLLECTION_SCHEMAS = {
    'routes': {
        'asn': 'TEXT NOT NULL',
        'prefix': 'TEXT NOT NULL',
        'address_family': 'INTEGER NOT NULL CHECK(address_family IN (4, 6))',
        'binary': 'TEXT NOT NULL',
        'prefix_length': 'INTEGER NOT NULL',
        'validity': 'INTEGER NOT NULL DEFAULT -1',
        'matched_vrp_ids': "TEXT NOT NULL DEFAULT '[]'",
        'rir': "TEXT NOT NULL DEFAULT ''",
    },
    'vrp': {
        'asn': 'TEXT NOT NULL',
        'prefix': 'TEXT NOT NULL',
        'max_length': 'INTEGER NOT NULL',
        'binary': 'TEXT NOT NULL',
        'address_family': 'INTEGER NOT NULL CHECK(address_family IN (4, 6))',
    },
}

# Fields stored as JSON text
JSON_FIELDS = {'matched_vrp_ids'}


def _q(identifier: str) -> str:
    """Quote an already-validated identifier"""
    return f'"{identifier}"'


def _encode(field: str, value: Any) -> Any:
    if field in JSON_FIELDS:
        return json.dumps(list(value))
    return int(value) if hasattr(value, '__index__') and not isinstance(value, bool) else value


def decode_row(row: sqlite3.Row) -> Dict[str, Any]:
    """Convert a stored row into a plain document dictionary"""
    document = dict(row)
    for field in JSON_FIELDS & document.keys():
        document[field] = json.loads(document[field])
    return document


class RecordStore:
    """
    Thread-safe document-style store on SQLite.

    Each collection is a table of one kind ('routes' or 'vrp'). Every call is
    individually atomic; nothing spans calls, so read-modify-write sequences
    need their own coordination.
    """

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = Path(db_path)
        self._local = threading.local()
        self._connections: List[sqlite3.Connection] = []
        self._connections_lock = threading.Lock()
        self._kinds: Dict[str, str] = {}

        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_database()

    def _get_connection(self) -> sqlite3.Connection:
        """Get thread-local database connection"""
        conn = getattr(self._local, 'conn', None)
        if conn is None:
            try:
                conn = sqlite3.connect(
                    str(self.db_path),
                    isolation_level='DEFERRED',
                    timeout=30.0,
                    check_same_thread=False
                )
                conn.execute('PRAGMA journal_mode=WAL')
                conn.execute('PRAGMA synchronous=NORMAL')
            except sqlite3.Error as e:
                raise StoreError(f"Cannot open record store {self.db_path}: {e}")
            conn.row_factory = sqlite3.Row
            self._local.conn = conn
            with self._connections_lock:
                self._connections.append(conn)
        return conn

    def _init_database(self):
        """Initialize database with schema and migrations"""
        conn = sqlite3.connect(str(self.db_path))
        try:
            current_version = conn.execute('PRAGMA user_version').fetchone()[0]

            if current_version < SCHEMA_VERSION:
                self._migrate_schema(conn, current_version)

            conn.execute(f'PRAGMA user_version={SCHEMA_VERSION}')
            conn.commit()
            logger.debug(f"Record store {self.db_path} at schema version {SCHEMA_VERSION}")
        except sqlite3.Error as e:
            raise SchemaError(f"Failed to initialize record store: {e}")
        finally:
            conn.close()

    def _migrate_schema(self, conn: sqlite3.Connection, from_version: int):
        """Run schema migrations"""
        if from_version < 1:
            conn.executescript('''
                CREATE TABLE IF NOT EXISTS collections (
                    name TEXT PRIMARY KEY,
                    kind TEXT NOT NULL CHECK(kind IN ('routes', 'vrp')),
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                );
            ''')
            logger.info("Applied migration: collection catalog")

    def close(self):
        """Close every connection opened by any thread"""
        with self._connections_lock:
            for conn in self._connections:
                conn.close()
            self._connections.clear()
        self._local = threading.local()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    @contextmanager
    def transaction(self):
        """Context manager for atomic transactions"""
        conn = self._get_connection()
        savepoint = f"sp_{threading.get_ident()}_{id(conn)}"
        try:
            conn.execute(f"SAVEPOINT {savepoint}")
            yield conn
            conn.execute(f"RELEASE {savepoint}")
            conn.commit()
        except sqlite3.Error as e:
            self._rollback(conn, savepoint)
            raise StoreError(f"Record store operation failed: {e}")
        except Exception:
            self._rollback(conn, savepoint)
            raise

    @staticmethod
    def _rollback(conn: sqlite3.Connection, savepoint: str):
        try:
            conn.execute(f"ROLLBACK TO {savepoint}")
            conn.execute(f"RELEASE {savepoint}")
        except sqlite3.Error as e:
            logger.warning(f"Rollback of {savepoint} failed: {e}")

    def _fetchall(self, query: str, params: tuple = ()) -> List[sqlite3.Row]:
        try:
            return self._get_connection().execute(query, params).fetchall()
        except sqlite3.Error as e:
            raise StoreError(f"Record store query failed: {e}")

    def _fetchone(self, query: str, params: tuple = ()) -> Optional[sqlite3.Row]:
        try:
            return self._get_connection().execute(query, params).fetchone()
        except sqlite3.Error as e:
            raise StoreError(f"Record store query failed: {e}")

    # Collections

    def _check_name(self, name: str) -> str:
        if not COLLECTION_NAME.match(name):
            raise SchemaError(f"Invalid collection name: {name!r}")
        return name

    def _kind(self, name: str) -> str:
        kind = self._kinds.get(name)
        if kind is None:
            row = self._fetchone('SELECT kind FROM collections WHERE name = ?', (self._check_name(name),))
            if row is None:
                raise StoreError(f"Unknown collection: {name}")
            kind = self._kinds[name] = row['kind']
        return kind

    def _check_fields(self, name: str, fields) -> None:
        columns = COLLECTION_SCHEMAS[self._kind(name)]
        unknown = [f for f in fields if f not in columns and f != 'id']
        if unknown:
            raise StoreError(f"Unknown field(s) for collection {name}: {', '.join(unknown)}")

    def create_collection(self, name: str, kind: str) -> None:
        """Create a collection of the given kind if it does not exist"""
        self._check_name(name)
        if kind not in COLLECTION_SCHEMAS:
            raise SchemaError(f"Unknown collection kind: {kind}")
        columns = ",\n".join(
            f"{_q(column)} {definition}" for column, definition in COLLECTION_SCHEMAS[kind].items()
        )
        with self.transaction() as conn:
            existing = conn.execute('SELECT kind FROM collections WHERE name = ?', (name,)).fetchone()
            if existing is not None and existing['kind'] != kind:
                raise SchemaError(f"Collection {name} already exists as {existing['kind']}")
            conn.execute(
                f"CREATE TABLE IF NOT EXISTS {_q(name)} (\n"
                f"id INTEGER PRIMARY KEY AUTOINCREMENT,\n{columns})"
            )
            conn.execute('INSERT OR IGNORE INTO collections (name, kind) VALUES (?, ?)', (name, kind))
        self._kinds[name] = kind

    def drop_collection(self, name: str) -> None:
        """Drop a collection and its records; dropping a missing one is a no-op"""
        self._check_name(name)
        with self.transaction() as conn:
            conn.execute(f"DROP TABLE IF EXISTS {_q(name)}")
            conn.execute('DELETE FROM collections WHERE name = ?', (name,))
        self._kinds.pop(name, None)
        logger.info(f"Dropped collection {name}")

    def collection_exists(self, name: str) -> bool:
        self._check_name(name)
        return self._fetchone('SELECT 1 FROM collections WHERE name = ?', (name,)) is not None

    def list_collections(self, kind: Optional[str] = None) -> List[str]:
        if kind:
            rows = self._fetchall('SELECT name FROM collections WHERE kind = ? ORDER BY name', (kind,))
        else:
            rows = self._fetchall('SELECT name FROM collections ORDER BY name')
        return [row['name'] for row in rows]

    def ensure_index(self, name: str, *fields: str) -> None:
        """Create a compound index over fields, in order"""
        if not fields:
            raise SchemaError("ensure_index needs at least one field")
        self._check_fields(name, fields)
        index_name = f"idx_{name}_{'_'.join(fields)}".replace('-', '_')
        column_list = ", ".join(_q(f) for f in fields)
        with self.transaction() as conn:
            conn.execute(f"CREATE INDEX IF NOT EXISTS {_q(index_name)} ON {_q(name)} ({column_list})")
        logger.debug(f"Ensured index {index_name}")

    # Records

    def insert(self, name: str, record: Dict[str, Any]) -> int:
        """Insert one document, returning its id"""
        fields = [f for f in record if f != 'id']
        self._check_fields(name, fields)
        placeholders = ", ".join("?" for _ in fields)
        column_list = ", ".join(_q(f) for f in fields)
        values = tuple(_encode(f, record[f]) for f in fields)
        with self.transaction() as conn:
            cursor = conn.execute(
                f"INSERT INTO {_q(name)} ({column_list}) VALUES ({placeholders})", values
            )
            return cursor.lastrowid

    def get(self, name: str, record_id: int) -> Optional[Dict[str, Any]]:
        self._kind(name)
        row = self._fetchone(f"SELECT * FROM {_q(name)} WHERE id = ?", (record_id,))
        return decode_row(row) if row is not None else None

    def find_all(self, name: str) -> Iterator[Dict[str, Any]]:
        """All documents of a collection in id order"""
        self._kind(name)
        for row in self._fetchall(f"SELECT * FROM {_q(name)} ORDER BY id"):
            yield decode_row(row)

    def find_by_prefix(self, name: str, binary_prefix: str,
                       address_family: Optional[int] = None) -> List[Dict[str, Any]]:
        """
        Documents whose binary starts with binary_prefix.

        Served as a range scan on the (binary, prefix) index.
        """
        self._kind(name)
        query = f'SELECT * FROM {_q(name)} WHERE "binary" >= ? AND "binary" < ?'
        params = [binary_prefix, prefix_upper_bound(binary_prefix)]
        if address_family is not None:
            query += ' AND address_family = ?'
            params.append(address_family)
        return [decode_row(row) for row in self._fetchall(query, tuple(params))]

    def update_fields(self, name: str, record_id: int, fields: Dict[str, Any]) -> int:
        """Set fields on one document; returns the number of documents changed"""
        self._check_fields(name, fields)
        assignments = ", ".join(f"{_q(f)} = ?" for f in fields)
        values = tuple(_encode(f, v) for f, v in fields.items()) + (record_id,)
        with self.transaction() as conn:
            return conn.execute(
                f"UPDATE {_q(name)} SET {assignments} WHERE id = ?", values
            ).rowcount

    def update_matching(self, name: str, fields: Dict[str, Any],
                        binary_prefix: Optional[str] = None,
                        text_prefix: Optional[str] = None,
                        address_family: Optional[int] = None) -> int:
        """
        Bulk field-set over every document matching all given filters.

        binary_prefix matches the start of 'binary'; text_prefix the start of
        the textual 'prefix'. With no filters every document is updated.
        """
        self._check_fields(name, fields)
        assignments = ", ".join(f"{_q(f)} = ?" for f in fields)
        params = [_encode(f, v) for f, v in fields.items()]
        conditions = []
        if binary_prefix is not None:
            conditions.append('"binary" >= ? AND "binary" < ?')
            params.extend([binary_prefix, prefix_upper_bound(binary_prefix)])
        if text_prefix is not None:
            conditions.append('substr(prefix, 1, ?) = ?')
            params.extend([len(text_prefix), text_prefix])
        if address_family is not None:
            conditions.append('address_family = ?')
            params.append(address_family)
        query = f"UPDATE {_q(name)} SET {assignments}"
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        with self.transaction() as conn:
            return conn.execute(query, tuple(params)).rowcount

    def count(self, name: str) -> int:
        self._kind(name)
        return self._fetchone(f"SELECT COUNT(*) AS n FROM {_q(name)}")['n']

    def count_by(self, name: str, field: str) -> Dict[Any, int]:
        """Document counts grouped by one field"""
        self._check_fields(name, [field])
        rows = self._fetchall(
            f"SELECT {_q(field)} AS value, COUNT(*) AS n FROM {_q(name)} GROUP BY {_q(field)}"
        )
        return {row['value']: row['n'] for row in rows}
