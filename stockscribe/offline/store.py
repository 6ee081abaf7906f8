import json
import logging
import sqlite3
import threading

logger = logging.getLogger(__name__)

CACHE_TABLES = ('products', 'categories', 'suppliers', 'movements')
PENDING_ACTIONS = 'pending_actions'
STORES = CACHE_TABLES + (PENDING_ACTIONS,)

SCHEMA = """
CREATE TABLE IF NOT EXISTS records (
    store TEXT NOT NULL,
    key TEXT NOT NULL,
    value TEXT NOT NULL,
    PRIMARY KEY (store, key)
)
"""


class OfflineStore:
    """
    Local key-value store for offline use

    Each object store holds JSON rows keyed by their ``id``. Rows come back
    in the order they were written.
    """

    def __init__(self, path=':memory:'):
        self.path = str(path)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(self.path, check_same_thread=False)
        with self._conn:
            self._conn.execute(SCHEMA)
        logger.debug(f"Offline store opened at {self.path}")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def close(self):
        with self._lock:
            self._conn.close()

    @staticmethod
    def _check_store(store):
        if store not in STORES:
            raise ValueError(f"Unknown offline store: {store}")

    @staticmethod
    def _key(row):
        if not isinstance(row, dict) or row.get('id') in (None, ''):
            raise ValueError('Offline rows must be objects with an id')
        return str(row['id'])

    def cache_data(self, table, rows):
        """Replace every row of ``table``; returns the number of rows stored"""
        self._check_store(table)
        records = [(table, self._key(row), json.dumps(row, ensure_ascii=False)) for row in rows]
        with self._lock, self._conn:
            self._conn.execute('DELETE FROM records WHERE store = ?', (table,))
            self._conn.executemany('INSERT OR REPLACE INTO records (store, key, value) VALUES (?, ?, ?)', records)
        logger.info(f"Cached {len(records)} items to {table}")
        return len(records)

    def get_cached_data(self, table):
        self._check_store(table)
        with self._lock:
            cursor = self._conn.execute('SELECT value FROM records WHERE store = ? ORDER BY rowid', (table,))
            return [json.loads(value) for (value,) in cursor.fetchall()]

    def count(self, table):
        self._check_store(table)
        with self._lock:
            (total,) = self._conn.execute('SELECT COUNT(*) FROM records WHERE store = ?', (table,)).fetchone()
        return total

    def is_data_available(self, table):
        return self.count(table) > 0

    def put(self, table, row):
        """Insert or replace a single row"""
        self._check_store(table)
        with self._lock, self._conn:
            self._conn.execute(
                'INSERT OR REPLACE INTO records (store, key, value) VALUES (?, ?, ?)',
                (table, self._key(row), json.dumps(row, ensure_ascii=False)),
            )

    def delete(self, table, keys):
        self._check_store(table)
        keys = [str(key) for key in keys]
        if not keys:
            return 0
        with self._lock, self._conn:
            cursor = self._conn.executemany(
                'DELETE FROM records WHERE store = ? AND key = ?', [(table, key) for key in keys]
            )
        return cursor.rowcount

    # Pending actions
    def add_pending_action(self, action):
        self.put(PENDING_ACTIONS, action)

    def get_pending_actions(self):
        """Queued actions, oldest first"""
        actions = self.get_cached_data(PENDING_ACTIONS)
        return sorted(actions, key=lambda action: action.get('timestamp') or 0)

    def remove_pending_actions(self, action_ids):
        return self.delete(PENDING_ACTIONS, action_ids)

    def pending_count(self):
        return self.count(PENDING_ACTIONS)

    def clear(self):
        """Remove every cached row and every pending action"""
        with self._lock, self._conn:
            self._conn.execute('DELETE FROM records')
        logger.info('Cleared all offline data')
