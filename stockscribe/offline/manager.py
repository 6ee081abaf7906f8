"""
Offline manager

Keeps the local store in step with the API: snapshots are pulled into the
store while online, writes made offline are queued as pending actions and
pushed to ``sync/push/`` once the connection is back.
"""
import logging
import time
import uuid

import requests

from .performance import PerformanceOptimizer
from .store import OfflineStore, CACHE_TABLES

logger = logging.getLogger(__name__)

ACTION_TYPES = ('create', 'update', 'delete')
DEFAULT_TIMEOUT = 10
DEFAULT_BATCH_SIZE = 200


def new_action_id():
    """``<ms timestamp>-<random>``"""
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:12]}"


class OfflineManager:

    def __init__(self, base_url, store=None, token=None, session=None, timeout=DEFAULT_TIMEOUT,
                 batch_size=DEFAULT_BATCH_SIZE, is_online=True, optimizer=None):
        self.base_url = base_url.rstrip('/')
        self.store = store if store is not None else OfflineStore()
        self.token = token
        self.session = session or requests.Session()
        self.timeout = timeout
        self.batch_size = batch_size
        self._is_online = is_online
        self._optimizer = optimizer or PerformanceOptimizer()
        self.last_sync_errors = {}

    @property
    def is_online(self):
        return self._is_online

    def _url(self, path):
        return f"{self.base_url}/{path.lstrip('/')}"

    def _headers(self):
        headers = {'Accept': 'application/json'}
        if self.token:
            headers['Authorization'] = f'Bearer {self.token}'
        return headers

    def _went_offline(self, error):
        if self._is_online:
            logger.warning(f"Gone offline - using cached data ({error})")
        self._is_online = False

    def set_online(self, online):
        """Record connectivity; coming back online replays the pending actions"""
        was_online = self._is_online
        self._is_online = bool(online)
        if self._is_online and not was_online:
            logger.info('Back online - syncing pending actions')
            return self.sync_pending_actions()
        if not self._is_online and was_online:
            logger.info('Gone offline - using cached data')
        return None

    def refresh_cache(self, tables=None):
        """
        Pull a snapshot into the local store

        Returns ``{table: row_count}``, or None when the server could not be
        reached (the manager is then offline) or answered with an error or a
        body that is not JSON. The cache is left as is in every failure case.
        """
        tables = list(tables or CACHE_TABLES)
        try:
            response = self.session.get(
                self._url('sync/snapshot/'),
                params={'tables': ','.join(tables)},
                headers=self._headers(),
                timeout=self.timeout,
            )
            response.raise_for_status()
            snapshot = response.json()
        except (requests.ConnectionError, requests.Timeout) as e:
            self._went_offline(e)
            return None
        except requests.HTTPError as e:
            logger.error(f"Snapshot request rejected: {e}")
            return None
        except ValueError as e:
            logger.error(f"Snapshot response is not valid JSON: {e}")
            return None

        counts = {}
        for table in tables:
            counts[table] = self.store.cache_data(table, snapshot.get(table, []))
        return counts

    def get_cached_data(self, table):
        return self.store.get_cached_data(table)

    def is_data_available(self, table):
        return self.store.is_data_available(table)

    def add_pending_action(self, action_type, table, data):
        """Queue a write; it is pushed right away when online"""
        if action_type not in ACTION_TYPES:
            raise ValueError(f"Unknown action type: {action_type}")
        if table not in CACHE_TABLES:
            raise ValueError(f"Unknown table: {table}")

        action = {
            'id': new_action_id(),
            'type': action_type,
            'table': table,
            'data': data,
            'timestamp': int(time.time() * 1000),
        }
        self.store.add_pending_action(action)
        logger.info(f"Added pending action: {action_type} {table}")

        if self._is_online:
            self.sync_pending_actions()
        return action

    def sync_pending_actions(self):
        """
        Push queued actions in batches

        Applied actions leave the queue; failed ones stay queued with their
        error in ``last_sync_errors``. Returns ``{synced, failed, remaining}``.
        """
        summary = {'synced': 0, 'failed': 0, 'remaining': self.store.pending_count()}
        if not self._is_online:
            return summary

        pending = self.store.get_pending_actions()
        if not pending:
            return summary

        logger.info(f"Syncing {len(pending)} pending actions")
        self.last_sync_errors = {}
        for start in range(0, len(pending), self.batch_size):
            batch = pending[start:start + self.batch_size]
            try:
                response = self.session.post(
                    self._url('sync/push/'),
                    json={'actions': batch},
                    headers=self._headers(),
                    timeout=self.timeout,
                )
                response.raise_for_status()
                results = response.json().get('results', [])
            except (requests.ConnectionError, requests.Timeout) as e:
                self._went_offline(e)
                break
            except requests.HTTPError as e:
                logger.error(f"Sync push rejected: {e}")
                break
            except ValueError as e:
                logger.error(f"Sync push response is not valid JSON: {e}")
                break

            applied = []
            for outcome in results:
                if outcome.get('status') == 'applied':
                    applied.append(outcome['id'])
                else:
                    self.last_sync_errors[outcome['id']] = outcome.get('error', '')
            self.store.remove_pending_actions(applied)
            summary['synced'] += len(applied)
            summary['failed'] += len(batch) - len(applied)

        summary['remaining'] = self.store.pending_count()
        if summary['failed']:
            logger.warning(f"{summary['failed']} pending actions failed to sync")
        return summary

    def schedule_sync(self, delay=1.0):
        """Sync once after a burst of writes settles"""
        self._optimizer.debounce(delay, key=f'sync:{id(self)}')(self.sync_pending_actions)()

    def get_offline_status(self):
        pending_count = self.store.pending_count()
        return {
            'is_online': self._is_online,
            'has_pending_actions': pending_count > 0,
            'pending_count': pending_count,
        }

    def clear_cache(self):
        self.store.clear()
