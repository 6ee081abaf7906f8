"""
Test suite for the offline client
Tests: local store, pending action queue, sync replay, connectivity changes, performance helpers
"""
from unittest.mock import MagicMock

import requests
from django.test import SimpleTestCase

from stockscribe.offline.manager import OfflineManager, new_action_id
from stockscribe.offline.performance import PerformanceOptimizer
from stockscribe.offline.store import OfflineStore, PENDING_ACTIONS


def fake_response(payload, status_code=200):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f'{status_code} error')
    else:
        response.raise_for_status.return_value = None
    return response


def push_results(status='applied'):
    """Side effect answering every pushed action with the given status"""
    def respond(url, json=None, **kwargs):
        results = [{'id': action['id'], 'status': status, 'result': {}} for action in json['actions']]
        if status != 'applied':
            for result in results:
                result['error'] = 'rejected'
        return fake_response({'results': results})
    return respond


class OfflineStoreTests(SimpleTestCase):

    def setUp(self):
        self.store = OfflineStore()

    def tearDown(self):
        self.store.close()

    def test_cache_data_replaces_rows(self):
        self.store.cache_data('products', [{'id': 1, 'name': 'ปากกา'}, {'id': 2, 'name': 'Paper'}])
        self.store.cache_data('products', [{'id': 3, 'name': 'Stapler'}])
        self.assertEqual(self.store.get_cached_data('products'), [{'id': 3, 'name': 'Stapler'}])

    def test_rows_keep_insertion_order(self):
        rows = [{'id': 9, 'name': 'Z'}, {'id': 1, 'name': 'A'}]
        self.store.cache_data('categories', rows)
        self.assertEqual(self.store.get_cached_data('categories'), rows)

    def test_is_data_available(self):
        self.assertFalse(self.store.is_data_available('suppliers'))
        self.store.cache_data('suppliers', [{'id': 1}])
        self.assertTrue(self.store.is_data_available('suppliers'))

    def test_unknown_table(self):
        with self.assertRaises(ValueError):
            self.store.cache_data('invoices', [])
        with self.assertRaises(ValueError):
            self.store.get_cached_data('invoices')

    def test_rows_need_an_id(self):
        with self.assertRaises(ValueError):
            self.store.cache_data('products', [{'name': 'No id'}])

    def test_pending_actions_oldest_first(self):
        self.store.add_pending_action({'id': 'b', 'timestamp': 20})
        self.store.add_pending_action({'id': 'a', 'timestamp': 10})
        self.assertEqual([action['id'] for action in self.store.get_pending_actions()], ['a', 'b'])
        self.assertEqual(self.store.remove_pending_actions(['a']), 1)
        self.assertEqual(self.store.pending_count(), 1)

    def test_clear_removes_everything(self):
        self.store.cache_data('movements', [{'id': 1}])
        self.store.add_pending_action({'id': 'x', 'timestamp': 1})
        self.store.clear()
        self.assertFalse(self.store.is_data_available('movements'))
        self.assertFalse(self.store.is_data_available(PENDING_ACTIONS))


class OfflineManagerTests(SimpleTestCase):

    def setUp(self):
        self.session = MagicMock()
        self.store = OfflineStore()
        self.manager = OfflineManager('http://api.test/api/v1/', store=self.store, token='abc',
                                      session=self.session)

    def tearDown(self):
        self.store.close()

    def test_action_id_format(self):
        timestamp, suffix = new_action_id().split('-', 1)
        self.assertTrue(timestamp.isdigit())
        self.assertTrue(suffix)

    def test_refresh_cache(self):
        self.session.get.return_value = fake_response({
            'products': [{'id': 1, 'name': 'Paper'}],
            'categories': [{'id': 1, 'name': 'Office'}],
            'suppliers': [],
            'movements': [],
            'generated_at': '2024-01-01T00:00:00Z',
        })
        counts = self.manager.refresh_cache()
        self.assertEqual(counts['products'], 1)
        self.assertEqual(self.manager.get_cached_data('categories'), [{'id': 1, 'name': 'Office'}])

        url = self.session.get.call_args[0][0]
        self.assertEqual(url, 'http://api.test/api/v1/sync/snapshot/')
        self.assertEqual(self.session.get.call_args[1]['headers']['Authorization'], 'Bearer abc')

    def test_refresh_cache_network_error_goes_offline(self):
        self.store.cache_data('products', [{'id': 1}])
        self.session.get.side_effect = requests.ConnectionError('down')
        self.assertIsNone(self.manager.refresh_cache())
        self.assertFalse(self.manager.is_online)
        self.assertTrue(self.manager.is_data_available('products'))

    def test_refresh_cache_server_error_keeps_cache(self):
        self.store.cache_data('products', [{'id': 1}])
        self.session.get.return_value = fake_response({'detail': 'boom'}, status_code=500)
        self.assertIsNone(self.manager.refresh_cache())
        self.assertTrue(self.manager.is_online)
        self.assertEqual(self.manager.get_cached_data('products'), [{'id': 1}])

    def test_refresh_cache_non_json_body_keeps_cache(self):
        self.store.cache_data('products', [{'id': 1}])
        response = fake_response(None)
        response.json.side_effect = ValueError('Expecting value')
        self.session.get.return_value = response
        self.assertIsNone(self.manager.refresh_cache())
        self.assertTrue(self.manager.is_online)
        self.assertEqual(self.manager.get_cached_data('products'), [{'id': 1}])

    def test_add_pending_action_syncs_when_online(self):
        self.session.post.side_effect = push_results('applied')
        action = self.manager.add_pending_action('create', 'categories', {'name': 'New'})
        pushed = self.session.post.call_args[1]['json']['actions']
        self.assertEqual(pushed[0]['id'], action['id'])
        self.assertEqual(self.manager.get_offline_status(), {
            'is_online': True, 'has_pending_actions': False, 'pending_count': 0,
        })

    def test_add_pending_action_queues_when_offline(self):
        self.manager.set_online(False)
        self.manager.add_pending_action('update', 'products', {'id': 1, 'location': 'A1'})
        self.session.post.assert_not_called()
        status = self.manager.get_offline_status()
        self.assertFalse(status['is_online'])
        self.assertEqual(status['pending_count'], 1)

    def test_add_pending_action_validates(self):
        with self.assertRaises(ValueError):
            self.manager.add_pending_action('upsert', 'products', {})
        with self.assertRaises(ValueError):
            self.manager.add_pending_action('create', 'budget_requests', {})

    def test_network_error_keeps_actions_queued(self):
        self.session.post.side_effect = requests.ConnectionError('down')
        self.manager.add_pending_action('create', 'suppliers', {'name': 'S'})
        self.assertFalse(self.manager.is_online)
        self.assertEqual(self.store.pending_count(), 1)

    def test_back_online_replays_queue(self):
        self.manager.set_online(False)
        self.manager.add_pending_action('create', 'categories', {'name': 'A'})
        self.manager.add_pending_action('create', 'categories', {'name': 'B'})

        self.session.post.side_effect = push_results('applied')
        summary = self.manager.set_online(True)
        self.assertEqual(summary, {'synced': 2, 'failed': 0, 'remaining': 0})
        self.assertEqual(self.session.post.call_count, 1)

    def test_set_online_without_transition_does_not_sync(self):
        self.assertIsNone(self.manager.set_online(True))
        self.session.post.assert_not_called()

    def test_failed_actions_stay_queued(self):
        self.manager.set_online(False)
        action = self.manager.add_pending_action('delete', 'categories', {'id': 1})
        self.session.post.side_effect = push_results('failed')
        summary = self.manager.set_online(True)
        self.assertEqual(summary['failed'], 1)
        self.assertEqual(summary['remaining'], 1)
        self.assertEqual(self.manager.last_sync_errors[action['id']], 'rejected')

    def test_rejected_push_keeps_queue_online(self):
        self.manager.set_online(False)
        self.manager.add_pending_action('create', 'categories', {'name': 'A'})
        self.session.post.return_value = fake_response({'detail': 'expired'}, status_code=401)
        self.session.post.side_effect = None
        summary = self.manager.set_online(True)
        self.assertTrue(self.manager.is_online)
        self.assertEqual(summary['remaining'], 1)

    def test_non_json_push_response_keeps_queue(self):
        self.manager.set_online(False)
        self.manager.add_pending_action('create', 'categories', {'name': 'A'})
        response = fake_response(None)
        response.json.side_effect = ValueError('Expecting value')
        self.session.post.return_value = response
        summary = self.manager.set_online(True)
        self.assertTrue(self.manager.is_online)
        self.assertEqual(summary['remaining'], 1)

    def test_pushes_in_batches(self):
        self.manager.batch_size = 2
        self.manager.set_online(False)
        for name in ('A', 'B', 'C'):
            self.manager.add_pending_action('create', 'categories', {'name': name})
        self.session.post.side_effect = push_results('applied')
        summary = self.manager.set_online(True)
        self.assertEqual(self.session.post.call_count, 2)
        self.assertEqual(summary['synced'], 3)

    def test_clear_cache(self):
        self.store.cache_data('products', [{'id': 1}])
        self.manager.clear_cache()
        self.assertFalse(self.manager.is_data_available('products'))


class FakeTimer:
    """Timer that only fires when the test says so"""
    created = []

    def __init__(self, delay, function, args=()):
        self.delay = delay
        self.function = function
        self.args = args
        self.cancelled = False
        self.daemon = False
        FakeTimer.created.append(self)

    def start(self):
        pass

    def cancel(self):
        self.cancelled = True

    def fire(self):
        self.function(*self.args)


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class PerformanceOptimizerTests(SimpleTestCase):

    def setUp(self):
        FakeTimer.created = []
        self.clock = FakeClock()
        self.optimizer = PerformanceOptimizer(timer_factory=FakeTimer, clock=self.clock)
        self.calls = []

    def test_debounce_runs_last_call_only(self):
        search = self.optimizer.debounce(0.3, key='search')(self.calls.append)
        search('a')
        search('ab')
        search('abc')
        self.assertTrue(self.optimizer.is_pending('search'))
        self.assertTrue(FakeTimer.created[0].cancelled)

        # A cancelled timer firing late is ignored
        FakeTimer.created[0].fire()
        FakeTimer.created[-1].fire()
        self.assertEqual(self.calls, ['abc'])
        self.assertFalse(self.optimizer.is_pending('search'))

    def test_debounce_keys_are_independent(self):
        first = self.optimizer.debounce(0.3, key='first')(self.calls.append)
        second = self.optimizer.debounce(0.3, key='second')(self.calls.append)
        first(1)
        second(2)
        for timer in FakeTimer.created:
            timer.fire()
        self.assertEqual(self.calls, [1, 2])

    def test_throttle_drops_calls_inside_window(self):
        save = self.optimizer.throttle(1.0, key='save')(self.calls.append)
        save(1)
        self.clock.now = 0.5
        self.assertIsNone(save(2))
        self.clock.now = 1.0
        save(3)
        self.assertEqual(self.calls, [1, 3])

    def test_memoize_default_key(self):
        @self.optimizer.memoize()
        def square(value):
            self.calls.append(value)
            return value * value

        self.assertEqual(square(4), 16)
        self.assertEqual(square(4), 16)
        self.assertEqual(square(5), 25)
        self.assertEqual(self.calls, [4, 5])

    def test_memoize_custom_key(self):
        @self.optimizer.memoize(key_func=lambda product: product['id'])
        def describe(product):
            self.calls.append(product['id'])
            return product['name']

        self.assertEqual(describe({'id': 1, 'name': 'Paper'}), 'Paper')
        self.assertEqual(describe({'id': 1, 'name': 'Changed'}), 'Paper')
        self.assertEqual(self.calls, [1])

    def test_clear_resets_state(self):
        pending = self.optimizer.debounce(0.3, key='k')(self.calls.append)
        pending('x')
        throttled = self.optimizer.throttle(10, key='t')(self.calls.append)
        throttled('first')
        memoized = self.optimizer.memoize()(lambda value: value)
        memoized(1)

        self.optimizer.clear()
        self.assertFalse(self.optimizer.is_pending('k'))
        self.assertEqual(self.optimizer.cache_size(), 0)
        throttled('second')
        self.assertEqual(self.calls, ['first', 'second'])

    def test_manager_schedule_sync_is_debounced(self):
        session = MagicMock()
        session.post.side_effect = push_results('applied')
        store = OfflineStore()
        manager = OfflineManager('http://api.test', store=store, session=session, optimizer=self.optimizer)
        store.add_pending_action({'id': '1-a', 'type': 'create', 'table': 'categories',
                                  'data': {'name': 'A'}, 'timestamp': 1})

        manager.schedule_sync()
        manager.schedule_sync()
        session.post.assert_not_called()
        for timer in FakeTimer.created:
            timer.fire()
        self.assertEqual(session.post.call_count, 1)
        self.assertEqual(store.pending_count(), 0)
        store.close()
