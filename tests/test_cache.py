import unittest
import tempfile
import json
import os
from unittest.mock import patch

from storage.cache import ResponseCache, fingerprint_token, FINGERPRINT_KEY


class _Clock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class TestResponseCache(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.path = os.path.join(self.tmpdir.name, 'cache', 'gitlab-cache.json')
        self.clock = _Clock()

    def tearDown(self):
        self.tmpdir.cleanup()

    def _cache(self, token='token-a', hours=1):
        return ResponseCache(self.path, access_token=token, cache_hours=hours, clock=self.clock)

    def _read_file(self):
        with open(self.path, 'r', encoding='utf-8') as fh:
            return json.load(fh)

    def test_set_get_roundtrip(self):
        cache = self._cache()
        self.assertTrue(cache.set_project(7, {'id': 7, 'name': 'web-app'}))
        self.assertEqual(cache.get_project(7), {'id': 7, 'name': 'web-app'})
        # keys are stored as strings
        self.assertEqual(cache.get_project('7'), {'id': 7, 'name': 'web-app'})
        self.assertIsNone(cache.get_user(7))

    def test_file_layout_and_fingerprint(self):
        cache = self._cache()
        cache.set_user(42, {'id': 42, 'username': 'alice'})
        data = self._read_file()
        self.assertEqual(set(data.keys()), {'users', 'projects', FINGERPRINT_KEY})
        self.assertEqual(data['users']['42'], {'data': {'id': 42, 'username': 'alice'}, 'timestamp': 1000.0})
        self.assertEqual(data[FINGERPRINT_KEY], fingerprint_token('token-a'))
        with open(self.path, 'r', encoding='utf-8') as fh:
            self.assertNotIn('token-a', fh.read())

    def test_entry_expires_after_cache_hours(self):
        cache = self._cache(hours=1)
        cache.set_project(1, {'id': 1})
        self.clock.now += 3599
        self.assertEqual(cache.get_project(1), {'id': 1})
        self.clock.now += 2
        self.assertIsNone(cache.get_project(1))
        # expired entries still count until they are cleared
        self.assertEqual(cache.stats(), {'users': 0, 'projects': 1})
        self.assertEqual(cache.clear_expired(), 1)
        self.assertEqual(cache.stats(), {'users': 0, 'projects': 0})

    def test_clear_expired_keeps_fresh_entries(self):
        cache = self._cache(hours=1)
        cache.set_project(1, {'id': 1})
        self.clock.now += 1800
        cache.set_user(2, {'id': 2})
        self.clock.now += 1801
        self.assertEqual(cache.clear_expired(), 1)
        self.assertEqual(cache.get_user(2), {'id': 2})

    def test_token_change_wipes_store(self):
        first = self._cache(token='token-a')
        first.set_project(1, {'id': 1})
        first.close()
        second = self._cache(token='token-b')
        self.assertIsNone(second.get_project(1))
        self.assertEqual(second.stats(), {'users': 0, 'projects': 0})
        self.assertEqual(self._read_file()[FINGERPRINT_KEY], fingerprint_token('token-b'))

    def test_same_token_keeps_store(self):
        first = self._cache()
        first.set_project(1, {'id': 1})
        first.close()
        second = self._cache()
        self.assertEqual(second.get_project(1), {'id': 1})

    def test_unlabeled_store_is_adopted(self):
        os.makedirs(os.path.dirname(self.path))
        with open(self.path, 'w', encoding='utf-8') as fh:
            json.dump({'users': {}, 'projects': {'5': {'data': {'id': 5}, 'timestamp': 1000.0}}}, fh)
        cache = self._cache()
        self.assertEqual(cache.get_project(5), {'id': 5})
        self.assertEqual(self._read_file()[FINGERPRINT_KEY], fingerprint_token('token-a'))

    def test_corrupt_file_starts_empty(self):
        os.makedirs(os.path.dirname(self.path))
        with open(self.path, 'w', encoding='utf-8') as fh:
            fh.write('{not json')
        cache = self._cache()
        self.assertIsNone(cache.get_project(1))
        self.assertTrue(cache.set_project(1, {'id': 1}))
        self.assertEqual(cache.get_project(1), {'id': 1})

    def test_undecodable_bytes_start_empty(self):
        os.makedirs(os.path.dirname(self.path))
        with open(self.path, 'wb') as fh:
            fh.write(b'\xff\xfe\x00garbage')
        cache = self._cache()
        self.assertIsNone(cache.get('projects', 1))
        self.assertTrue(cache.set_project(1, {'id': 1}))
        self.assertEqual(cache.get_project(1), {'id': 1})
        self.assertEqual(self._read_file()[FINGERPRINT_KEY], fingerprint_token('token-a'))

    def test_unusable_path_degrades_to_miss(self):
        blocker = os.path.join(self.tmpdir.name, 'blocker')
        with open(blocker, 'w', encoding='utf-8') as fh:
            fh.write('x')
        cache = ResponseCache(os.path.join(blocker, 'cache.json'), access_token='t', clock=self.clock)
        self.assertIsNone(cache.get_project(1))
        self.assertFalse(cache.set_project(1, {'id': 1}))
        self.assertEqual(cache.stats(), {'users': 0, 'projects': 0})

    def test_unknown_namespace_raises(self):
        cache = self._cache()
        with self.assertRaises(ValueError):
            cache.get('groups', 1)
        with self.assertRaises(ValueError):
            cache.set('groups', 1, {})

    def test_clear_all(self):
        cache = self._cache()
        cache.set_project(1, {'id': 1})
        cache.set_user(2, {'id': 2})
        cache.clear_all()
        self.assertEqual(cache.stats(), {'users': 0, 'projects': 0})
        self.assertEqual(self._read_file()[FINGERPRINT_KEY], fingerprint_token('token-a'))

    def test_list_keys_flags_expired(self):
        cache = self._cache(hours=1)
        cache.set_project(1, {'id': 1})
        self.clock.now += 7200
        cache.set_user(2, {'id': 2})
        rows = cache.list_keys()
        self.assertEqual([(r['namespace'], r['key'], r['expired']) for r in rows], [('users', '2', False), ('projects', '1', True)])

    def test_closed_cache_drops_operations(self):
        with self._cache() as cache:
            cache.set_project(1, {'id': 1})
        self.assertIsNone(cache.get_project(1))
        self.assertFalse(cache.set_project(2, {'id': 2}))

    def test_invalid_env_hours_falls_back_to_default(self):
        with patch.dict(os.environ, {'GITLAB_CACHE_HOURS': 'soon'}):
            cache = ResponseCache(self.path, access_token='t', clock=self.clock)
        self.assertEqual(cache.cache_duration, 24 * 3600.0)

    def test_fingerprint_token(self):
        self.assertEqual(fingerprint_token(''), '')
        self.assertEqual(fingerprint_token('abc'), fingerprint_token('abc'))
        self.assertNotEqual(fingerprint_token('abc'), fingerprint_token('abd'))


if __name__ == '__main__':
    unittest.main()
