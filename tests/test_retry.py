import unittest
from unittest.mock import patch, Mock

from storage.retry import get_with_retries, _parse_retry_after


def _resp(status, headers=None):
    m = Mock()
    m.status_code = status
    m.headers = headers or {}
    return m


class TestGetWithRetries(unittest.TestCase):
    def test_retries_rate_limited_then_succeeds(self):
        responses = [_resp(429, {'Retry-After': '0'}), _resp(200)]
        with patch('storage.retry.requests.get', side_effect=responses) as mocked_get, \
                patch('storage.retry.time.sleep') as mocked_sleep:
            resp = get_with_retries('http://gitlab.test/api/v4/user', max_retries=3, backoff_base=0.01)
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(mocked_get.call_count, 2)
        self.assertEqual(mocked_sleep.call_count, 1)

    def test_returns_last_response_when_retries_exhausted(self):
        with patch('storage.retry.requests.get', side_effect=[_resp(503), _resp(503), _resp(503)]) as mocked_get, \
                patch('storage.retry.time.sleep'):
            resp = get_with_retries('http://gitlab.test/x', max_retries=2, backoff_base=0.01)
        self.assertEqual(resp.status_code, 503)
        self.assertEqual(mocked_get.call_count, 3)

    def test_other_errors_are_not_retried(self):
        with patch('storage.retry.requests.get', return_value=_resp(500)) as mocked_get, \
                patch('storage.retry.time.sleep') as mocked_sleep:
            resp = get_with_retries('http://gitlab.test/x', max_retries=3)
        self.assertEqual(resp.status_code, 500)
        self.assertEqual(mocked_get.call_count, 1)
        self.assertFalse(mocked_sleep.called)

    def test_timeout_is_passed_through(self):
        with patch('storage.retry.requests.get', return_value=_resp(200)) as mocked_get:
            get_with_retries('http://gitlab.test/x', timeout=5.0)
        self.assertEqual(mocked_get.call_args[1]['timeout'], 5.0)

    def test_wait_is_capped_by_max_backoff(self):
        with patch('storage.retry.requests.get', side_effect=[_resp(429, {'Retry-After': '120'}), _resp(200)]), \
                patch('storage.retry.time.sleep') as mocked_sleep:
            get_with_retries('http://gitlab.test/x', max_retries=1, backoff_base=0.5, max_backoff=2.0)
        self.assertLessEqual(mocked_sleep.call_args[0][0], 2.0)


def test_parse_retry_after():
    assert _parse_retry_after('5') == 5.0
    assert _parse_retry_after(None) is None
    assert _parse_retry_after('soon') is None
    assert _parse_retry_after('Wed, 21 Oct 2015 07:28:00 GMT') == 0.0


if __name__ == '__main__':
    unittest.main()
