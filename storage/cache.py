"""
JSON-file response cache for GitLab entity lookups.
Entries live in namespaces (users, projects) keyed by entity id and expire after a configurable duration.
The whole store belongs to one access token: when a different token is active the store is wiped on read.
"""

import hashlib
import json
import logging
import os
import tempfile
import threading
import time
from typing import Optional, Any, Dict, List, Callable

logger = logging.getLogger(__name__)

NAMESPACES = ('users', 'projects')
FINGERPRINT_KEY = 'credentialFingerprint'
DEFAULT_CACHE_HOURS = 24.0
DEFAULT_CACHE_PATH = os.path.join('cache', 'gitlab-cache.json')


def fingerprint_token(token: Optional[str]) -> str:
    """Return a stable, non-reversible identifier for an access token ('' when no token)."""
    if not token:
        return ''
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def _empty_store(fingerprint: str) -> Dict[str, Any]:
    return {'users': {}, 'projects': {}, FINGERPRINT_KEY: fingerprint}


def _resolve_hours(cache_hours: Optional[float]) -> float:
    if cache_hours is not None:
        return float(cache_hours)
    raw = os.getenv('GITLAB_CACHE_HOURS')
    try:
        return float(raw) if raw else DEFAULT_CACHE_HOURS
    except ValueError:
        logger.warning('Ignoring invalid GITLAB_CACHE_HOURS=%r; using %s hours', raw, DEFAULT_CACHE_HOURS)
        return DEFAULT_CACHE_HOURS


class ResponseCache:
    def __init__(
        self,
        path: Optional[str] = None,
        access_token: Optional[str] = None,
        cache_hours: Optional[float] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        """Open (or create) the cache file and apply the credential check.

        :param path: JSON file path; defaults to GITLAB_CACHE_PATH or ./cache/gitlab-cache.json.
        :param access_token: token whose fingerprint scopes the store; defaults to GITLAB_ACCESS_TOKEN.
        :param cache_hours: entry lifetime in hours; defaults to GITLAB_CACHE_HOURS or 24.
        :param clock: callable returning epoch seconds, used for timestamps and expiry.
        """
        self.path = path or os.getenv('GITLAB_CACHE_PATH') or DEFAULT_CACHE_PATH
        self.cache_duration = _resolve_hours(cache_hours) * 3600.0
        token = access_token if access_token is not None else os.getenv('GITLAB_ACCESS_TOKEN', '')
        self.fingerprint = fingerprint_token(token)
        self._clock = clock or time.time
        self._lock = threading.RLock()
        self._closed = False
        self._init_file()

    def _init_file(self):
        with self._lock:
            try:
                directory = os.path.dirname(os.path.abspath(self.path))
                os.makedirs(directory, exist_ok=True)
                if not os.path.exists(self.path):
                    with open(self.path, 'w', encoding='utf-8') as fh:
                        fh.write('{}')
            except OSError as exc:
                logger.warning('Cache file %s could not be created: %s', self.path, exc)
                return
            logger.info('Using response cache at %s', self.path)
            # runs the credential check once up front
            self._read_store()

    def close(self):
        with self._lock:
            self._closed = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    @staticmethod
    def _check_namespace(namespace: str):
        if namespace not in NAMESPACES:
            raise ValueError(f"Unknown cache namespace '{namespace}'; expected one of {', '.join(NAMESPACES)}")

    def _is_valid(self, timestamp: Any) -> bool:
        try:
            return self._clock() - float(timestamp) < self.cache_duration
        except (TypeError, ValueError):
            return False

    def _load_file(self) -> Optional[Dict[str, Any]]:
        """Read the raw document. Returns None when the file cannot be read at all."""
        try:
            with open(self.path, 'rb') as fh:
                raw = fh.read()
        except FileNotFoundError:
            return {}
        except OSError as exc:
            logger.warning('Failed to read cache file %s: %s', self.path, exc)
            return None
        if not raw.strip():
            return {}
        try:
            # UnicodeDecodeError is a ValueError, so undecodable bytes count as corruption too
            data = json.loads(raw.decode('utf-8'))
        except ValueError as exc:
            logger.warning('Cache file %s is corrupt, starting from an empty store: %s', self.path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def _read_store(self) -> Optional[Dict[str, Any]]:
        """Load the store and enforce the credential policy. Caller must hold the lock."""
        if self._closed:
            return None
        data = self._load_file()
        if data is None:
            return None
        for ns in NAMESPACES:
            if not isinstance(data.get(ns), dict):
                data[ns] = {}
        stored = data.get(FINGERPRINT_KEY)
        if stored and stored != self.fingerprint:
            logger.info('Access token changed; clearing all cached entries in %s', self.path)
            data = _empty_store(self.fingerprint)
            self._write_store(data)
        elif stored != self.fingerprint:
            # unlabeled data is adopted by the current credential
            data[FINGERPRINT_KEY] = self.fingerprint
            self._write_store(data)
        return data

    def _write_store(self, data: Dict[str, Any]) -> bool:
        """Atomically replace the cache file. Caller must hold the lock."""
        if self._closed:
            return False
        directory = os.path.dirname(os.path.abspath(self.path))
        tmp_path = None
        try:
            payload = json.dumps(data, ensure_ascii=False)
            with tempfile.NamedTemporaryFile('w', encoding='utf-8', dir=directory, suffix='.tmp', delete=False) as fh:
                tmp_path = fh.name
                fh.write(payload)
            os.replace(tmp_path, self.path)
            return True
        except (OSError, TypeError, ValueError) as exc:
            logger.warning('Failed to write cache file %s: %s', self.path, exc)
            if tmp_path and os.path.exists(tmp_path):
                try:
                    os.remove(tmp_path)
                except OSError:
                    logger.debug('Could not remove temporary cache file %s', tmp_path)
            return False

    def get(self, namespace: str, key: Any) -> Optional[Any]:
        """Return the cached payload, or None when absent or expired."""
        self._check_namespace(namespace)
        with self._lock:
            store = self._read_store()
        if store is None:
            return None
        entry = store[namespace].get(str(key))
        if not isinstance(entry, dict) or not self._is_valid(entry.get('timestamp')):
            return None
        logger.debug('Cache hit for %s %s', namespace, key)
        return entry.get('data')

    def set(self, namespace: str, key: Any, data: Any) -> bool:
        """Upsert an entry stamped with the current time. Returns False when the write was dropped."""
        self._check_namespace(namespace)
        with self._lock:
            store = self._read_store()
            if store is None:
                return False
            store[namespace][str(key)] = {'data': data, 'timestamp': self._clock()}
            written = self._write_store(store)
        if written:
            logger.debug('Cache set for %s %s', namespace, key)
        return written

    def clear_expired(self) -> int:
        """Remove expired entries from every namespace and return how many were removed."""
        with self._lock:
            store = self._read_store()
            if store is None:
                return 0
            removed = 0
            for ns in NAMESPACES:
                stale = [k for k, entry in store[ns].items() if not isinstance(entry, dict) or not self._is_valid(entry.get('timestamp'))]
                for k in stale:
                    del store[ns][k]
                removed += len(stale)
            if removed:
                self._write_store(store)
                logger.info('Removed %d expired cache entries', removed)
        return removed

    def clear_all(self):
        """Reset to an empty store stamped with the current credential fingerprint."""
        with self._lock:
            if self._write_store(_empty_store(self.fingerprint)):
                logger.info('All cache entries cleared')

    def stats(self) -> Dict[str, int]:
        """Return the number of stored entries (valid or not) per namespace."""
        with self._lock:
            store = self._read_store()
        if store is None:
            return {ns: 0 for ns in NAMESPACES}
        return {ns: len(store[ns]) for ns in NAMESPACES}

    def list_keys(self) -> List[Dict[str, Any]]:
        """Return (namespace, key, timestamp, expired) rows for every stored entry, newest first."""
        with self._lock:
            store = self._read_store()
        if store is None:
            return []
        rows = []
        for ns in NAMESPACES:
            for k, entry in store[ns].items():
                ts = entry.get('timestamp') if isinstance(entry, dict) else None
                rows.append({'namespace': ns, 'key': k, 'timestamp': ts, 'expired': not self._is_valid(ts)})
        rows.sort(key=lambda r: r['timestamp'] if isinstance(r['timestamp'], (int, float)) else 0, reverse=True)
        return rows

    def get_project(self, project_id: Any) -> Optional[Any]:
        return self.get('projects', project_id)

    def set_project(self, project_id: Any, data: Any) -> bool:
        return self.set('projects', project_id, data)

    def get_user(self, user_id: Any) -> Optional[Any]:
        return self.get('users', user_id)

    def set_user(self, user_id: Any, data: Any) -> bool:
        return self.set('users', user_id, data)


__all__ = ["ResponseCache", "fingerprint_token", "NAMESPACES", "FINGERPRINT_KEY"]
