"""
Per-run project lookup for the normalizer.
Each distinct project id is fetched at most once per run (successes and failures are both remembered),
and ids can be prefetched concurrently before normalization starts.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Any, Iterable

from ingest.errors import GitLabError
from normalize.models import ProjectMeta

logger = logging.getLogger(__name__)


class ProjectResolver:
    """Memoizing wrapper around client.get_project()."""

    def __init__(self, client):
        self.client = client
        self._resolved: Dict[str, ProjectMeta] = {}
        self._failed: Dict[str, GitLabError] = {}
        self._guard = threading.Lock()
        self._key_locks: Dict[str, threading.Lock] = {}

    def _lock_for(self, key: str) -> threading.Lock:
        with self._guard:
            return self._key_locks.setdefault(key, threading.Lock())

    def resolve(self, project_id: Any) -> ProjectMeta:
        """Return project metadata or raise the GitLabError the lookup produced."""
        key = str(project_id)
        with self._lock_for(key):
            if key in self._resolved:
                return self._resolved[key]
            if key in self._failed:
                raise self._failed[key]
            try:
                project = self.client.get_project(project_id)
            except GitLabError as exc:
                self._failed[key] = exc
                raise
            self._resolved[key] = project
            return project

    def _resolve_quietly(self, project_id: Any):
        try:
            self.resolve(project_id)
        except GitLabError as exc:
            logger.warning('Project %s lookup failed: %s', project_id, exc)

    def prefetch(self, project_ids: Iterable[Any], max_workers: int = 4) -> Dict[str, ProjectMeta]:
        """Resolve the distinct ids concurrently. Failures are recorded for resolve(), not raised."""
        distinct = list(dict.fromkeys(str(pid) for pid in project_ids if pid is not None))
        if not distinct:
            return {}
        workers = max(1, min(int(max_workers or 1), len(distinct)))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            list(pool.map(self._resolve_quietly, distinct))
        logger.info('Prefetched %d projects (%d failed)', len(distinct) - len(self._failed), len(self._failed))
        return dict(self._resolved)

    @property
    def failures(self) -> Dict[str, GitLabError]:
        return dict(self._failed)
