"""
GitLab REST (v4) client used by the activity report.
Project and user lookups go through the injected ResponseCache first; everything else hits the API.
Failures are raised as ingest.errors.GitLabError subclasses.
"""

import logging
import os
from typing import List, Dict, Any, Optional

import requests

from ingest.errors import (
    ConfigurationError,
    GitLabError,
    NetworkError,
    PayloadError,
    RequestTimeoutError,
    error_for_status,
)
from normalize.models import GitLabUser, ProjectMeta
from storage.cache import ResponseCache
from storage.retry import get_with_retries

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0
EVENTS_PER_PAGE = 100
MAX_EVENT_PAGES = 50

CONFIG_HELP = (
    "Set the following environment variables (or the matching CLI flags):\n"
    "  - GITLAB_BASE_URL: API base URL of the GitLab instance (e.g. https://gitlab.com/api/v4)\n"
    "  - GITLAB_ACCESS_TOKEN: personal access token with read_user or api scope\n"
    "  - GITLAB_CACHE_PATH: optional path of the JSON response cache"
)


class GitLabClient:
    """Thin GitLab API client: authenticated GETs, pagination and error translation."""

    def __init__(self, base_url: str, token: str, cache: Optional[ResponseCache] = None, timeout: Optional[float] = None, max_retries: Optional[int] = None):
        self.base_url = (base_url or '').rstrip('/')
        self.token = token
        self.headers = {
            "Authorization": f"Bearer {self.token}" if self.token else "",
            "Accept": "application/json",
        }
        self.cache = cache
        self.timeout = float(timeout) if timeout is not None else DEFAULT_TIMEOUT
        self.max_retries = max_retries
        self._user: Optional[GitLabUser] = None
        logger.info('GitLab client configured for %s', self.base_url or '<unset>')

    @classmethod
    def from_env(cls, cache: Optional[ResponseCache] = None) -> 'GitLabClient':
        """Build a client from GITLAB_BASE_URL, GITLAB_ACCESS_TOKEN and GITLAB_TIMEOUT."""
        timeout_raw = os.getenv('GITLAB_TIMEOUT')
        try:
            timeout = float(timeout_raw) if timeout_raw else None
        except ValueError:
            raise ConfigurationError(f'GITLAB_TIMEOUT must be a number of seconds, got {timeout_raw!r}')
        return cls(os.getenv('GITLAB_BASE_URL', ''), os.getenv('GITLAB_ACCESS_TOKEN', ''), cache=cache, timeout=timeout)

    def validate_config(self):
        """Raise ConfigurationError when the base URL or token is missing."""
        missing = []
        if not self.base_url:
            missing.append('GITLAB_BASE_URL')
        if not self.token:
            missing.append('GITLAB_ACCESS_TOKEN')
        if missing:
            raise ConfigurationError(f"GitLab configuration is incomplete (missing {', '.join(missing)}).\n{CONFIG_HELP}")

    def _get(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> requests.Response:
        url = f"{self.base_url}{endpoint}"
        logger.debug('GET %s params=%s', url, params)
        try:
            resp = get_with_retries(url, headers=self.headers, params=params, timeout=self.timeout, max_retries=self.max_retries)
        except requests.Timeout as exc:
            raise RequestTimeoutError(f'GitLab API request timed out after {self.timeout:g}s: {url}') from exc
        except requests.ConnectionError as exc:
            raise NetworkError(f'Network error: unable to connect to the GitLab instance at {self.base_url}') from exc
        except requests.RequestException as exc:
            raise NetworkError(f'GitLab request failed: {exc}') from exc
        status = getattr(resp, 'status_code', 0)
        if not 200 <= status < 300:
            raise error_for_status(status, getattr(resp, 'reason', '') or '')
        return resp

    @staticmethod
    def _decode(resp: requests.Response, endpoint: str) -> Any:
        try:
            return resp.json()
        except ValueError as exc:
            raise PayloadError(f'GitLab returned a non-JSON body for {endpoint}') from exc

    def _get_json(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return self._decode(self._get(endpoint, params), endpoint)

    def get_current_user(self) -> GitLabUser:
        """Return the token owner; fetched once per client and stored in the users namespace."""
        if self._user is not None:
            return self._user
        raw = self._get_json('/user')
        self._user = GitLabUser.from_dict(raw)
        if self.cache:
            self.cache.set_user(self._user.id, raw)
        return self._user

    def get_user(self, user_id: Any) -> GitLabUser:
        if self.cache:
            cached = self.cache.get_user(user_id)
            if cached is not None:
                try:
                    return GitLabUser.from_dict(cached)
                except PayloadError as exc:
                    logger.warning('Ignoring malformed cached user %s: %s', user_id, exc)
        raw = self._get_json(f'/users/{user_id}')
        user = GitLabUser.from_dict(raw)
        if self.cache:
            self.cache.set_user(user_id, raw)
        return user

    def get_user_events(self, user_id: Any, after: Optional[str] = None, before: Optional[str] = None) -> List[Dict[str, Any]]:
        """Return raw push events for a user; after/before are exclusive YYYY-MM-DD bounds."""
        endpoint = f'/users/{user_id}/events'
        params: Dict[str, Any] = {'action': 'pushed', 'per_page': EVENTS_PER_PAGE}
        if after:
            params['after'] = after
        if before:
            params['before'] = before
        events: List[Dict[str, Any]] = []
        page = 1
        while page and page <= MAX_EVENT_PAGES:
            resp = self._get(endpoint, dict(params, page=page))
            data = self._decode(resp, endpoint)
            if not isinstance(data, list):
                raise PayloadError(f'Expected a list of events from {endpoint}')
            events.extend(data)
            page = self._next_page(resp)
        logger.info('Fetched %d push events for user %s', len(events), user_id)
        return events

    @staticmethod
    def _next_page(resp: requests.Response) -> int:
        headers = getattr(resp, 'headers', None) or {}
        try:
            return int(headers.get('X-Next-Page') or 0)
        except (TypeError, ValueError):
            return 0

    def get_project(self, project_id: Any) -> ProjectMeta:
        """Return project metadata, serving it from the cache while it is fresh."""
        if self.cache:
            cached = self.cache.get_project(project_id)
            if cached is not None:
                try:
                    return ProjectMeta.from_dict(cached)
                except PayloadError as exc:
                    logger.warning('Ignoring malformed cached project %s: %s', project_id, exc)
        raw = self._get_json(f'/projects/{project_id}')
        project = ProjectMeta.from_dict(raw)
        if self.cache:
            self.cache.set_project(project_id, raw)
        return project

    def get_project_commits(
        self,
        project_id: Any,
        author: Optional[str] = None,
        since: Optional[str] = None,
        until: Optional[str] = None,
        ref_name: Optional[str] = None,
        per_page: int = 100,
        all_branches: bool = False,
    ) -> List[Dict[str, Any]]:
        """Return raw commits for a project. A project without a repository yields an empty list."""
        params: Dict[str, Any] = {'per_page': per_page}
        if author:
            params['author'] = author
        if since:
            params['since'] = since
        if until:
            params['until'] = until
        if ref_name:
            params['ref_name'] = ref_name
        if all_branches:
            params['all'] = 'true'
        endpoint = f'/projects/{project_id}/repository/commits'
        try:
            commits = self._get_json(endpoint, params)
        except GitLabError as exc:
            logger.error('Failed to fetch commits for project %s: %s', project_id, exc)
            return []
        if not isinstance(commits, list):
            logger.error('Unexpected commits payload for project %s', project_id)
            return []
        logger.info('Fetched %d commits for project %s', len(commits), project_id)
        return commits
