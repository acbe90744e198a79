"""
Data models for raw GitLab payloads and normalized activities.
Raw records are built with from_dict() at the ingestion boundary; anything malformed raises PayloadError.
"""

import copy
from datetime import datetime
from typing import List, Optional, Dict, Any

from ingest.errors import PayloadError

KIND_COMMIT = 'commit'
KIND_MERGE_REQUEST = 'merge_request'


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp as returned by GitLab ('2025-01-10T08:30:00.000Z')."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        raise PayloadError(f'Expected an ISO-8601 timestamp, got {value!r}')
    ts = value.strip()
    if ts.endswith('Z'):
        ts = ts[:-1] + '+00:00'
    try:
        return datetime.fromisoformat(ts)
    except ValueError as exc:
        raise PayloadError(f'Invalid timestamp {value!r}') from exc


def _require(raw: Dict[str, Any], key: str, kind: str) -> Any:
    value = raw.get(key)
    if value is None or value == '':
        raise PayloadError(f"{kind} payload is missing '{key}'")
    return value


def _safe_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _require_dict(raw: Any, kind: str) -> Dict[str, Any]:
    if not isinstance(raw, dict):
        raise PayloadError(f'{kind} payload must be an object, got {type(raw).__name__}')
    return raw


class ProjectMeta:
    """
    Project metadata from /projects/:id.
    """
    def __init__(self, project_id: int, name: str, web_url: str = '', name_with_namespace: Optional[str] = None, path_with_namespace: Optional[str] = None, description: Optional[str] = None):
        self.id = project_id
        self.name = name
        self.web_url = web_url
        self.name_with_namespace = name_with_namespace
        self.path_with_namespace = path_with_namespace
        self.description = description

    @classmethod
    def from_dict(cls, raw: Any) -> 'ProjectMeta':
        raw = _require_dict(raw, 'Project')
        return cls(
            project_id=_require(raw, 'id', 'Project'),
            name=_require(raw, 'name', 'Project'),
            web_url=raw.get('web_url') or '',
            name_with_namespace=raw.get('name_with_namespace'),
            path_with_namespace=raw.get('path_with_namespace'),
            description=raw.get('description'),
        )


class GitLabUser:
    """
    User record from /user or /users/:id.
    """
    def __init__(self, user_id: int, username: str, name: str = '', web_url: str = '', state: Optional[str] = None):
        self.id = user_id
        self.username = username
        self.name = name or username
        self.web_url = web_url
        self.state = state

    @classmethod
    def from_dict(cls, raw: Any) -> 'GitLabUser':
        raw = _require_dict(raw, 'User')
        return cls(
            user_id=_require(raw, 'id', 'User'),
            username=_require(raw, 'username', 'User'),
            name=raw.get('name') or '',
            web_url=raw.get('web_url') or '',
            state=raw.get('state'),
        )


class EventAuthor:
    def __init__(self, author_id: int, name: str, username: str = ''):
        self.id = author_id
        self.name = name
        self.username = username


class PushData:
    """
    The push_data block of a 'pushed to' / 'pushed new' event.
    """
    def __init__(self, commit_title: Optional[str] = None, ref: Optional[str] = None, ref_type: Optional[str] = None, commit_count: int = 0, commit_from: Optional[str] = None, commit_to: Optional[str] = None):
        self.commit_title = commit_title
        self.ref = ref
        self.ref_type = ref_type
        self.commit_count = commit_count
        self.commit_from = commit_from
        self.commit_to = commit_to

    @classmethod
    def from_dict(cls, raw: Optional[Dict[str, Any]]) -> 'PushData':
        raw = raw or {}
        return cls(
            commit_title=raw.get('commit_title'),
            ref=raw.get('ref'),
            ref_type=raw.get('ref_type'),
            commit_count=_safe_int(raw.get('commit_count')),
            commit_from=raw.get('commit_from'),
            commit_to=raw.get('commit_to'),
        )


class RawEvent:
    """
    A user event from /users/:id/events.
    """
    def __init__(self, event_id: int, project_id: int, action_name: str, created_at: Optional[datetime], author: EventAuthor, push_data: Optional[PushData] = None, target_title: Optional[str] = None):
        self.id = event_id
        self.project_id = project_id
        self.action_name = action_name
        self.created_at = created_at
        self.author = author
        self.push_data = push_data
        self.target_title = target_title

    @classmethod
    def from_dict(cls, raw: Any) -> 'RawEvent':
        raw = _require_dict(raw, 'Event')
        author_raw = raw.get('author') if isinstance(raw.get('author'), dict) else {}
        author = EventAuthor(
            author_id=author_raw.get('id') or raw.get('author_id') or 0,
            name=author_raw.get('name') or raw.get('author_username') or '',
            username=author_raw.get('username') or raw.get('author_username') or '',
        )
        push_raw = raw.get('push_data')
        if push_raw is not None and not isinstance(push_raw, dict):
            raise PayloadError('Event push_data must be an object')
        return cls(
            event_id=_require(raw, 'id', 'Event'),
            project_id=_require(raw, 'project_id', 'Event'),
            action_name=raw.get('action_name') or '',
            created_at=parse_timestamp(raw.get('created_at')),
            author=author,
            push_data=PushData.from_dict(push_raw) if push_raw is not None else None,
            target_title=raw.get('target_title'),
        )


class RawCommit:
    """
    A commit from /projects/:id/repository/commits.
    """
    def __init__(self, sha: str, title: str, message: str = '', author_name: str = '', author_email: str = '', created_at: Optional[datetime] = None, committed_at: Optional[datetime] = None, web_url: str = '', short_id: Optional[str] = None, parent_ids: Optional[List[str]] = None):
        self.id = sha
        self.title = title
        self.message = message
        self.author_name = author_name
        self.author_email = author_email
        self.created_at = created_at
        self.committed_at = committed_at
        self.web_url = web_url
        self.short_id = short_id
        self.parent_ids = parent_ids or []

    @classmethod
    def from_dict(cls, raw: Any) -> 'RawCommit':
        raw = _require_dict(raw, 'Commit')
        message = raw.get('message') or ''
        title = raw.get('title') or message.split('\n', 1)[0]
        return cls(
            sha=_require(raw, 'id', 'Commit'),
            title=title,
            message=message,
            author_name=raw.get('author_name') or '',
            author_email=raw.get('author_email') or '',
            created_at=parse_timestamp(raw.get('authored_date') or raw.get('created_at')),
            committed_at=parse_timestamp(raw.get('committed_date')),
            web_url=raw.get('web_url') or '',
            short_id=raw.get('short_id'),
            parent_ids=list(raw.get('parent_ids') or []),
        )


class Activity:
    """
    Normalized unit of work: one push event or one commit.
    category stays None until the aggregator attaches one to a copy.
    """
    def __init__(self, activity_id: str, kind: str, title: str, project_name: str, project_id: int, author: str, author_id: int, web_url: str, created_at: Optional[datetime] = None, description: Optional[str] = None, updated_at: Optional[datetime] = None, state: Optional[str] = None, labels: Optional[List[str]] = None, action: Optional[str] = None, category: Optional[str] = None):
        self.id = activity_id
        self.kind = kind
        self.title = title
        self.description = description
        self.created_at = created_at
        self.updated_at = updated_at
        self.project_name = project_name
        self.project_id = project_id
        self.author = author
        self.author_id = author_id
        self.web_url = web_url
        self.state = state
        self.labels = labels or []
        self.action = action
        self.category = category

    def with_category(self, category: str) -> 'Activity':
        """Return a copy tagged with category; self is left untouched."""
        tagged = copy.copy(self)
        tagged.labels = list(self.labels)
        tagged.category = category
        return tagged

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'kind': self.kind,
            'title': self.title,
            'description': self.description,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
            'project_name': self.project_name,
            'project_id': self.project_id,
            'author': self.author,
            'author_id': self.author_id,
            'web_url': self.web_url,
            'state': self.state,
            'labels': list(self.labels),
            'action': self.action,
            'category': self.category,
        }

    def __repr__(self):
        return f"Activity(id={self.id!r}, kind={self.kind!r}, title={self.title!r}, project={self.project_name!r}, category={self.category!r})"
