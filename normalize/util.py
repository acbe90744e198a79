"""
Normalization helpers: turn raw GitLab events/commits into normalize.models.Activity.
Merge-branch noise is dropped on every path, and a failed item is logged and skipped instead of aborting the run.
"""
import logging
from typing import Dict, Any, List, Iterable, Optional, Union

from ingest.errors import GitLabError, SYSTEMIC_ERRORS
from normalize.models import Activity, ProjectMeta, RawCommit, RawEvent, KIND_COMMIT

logger = logging.getLogger(__name__)

MERGE_PREFIX = 'Merge branch'
COMMIT_AUTHOR_ID_UNKNOWN = 0


def is_merge_noise(activity: Activity) -> bool:
    return (activity.title or '').startswith(MERGE_PREFIX)


def activity_from_push_event(event: RawEvent, project: ProjectMeta) -> Activity:
    """Build an Activity from a push event and its resolved project."""
    push = event.push_data
    commit_title = push.commit_title if push else None
    ref = push.ref if push else None
    description = ' '.join(part for part in (event.action_name, project.name, ref) if part)
    return Activity(
        activity_id=str(event.id),
        kind=KIND_COMMIT,
        title=commit_title or f'Push to {project.name}',
        description=description,
        created_at=event.created_at,
        project_name=project.name,
        project_id=project.id,
        author=event.author.name,
        author_id=event.author.id,
        web_url=project.web_url,
        action=event.action_name,
    )


def activity_from_commit(commit: RawCommit, project: ProjectMeta) -> Activity:
    """Build an Activity from a repository commit; the commit API carries no author id."""
    return Activity(
        activity_id=str(commit.id),
        kind=KIND_COMMIT,
        title=commit.title,
        description=commit.message or None,
        created_at=commit.created_at,
        updated_at=commit.committed_at,
        project_name=project.name,
        project_id=project.id,
        author=commit.author_name,
        author_id=COMMIT_AUTHOR_ID_UNKNOWN,
        web_url=commit.web_url or project.web_url,
    )


def _raw_label(raw: Any) -> str:
    if isinstance(raw, dict):
        return str(raw.get('id', '?'))
    return str(getattr(raw, 'id', '?'))


def _raise_if_systemic(total: int, failures: List[GitLabError]):
    """Propagate when every item failed and at least one failure points at the whole run."""
    if not total or len(failures) < total:
        return
    systemic = [f for f in failures if isinstance(f, SYSTEMIC_ERRORS)]
    if systemic:
        logger.error('All %d items failed; last systemic error: %s', total, systemic[-1])
        raise systemic[-1]


def _keep(activity: Activity, activities: List[Activity]):
    if is_merge_noise(activity):
        logger.debug('Dropping merge activity %s: %s', activity.id, activity.title)
        return
    activities.append(activity)


def normalize_push_events(raw_events: Iterable[Union[Dict[str, Any], RawEvent]], resolver) -> List[Activity]:
    """Normalize push events, resolving each event's project through resolver.resolve()."""
    items = list(raw_events or [])
    activities: List[Activity] = []
    failures: List[GitLabError] = []
    for raw in items:
        try:
            event = raw if isinstance(raw, RawEvent) else RawEvent.from_dict(raw)
            project = resolver.resolve(event.project_id)
        except GitLabError as exc:
            logger.warning('Skipping push event %s: %s', _raw_label(raw), exc)
            failures.append(exc)
            continue
        _keep(activity_from_push_event(event, project), activities)
    _raise_if_systemic(len(items), failures)
    logger.info('Normalized %d of %d push events', len(activities), len(items))
    return activities


def normalize_commits(raw_commits: Iterable[Union[Dict[str, Any], RawCommit]], project: ProjectMeta) -> List[Activity]:
    """Normalize commits that all belong to project."""
    items = list(raw_commits or [])
    activities: List[Activity] = []
    failures: List[GitLabError] = []
    for raw in items:
        try:
            commit = raw if isinstance(raw, RawCommit) else RawCommit.from_dict(raw)
        except GitLabError as exc:
            logger.warning('Skipping commit %s in %s: %s', _raw_label(raw), project.name, exc)
            failures.append(exc)
            continue
        _keep(activity_from_commit(commit, project), activities)
    _raise_if_systemic(len(items), failures)
    return activities


def dedupe_activities(activities: Iterable[Activity], seen: Optional[set] = None) -> List[Activity]:
    """Drop activities whose id was already seen (the same commit can reach several projects via forks)."""
    seen = set() if seen is None else seen
    unique: List[Activity] = []
    for a in activities:
        if a.id in seen:
            continue
        seen.add(a.id)
        unique.append(a)
    return unique
