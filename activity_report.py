"""
Activity report orchestration: fetch -> normalize -> classify/aggregate -> render.
gitlab_activity_report() is the tool entry point and always returns text, never raises.
"""
import logging
import re
from datetime import date, datetime, timedelta
from typing import List, Optional, Tuple

from classify.aggregator import aggregate
from classify.models import ClassificationResult
from ingest.errors import GitLabError
from ingest.gitlab import GitLabClient
from ingest.projects import ProjectResolver
from normalize.models import Activity, GitLabUser
from normalize.util import dedupe_activities, normalize_commits, normalize_push_events
from report.options import FormatOptions
from report.renderer import DateRange, render
from storage.cache import ResponseCache

logger = logging.getLogger(__name__)

DATE_PATTERN = re.compile(r'^\d{4}-\d{2}-\d{2}$')
SOURCES = ('events', 'commits')


def parse_report_date(value: str, field: str = 'date') -> date:
    """Parse a YYYY-MM-DD date, raising ValueError with a usage hint otherwise."""
    if not isinstance(value, str) or not DATE_PATTERN.match(value.strip()):
        raise ValueError(f"{field} must use the YYYY-MM-DD format (e.g. 2025-01-01), got {value!r}")
    try:
        return datetime.strptime(value.strip(), '%Y-%m-%d').date()
    except ValueError as exc:
        raise ValueError(f"{field} is not a valid calendar date: {value!r}") from exc


def resolve_date_range(start_date: str, end_date: Optional[str] = None, today: Optional[date] = None) -> DateRange:
    """Build an inclusive range; a missing end date means 'up to today'."""
    start = parse_report_date(start_date, 'start date')
    end = parse_report_date(end_date, 'end date') if end_date else (today or date.today())
    if end < start:
        raise ValueError(f"end date {end.isoformat()} is before start date {start.isoformat()}")
    return DateRange(start, end)


def _event_bounds(date_range: DateRange) -> Tuple[str, str]:
    # the events API treats after/before as exclusive dates
    after = (date_range.start - timedelta(days=1)).isoformat()
    before = (date_range.end + timedelta(days=1)).isoformat()
    return after, before


def _project_ids(raw_events: list) -> List:
    return [e.get('project_id') for e in raw_events if isinstance(e, dict)]


def collect_commit_activities(client: GitLabClient, resolver: ProjectResolver, user: GitLabUser, raw_events: list, date_range: DateRange) -> List[Activity]:
    """Commit-list path: list the user's commits in every project their push events touched."""
    since = f"{date_range.start.isoformat()}T00:00:00Z"
    until = f"{date_range.end.isoformat()}T23:59:59Z"
    activities: List[Activity] = []
    seen: set = set()
    for project_id in dict.fromkeys(str(pid) for pid in _project_ids(raw_events) if pid is not None):
        try:
            project = resolver.resolve(project_id)
        except GitLabError as exc:
            logger.warning('Skipping commits of project %s: %s', project_id, exc)
            continue
        raw_commits = client.get_project_commits(project_id, author=user.name, since=since, until=until, all_branches=True)
        activities.extend(dedupe_activities(normalize_commits(raw_commits, project), seen))
    return activities


def collect_activities(client: GitLabClient, date_range: DateRange, source: str = 'events', prefetch_workers: int = 4) -> Tuple[GitLabUser, list, List[Activity]]:
    """Fetch the current user's push events and normalize them (or their commits) into activities.

    Returns (user, raw_events, activities).
    """
    if source not in SOURCES:
        raise ValueError(f"source must be one of {', '.join(SOURCES)}, got {source!r}")
    user = client.get_current_user()
    after, before = _event_bounds(date_range)
    raw_events = client.get_user_events(user.id, after=after, before=before)
    if not raw_events:
        return user, raw_events, []
    resolver = ProjectResolver(client)
    resolver.prefetch(_project_ids(raw_events), max_workers=prefetch_workers)
    if source == 'commits':
        return user, raw_events, collect_commit_activities(client, resolver, user, raw_events, date_range)
    return user, raw_events, dedupe_activities(normalize_push_events(raw_events, resolver))


def no_activity_notice(user: GitLabUser, date_range: DateRange) -> str:
    return (
        "No activity was found in the requested time range.\n\n"
        "**Query**\n"
        f"- User: {user.username} ({user.id})\n"
        f"- Start date: {date_range.start.isoformat()}\n"
        f"- End date: {date_range.end.isoformat()}\n\n"
        "Please check:\n"
        "1. whether there was any GitLab activity in this period\n"
        "2. whether the access token has sufficient permissions"
    )


def build_report(client: GitLabClient, date_range: DateRange, options: Optional[FormatOptions] = None, fmt: str = 'md', source: str = 'events') -> Tuple[Optional[ClassificationResult], str]:
    """Run the pipeline and render. Returns (result, text); result is None when nothing was found."""
    user, raw_events, activities = collect_activities(client, date_range, source=source)
    if not raw_events:
        return None, no_activity_notice(user, date_range)
    result = aggregate(activities)
    return result, render(result, date_range, options, fmt=fmt)


def gitlab_activity_report(
    start_date: str,
    end_date: Optional[str] = None,
    client: Optional[GitLabClient] = None,
    cache: Optional[ResponseCache] = None,
    options: Optional[FormatOptions] = None,
    fmt: str = 'md',
    source: str = 'events',
) -> str:
    """
    Tool entry point: report the current user's GitLab activity between start_date and end_date.

    Parameters:
        start_date (str): first day, YYYY-MM-DD.
        end_date (str): last day, YYYY-MM-DD; defaults to today.
        client (GitLabClient): configured client; built from the environment when omitted.
        cache (ResponseCache): cache for a client built from the environment.
        options (FormatOptions): Markdown rendering options.

    Returns:
        str: the rendered report, a "no activity" notice, or an error message.
    """
    logger.info('Building activity report start=%s end=%s source=%s', start_date, end_date, source)
    try:
        date_range = resolve_date_range(start_date, end_date)
        if client is None:
            client = GitLabClient.from_env(cache=cache or ResponseCache())
        client.validate_config()
        _, text = build_report(client, date_range, options, fmt=fmt, source=source)
        return text
    except Exception as exc:
        logger.exception('Activity report failed')
        return f"Failed to build the GitLab activity report: {exc}"
