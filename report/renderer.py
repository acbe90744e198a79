"""
Report renderer: turn a ClassificationResult into Markdown, JSON, CSV or a short text summary.
Markdown is rendered with the Jinja2 templates in report/templates.
"""

from datetime import date, datetime
from typing import Optional, List, Dict, Any
import csv
import io
import json
import os

from jinja2 import Environment, FileSystemLoader, select_autoescape

from classify.keywords import ALL_CATEGORIES, describe
from classify.models import ClassificationResult
from report.options import FormatOptions

KIND_NAMES = {
    'commit': 'Commit',
    'merge_request': 'Merge request',
    'issue': 'Issue',
    'pipeline': 'Pipeline',
}

STATE_NAMES = {
    'opened': 'Open',
    'closed': 'Closed',
    'merged': 'Merged',
    'success': 'Succeeded',
    'failed': 'Failed',
    'running': 'Running',
    'pending': 'Pending',
    'canceled': 'Canceled',
}

DETAILED_TIME_FORMAT = '%Y-%m-%d %H:%M:%S'
SHORT_TIME_FORMAT = '%m-%d %H:%M'


class DateRange:
    """Inclusive reporting period."""

    def __init__(self, start: date, end: date):
        self.start = start
        self.end = end

    def __repr__(self):
        return f"DateRange({self.start.isoformat()}, {self.end.isoformat()})"


def _as_date(value) -> date:
    return value.date() if isinstance(value, datetime) else value


def format_time_range(date_range: DateRange) -> str:
    start, end = _as_date(date_range.start), _as_date(date_range.end)
    if start == end:
        return f"{start.isoformat()} ({start.strftime('%A')})"
    return f"{start.isoformat()} to {end.isoformat()}"


def format_datetime(value: Optional[datetime], detailed: bool = True) -> str:
    if value is None:
        return 'unknown'
    return value.strftime(DETAILED_TIME_FORMAT if detailed else SHORT_TIME_FORMAT)


def truncate_text(text: Optional[str], limit: int) -> str:
    """Collapse whitespace and cut to limit characters, appending '...' when shortened."""
    if not text:
        return ''
    flat = ' '.join(text.split())
    if limit and len(flat) > limit:
        return flat[:limit] + '...'
    return flat


def kind_display_name(kind: str) -> str:
    return KIND_NAMES.get(kind, kind)


def state_display_name(state: str) -> str:
    return STATE_NAMES.get(state, state)


def _sort_key(activity) -> float:
    created = getattr(activity, 'created_at', None)
    return created.timestamp() if created else float('-inf')


def sort_newest_first(activities: list) -> list:
    return sorted(activities, key=_sort_key, reverse=True)


def group_activities(activities: list, group_by: str) -> List[Dict[str, Any]]:
    """Split activities into headed groups, each sorted newest first.

    Projects keep first-appearance order, categories follow the taxonomy order.
    """
    if not activities:
        return []
    if group_by == 'none':
        return [{'heading': None, 'items': sort_newest_first(activities)}]
    if group_by == 'category':
        groups = []
        for category in ALL_CATEGORIES:
            members = [a for a in activities if a.category == category]
            if members:
                groups.append({'heading': describe(category), 'items': sort_newest_first(members)})
        return groups
    by_project: Dict[str, list] = {}
    for a in activities:
        by_project.setdefault(str(a.project_name), []).append(a)
    return [{'heading': name, 'items': sort_newest_first(members)} for name, members in by_project.items()]


def _activity_view(activity, reasons: List[str], options: FormatOptions) -> Dict[str, Any]:
    info = [
        f"**Project**: {activity.project_name}",
        f"**Type**: {kind_display_name(activity.kind)}",
        f"**Category**: {describe(activity.category) if activity.category else 'Unclassified'}",
        f"**Author**: {activity.author}",
    ]
    if options.show_detailed_time:
        info.append(f"**Created**: {format_datetime(activity.created_at)}")
        if activity.updated_at and activity.updated_at != activity.created_at:
            info.append(f"**Updated**: {format_datetime(activity.updated_at)}")
    else:
        info.append(f"**Time**: {format_datetime(activity.created_at, detailed=False)}")
    if activity.state:
        info.append(f"**State**: {state_display_name(activity.state)}")
    return {
        'title': activity.title,
        'info': ' | '.join(info),
        'description': truncate_text(activity.description, options.max_description_length),
        'web_url': activity.web_url,
        'reasons': reasons if options.show_match_reasons else [],
    }


def _count_rows(counts: Dict[str, int], label=lambda k: k, limit: Optional[int] = None) -> List[Dict[str, Any]]:
    rows = [{'label': label(k), 'count': v} for k, v in sorted(counts.items(), key=lambda kv: kv[1], reverse=True) if v]
    return rows[:limit] if limit else rows


def _statistics_view(result: ClassificationResult, options: FormatOptions) -> Optional[Dict[str, Any]]:
    if not options.show_statistics or not result.activities:
        return None
    return {
        'total': result.total,
        'categories': _count_rows(result.by_category, label=describe),
        'projects': _count_rows(result.by_project, limit=options.max_projects_in_statistics),
    }


def _jinja_env() -> Environment:
    tmpl_dir = os.path.join(os.path.dirname(__file__), 'templates')
    return Environment(
        loader=FileSystemLoader(tmpl_dir),
        autoescape=select_autoescape(['html', 'xml']),
        trim_blocks=True,
        lstrip_blocks=True,
    )


def render_markdown(result: ClassificationResult, date_range: DateRange, options: Optional[FormatOptions] = None, generated_at: Optional[datetime] = None) -> str:
    """Render the full Markdown report."""
    options = options or FormatOptions()
    groups = []
    for group in group_activities(result.activities, options.group_by):
        groups.append({
            'heading': group['heading'],
            'items': [_activity_view(a, result.match_reasons.get(a.id, []), options) for a in group['items']],
        })
    context = {
        'title': options.title,
        'time_range': options.time_range_description or format_time_range(date_range),
        'generated_at': format_datetime(generated_at or datetime.now()),
        'statistics': _statistics_view(result, options),
        'groups': groups,
    }
    return _jinja_env().get_template('report.md.j2').render(**context)


def render_json(result: ClassificationResult, date_range: DateRange) -> str:
    """Export the run (range, statistics, categorized activities with reasons) as JSON."""
    payload = {
        'range': {'start': _as_date(date_range.start).isoformat(), 'end': _as_date(date_range.end).isoformat()},
        'statistics': result.statistics,
        'activities': [dict(a.to_dict(), match_reasons=result.match_reasons.get(a.id, [])) for a in result.activities],
    }
    return json.dumps(payload, indent=2, ensure_ascii=False)


def render_csv(result: ClassificationResult) -> str:
    """One row per activity, newest first."""
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(['id', 'created_at', 'project', 'kind', 'category', 'title', 'author', 'web_url', 'match_reasons'])
    for a in sort_newest_first(result.activities):
        writer.writerow([
            a.id,
            a.created_at.isoformat() if a.created_at else '',
            a.project_name,
            a.kind,
            a.category or '',
            a.title,
            a.author,
            a.web_url,
            '; '.join(result.match_reasons.get(a.id, [])),
        ])
    return output.getvalue()


def generate_summary(result: ClassificationResult, date_range: DateRange) -> str:
    """One-paragraph plain-text summary: totals, top two categories and top two projects."""
    period = format_time_range(date_range)
    if not result.activities:
        return f"No matching activity was found for {period}."
    parts = [f"During {period} there were {result.total} activities"]
    top_categories = _count_rows(result.by_category, limit=2)
    if top_categories:
        parts.append('including ' + ' and '.join(f"{r['count']} {describe(r['label']).lower()}" for r in top_categories))
    top_projects = _count_rows(result.by_project, limit=2)
    if top_projects:
        parts.append('mostly in ' + ', '.join(r['label'] for r in top_projects))
    return ', '.join(parts) + '.'


def render(result: ClassificationResult, date_range: DateRange, options: Optional[FormatOptions] = None, fmt: str = 'md') -> str:
    """Main render function; fmt is one of md, json, csv, text."""
    fmt_l = (fmt or 'md').lower()
    if fmt_l in ('md', 'markdown'):
        return render_markdown(result, date_range, options)
    if fmt_l in ('json', 'js'):
        return render_json(result, date_range)
    if fmt_l == 'csv':
        return render_csv(result)
    if fmt_l in ('text', 'txt'):
        return generate_summary(result, date_range)
    raise ValueError(f"Unsupported report format '{fmt}'")
