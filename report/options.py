"""
Report formatting options.
Defaults can be overridden from a YAML file (report/config/report.yaml by default) and then from CLI flags.
"""
from typing import Dict, Any, Optional
import logging
import os

import yaml

logger = logging.getLogger(__name__)

OPTIONS_FILENAME = 'report.yaml'
GROUP_BY_CHOICES = ('project', 'category', 'none')


class FormatOptions:
    """
    Rendering switches for the Markdown report.
    """
    def __init__(self, title: str = 'GitLab Activity Report', group_by: str = 'project', show_statistics: bool = True, show_match_reasons: bool = False, show_detailed_time: bool = True, max_description_length: int = 200, max_projects_in_statistics: int = 10, time_range_description: Optional[str] = None):
        if group_by not in GROUP_BY_CHOICES:
            raise ValueError(f"group_by must be one of {', '.join(GROUP_BY_CHOICES)}, got {group_by!r}")
        self.title = title
        self.group_by = group_by
        self.show_statistics = show_statistics
        self.show_match_reasons = show_match_reasons
        self.show_detailed_time = show_detailed_time
        self.max_description_length = int(max_description_length)
        self.max_projects_in_statistics = int(max_projects_in_statistics)
        self.time_range_description = time_range_description

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> 'FormatOptions':
        """Build options from a mapping, ignoring unknown keys."""
        known = cls().to_dict().keys()
        return cls(**{k: v for k, v in (data or {}).items() if k in known})

    def to_dict(self) -> Dict[str, Any]:
        return dict(vars(self))

    def merged(self, **overrides) -> 'FormatOptions':
        """Return a copy with the non-None overrides applied."""
        data = self.to_dict()
        data.update({k: v for k, v in overrides.items() if v is not None})
        return FormatOptions(**data)


def default_options_path() -> str:
    return os.path.join(os.path.dirname(__file__), 'config', OPTIONS_FILENAME)


def load_format_options(path: Optional[str] = None) -> FormatOptions:
    """
    Load FormatOptions from a YAML file. A missing or unreadable file yields the defaults.
    """
    path = path or default_options_path()
    if not os.path.exists(path):
        return FormatOptions()
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError('top-level YAML value must be a mapping')
        return FormatOptions.from_mapping(data.get('report', data))
    except (OSError, ValueError, TypeError, AttributeError, yaml.YAMLError) as exc:
        logger.warning('Ignoring report options file %s: %s', path, exc)
        return FormatOptions()
