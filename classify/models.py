"""
Result model for a classification run.
"""
from typing import Dict, List


class AggregationError(Exception):
    """Statistics of a run are inconsistent; the run is failed instead of returning them."""


class ClassificationResult:
    """
    Categorized activities (input order), match reasons keyed by activity id, and statistics:
    {'total': int, 'by_category': {category: count}, 'by_project': {project_name: count}}.
    """

    def __init__(self, activities: list, match_reasons: Dict[str, List[str]], statistics: dict):
        self.activities = activities
        self.match_reasons = match_reasons
        self.statistics = statistics

    @property
    def total(self) -> int:
        return self.statistics.get('total', 0)

    @property
    def by_category(self) -> Dict[str, int]:
        return self.statistics.get('by_category', {})

    @property
    def by_project(self) -> Dict[str, int]:
        return self.statistics.get('by_project', {})

    def reasons_for(self, activity_id: str) -> List[str]:
        return self.match_reasons[activity_id]

    def __str__(self):
        return f"Total: {self.total}\nBy category: {self.by_category}\nBy project: {self.by_project}"
