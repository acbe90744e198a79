"""
Aggregation of classified activities into a ClassificationResult.
Counters are built in locals and only published after every activity is processed and the totals check out,
so a failure never leaves half-counted statistics behind.
"""
import logging
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Iterable, List, Optional, Tuple

from classify.classifier import classify
from classify.keywords import ALL_CATEGORIES, OTHER, describe
from classify.models import AggregationError, ClassificationResult

logger = logging.getLogger(__name__)


def build_match_reasons(category: str, matched_keywords: List[str]) -> List[str]:
    """Human-readable reasons: one per matched keyword, or a single fallback line for OTHER."""
    if not matched_keywords:
        return [f'No category keyword matched; defaulted to "{OTHER}" ({describe(OTHER)})']
    description = describe(category)
    return [f'Matched keyword: "{k}" ({description})' for k in matched_keywords]


def _classify_all(activities: list, workers: Optional[int]) -> List[Tuple[str, List[str]]]:
    if workers and workers > 1 and len(activities) > 1:
        with ThreadPoolExecutor(max_workers=workers) as pool:
            # map() yields in submission order regardless of completion order
            return list(pool.map(classify, activities))
    return [classify(a) for a in activities]


def verify_statistics(result: ClassificationResult):
    """Raise AggregationError unless ids are unique and total, per-category counts and reasons agree with the activities."""
    stats = result.statistics
    total = stats['total']
    if total != len(result.activities):
        raise AggregationError(f"total {total} does not match {len(result.activities)} activities")
    category_sum = sum(stats['by_category'].values())
    if category_sum != total:
        raise AggregationError(f"category counts sum to {category_sum}, expected {total}")
    project_sum = sum(stats['by_project'].values())
    if project_sum != total:
        raise AggregationError(f"project counts sum to {project_sum}, expected {total}")
    duplicates = sorted((i for i, n in Counter(a.id for a in result.activities).items() if n > 1), key=str)
    if duplicates:
        raise AggregationError(f"activity ids must be unique within a run, duplicated: {duplicates}")
    if len(result.match_reasons) != total:
        raise AggregationError(f"{len(result.match_reasons)} match reason entries for {total} activities")
    missing = [a.id for a in result.activities if a.id not in result.match_reasons]
    if missing:
        raise AggregationError(f"no match reasons recorded for activities {missing}")


def aggregate(activities: Iterable, workers: Optional[int] = None) -> ClassificationResult:
    """
    Classify every activity and compute statistics.

    Returned activities are categorized copies in input order; the inputs are not modified.
    by_category always carries every category (zero counts included); by_project is keyed by
    project display name, so two projects sharing a name are counted together.
    Any failure is logged and re-raised.
    """
    items = list(activities or [])
    try:
        outcomes = _classify_all(items, workers)
        categorized = []
        match_reasons: Dict[str, List[str]] = {}
        by_category: Dict[str, int] = {c: 0 for c in ALL_CATEGORIES}
        by_project: Dict[str, int] = {}
        for activity, (category, matched) in zip(items, outcomes):
            categorized.append(activity.with_category(category))
            match_reasons[activity.id] = build_match_reasons(category, matched)
            by_category[category] += 1
            project_key = str(activity.project_name)
            by_project[project_key] = by_project.get(project_key, 0) + 1
        result = ClassificationResult(
            activities=categorized,
            match_reasons=match_reasons,
            statistics={'total': len(items), 'by_category': by_category, 'by_project': by_project},
        )
        verify_statistics(result)
    except Exception:
        logger.exception('Classification of %d activities failed', len(items))
        raise
    logger.info('Classified %d activities: %s', len(items), {k: v for k, v in by_category.items() if v})
    return result
