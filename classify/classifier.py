"""
First-match keyword classifier.
Categories are tried in CATEGORY_RULES order; a keyword matches when it occurs anywhere in the
lower-cased title + description (plain substring, so 'test' also matches 'latest').
"""
from typing import List, Sequence, Tuple

from classify.keywords import CATEGORY_RULES, CategoryRule, OTHER


def build_search_text(activity) -> str:
    title = getattr(activity, 'title', None) or ''
    description = getattr(activity, 'description', None) or ''
    return f"{title} {description}".lower()


def match_keywords(text: str, keywords: Sequence[str]) -> List[str]:
    """Return the keywords found in text, in declared order. text must already be lower-cased."""
    return [k for k in keywords if k in text]


def classify(activity, rules: Sequence[CategoryRule] = CATEGORY_RULES) -> Tuple[str, List[str]]:
    """
    Return (category, matched_keywords) for an activity.
    The first category in priority order with at least one hit wins, and all of its hits are returned;
    keyword counts across categories are never compared. No hit at all yields (OTHER, []).
    """
    text = build_search_text(activity)
    for rule in rules:
        if rule.category == OTHER:
            continue
        matched = match_keywords(text, rule.keywords)
        if matched:
            return rule.category, matched
    return OTHER, []
