"""
Classify package: keyword-based activity categorization and aggregation.
"""

from .aggregator import aggregate
from .classifier import classify

__all__ = ["aggregate", "classify"]
