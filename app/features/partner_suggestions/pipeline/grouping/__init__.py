"""
Grouping stage: eligible entries to per-relationship work items.
"""

from .service import GroupingFailure, GroupingResult, RelationshipGrouper

__all__ = ["GroupingFailure", "GroupingResult", "RelationshipGrouper"]
