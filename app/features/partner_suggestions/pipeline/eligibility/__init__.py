"""
Eligibility stage: which journal entries a batch date may include.
"""

from .service import EligibilityFilter, EligibilityResult, day_window

__all__ = ["EligibilityFilter", "EligibilityResult", "day_window"]
