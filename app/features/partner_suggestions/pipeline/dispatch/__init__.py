"""
Dispatch stage: downstream suggestion generation per relationship.
"""

from .client import GenerationRequest, SuggestionGenerationClient
from .rate_limiter import TokenBucketRateLimiter
from .service import SuggestionDispatcher, build_calls

__all__ = [
    "GenerationRequest",
    "SuggestionDispatcher",
    "SuggestionGenerationClient",
    "TokenBucketRateLimiter",
    "build_calls",
]
