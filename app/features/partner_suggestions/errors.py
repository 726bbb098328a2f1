"""
Exceptions raised inside the partner suggestion batch.

The dispatcher and scheduler catch these at call or relationship level;
none of them escape BatchScheduler.run().
"""


class PartnerSuggestionError(Exception):
    """Base exception for the batch pipeline."""

    def __init__(self, message: str, recoverable: bool = True):
        super().__init__(message)
        self.recoverable = recoverable


class SuggestionGenerationError(PartnerSuggestionError):
    """The downstream generation service rejected or failed a request."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_text: str | None = None,
        recoverable: bool = True,
    ):
        super().__init__(message, recoverable=recoverable)
        self.status_code = status_code
        self.response_text = response_text
