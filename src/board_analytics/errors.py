"""Board analytics exceptions."""

from typing import Optional


class BoardAnalyticsError(Exception):
    """Base class for failures raised by the board analytics backend."""


class SourceError(BoardAnalyticsError):
    """Raised when memberships cannot be loaded from WooCommerce or the database.

    The service layer decides whether to mask this with fallback data or to
    surface it as a 500 response.
    """


class MalformedRecordError(BoardAnalyticsError):
    """Raised when a membership record is missing a required field or has an unparseable date."""

    def __init__(self, index: int, field: str, detail: Optional[str] = None) -> None:
        self.index = index
        self.field = field
        self.detail = detail
        message = f"membership record {index} has an invalid '{field}'"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
