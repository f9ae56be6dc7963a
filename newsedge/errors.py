"""Exception types shared across the pipeline."""

from __future__ import annotations


class NewsEdgeError(Exception):
    """Base class for errors that carry a machine-readable code."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code, "message": self.message}


class ThesisError(NewsEdgeError):
    """Model thesis is missing, unparseable, or fails schema validation.

    Fatal to signal generation: no default thesis is ever substituted.
    """


class ClassifierError(NewsEdgeError):
    """News classification failed for a single item."""


class MarketDataError(NewsEdgeError):
    """Daily bar fetch failed.

    ``code`` is one of ``not_found``, ``rate_limited``, ``http``,
    ``no_data`` or ``not_configured``.
    """
