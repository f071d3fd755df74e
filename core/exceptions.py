"""
Custom exceptions for the panel analytics engine.
"""

from typing import Optional


class AnalyticsError(Exception):
    """Base exception for the analytics engine."""
    pass


class FetchError(AnalyticsError):
    """Raised when the fetch collaborator cannot deliver data for a query."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class UnknownPanelError(AnalyticsError, KeyError):
    """Raised when a panel id is not part of the loaded profile."""

    def __str__(self):
        return f"Unknown panel: {self.args[0]}" if self.args else "Unknown panel"


class ProfileConfigError(AnalyticsError, ValueError):
    """Raised when a saved profile cannot be parsed."""
    pass
