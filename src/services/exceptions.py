"""
Service-level exceptions.

This module contains the exceptions raised by the calendar and pregnancy
services. Handlers map each family to a status code.
"""
from typing import Any, Dict, List, Optional

class CycleEngineError(Exception):
    """Base exception for cycle engine errors."""
    status_code = 500

    def __init__(self, message: str, details: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or []

class ValidationError(CycleEngineError):
    """Raised for malformed or out-of-domain input, before any store access."""
    status_code = 400

class TeamAssociationError(ValidationError):
    """Raised when the subject has no team, or not the requested one."""
    pass

class ProfileIncompleteError(ValidationError):
    """Raised when the subject's cycle statistics are missing from the profile."""
    pass

class NotFoundError(CycleEngineError):
    """Raised when a subject or event does not exist."""
    status_code = 404

class ConflictError(CycleEngineError):
    """Raised when a write would break a calendar invariant."""
    status_code = 409

class OpenPeriodError(ConflictError):
    """Raised when a period is started while another one is still open."""

    def __init__(self, message: str, open_period_id: Optional[str] = None):
        super().__init__(message)
        self.open_period_id = open_period_id

class StoreError(CycleEngineError):
    """Raised when the event store fails; the whole operation is rolled back."""
    pass
