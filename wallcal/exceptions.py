"""Exception hierarchy for wallcal.

Fetch, parse and expansion failures are absorbed inside the pipeline and never
surface as exceptions; the types here cover the collaborator seams where a
caller has to react (store lookups and authenticated provider calls).
"""

from typing import Optional


class WallcalError(Exception):
    """Base exception for all wallcal errors."""


class EventNotFoundError(WallcalError):
    """A custom event id does not exist in the event store.

    Should result in HTTP 404 Not Found response.
    """

    def __init__(self, event_id: str):
        super().__init__(f"Event not found: {event_id}")
        self.event_id = event_id


class RemoteSourceError(WallcalError):
    """A calendar provider (Google, Outlook) returned an unusable response."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RemoteSourceAuthError(RemoteSourceError):
    """Provider rejected the access token (HTTP 401)."""
