"""Google integration services for OAuth and the Calendar API.

Both are per-user: every call takes the user's own access token from the
credential store rather than a service account.
"""

from src.aftermeet.services.google.calendar import GoogleCalendarClient
from src.aftermeet.services.google.oauth import GoogleOAuthClient

__all__ = ["GoogleCalendarClient", "GoogleOAuthClient"]
