"""Meeting link detection for calendar events.

Scans an event's location and description for a Zoom, Google Meet, or
Microsoft Teams URL. Only the first URL in scan order (location, then
description) is used; events that mention several conferencing links are
not disambiguated.
"""

from __future__ import annotations

import re
from urllib.parse import urlsplit

from src.aftermeet.meetings.schemas import MeetingPlatform

MEETING_URL_PATTERN = re.compile(
    r"https?://(?:www\.|[\w-]+\.)?"
    r"(?:zoom\.us|meet\.google\.com|teams\.microsoft\.com)"
    r"\S+",
    re.IGNORECASE,
)

# Conferencing host suffixes and the platform they identify
_PLATFORM_HOSTS = (
    ("zoom.us", MeetingPlatform.ZOOM),
    ("meet.google.com", MeetingPlatform.GOOGLE_MEET),
    ("teams.microsoft.com", MeetingPlatform.TEAMS),
)

# Sentence punctuation that commonly trails a pasted link.
_TRAILING_PUNCTUATION = ".,;:!?)]}>\"'"


def extract_meeting_url(location: str | None, description: str | None) -> str | None:
    """Return the first conferencing URL in ``location`` + ``description``, if any."""
    haystack = f"{location or ''} {description or ''}"
    match = MEETING_URL_PATTERN.search(haystack)
    if match is None:
        return None
    return match.group(0).rstrip(_TRAILING_PUNCTUATION)


def detect_platform(meeting_url: str | None) -> MeetingPlatform:
    """Classify a meeting URL by its host."""
    if not meeting_url:
        return MeetingPlatform.NONE
    host = (urlsplit(meeting_url).hostname or "").lower()
    for suffix, platform in _PLATFORM_HOSTS:
        if host == suffix or host.endswith(f".{suffix}"):
            return platform
    return MeetingPlatform.NONE


def extract_meeting_link(
    location: str | None, description: str | None
) -> tuple[str | None, MeetingPlatform]:
    """Extract the meeting URL and its platform from event text.

    Args:
        location: Event location field.
        description: Event description field.

    Returns:
        Tuple of (meeting_url, platform); (None, MeetingPlatform.NONE) when
        no supported conferencing link is present.
    """
    meeting_url = extract_meeting_url(location, description)
    return meeting_url, detect_platform(meeting_url)
