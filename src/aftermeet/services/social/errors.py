"""Error types for social publishing."""

from __future__ import annotations

from enum import Enum


class SocialAPIError(Exception):
    """Non-success response from a social platform's API."""

    def __init__(self, platform: str, status_code: int, message: str) -> None:
        self.platform = platform
        self.status_code = status_code
        self.message = message
        super().__init__(f"{platform} API error {status_code}: {message}")


class PublishErrorKind(str, Enum):
    """Why a publish request failed, as shown to the user."""

    VALIDATION = "validation"
    UNSUPPORTED_PLATFORM = "unsupported_platform"
    NOT_CONNECTED = "not_connected"
    RECONNECT_REQUIRED = "reconnect_required"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    RATE_LIMITED = "rate_limited"
    OTHER = "other"


class PublishError(Exception):
    """Publish failed; ``kind`` drives the user-facing message and HTTP status."""

    def __init__(
        self, kind: PublishErrorKind, message: str, retryable: bool = False
    ) -> None:
        self.kind = kind
        self.message = message
        self.retryable = retryable
        super().__init__(message)

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "kind": self.kind.value,
            "retryable": self.retryable,
        }
