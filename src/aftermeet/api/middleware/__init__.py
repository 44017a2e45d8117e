"""API middleware package."""

from src.aftermeet.api.middleware.logging import LoggingMiddleware

__all__ = ["LoggingMiddleware"]
