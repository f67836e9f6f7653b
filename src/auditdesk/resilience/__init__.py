"""Resilience infrastructure for provider calls with retry and operator notification."""

from auditdesk.resilience.retry import configure_error_notifier, resilient_api_call

__all__ = [
    "configure_error_notifier",
    "resilient_api_call",
]
