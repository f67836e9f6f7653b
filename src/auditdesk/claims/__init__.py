"""Claim coordinator: one reviewer wins each open request."""

from auditdesk.claims.coordinator import ClaimCoordinator

__all__ = ["ClaimCoordinator"]
