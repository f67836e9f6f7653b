"""Domain types, models, and errors for the audit marketplace."""

from auditdesk.domain.errors import (
    AlreadyCapturedError,
    CaptureDeferredError,
    ClaimLostError,
    InvalidTransitionError,
    LedgerConstraintError,
    MarketplaceError,
    NotPermittedError,
    PaymentProviderError,
    RequestNotFoundError,
    SettlementEntryNotFoundError,
    ValidationError,
)
from auditdesk.domain.models import (
    AcademicOptions,
    AuditDelivery,
    AuditRequest,
    Caller,
    CaptureReceipt,
    CategoryOptions,
    DeliverySubmission,
    Hold,
    ITCodeOptions,
    NewAuditRequest,
    PlatformSettings,
    TranslationOptions,
)
from auditdesk.domain.types import (
    BUDGET_OPTIONS,
    Category,
    HoldStatus,
    RequestStatus,
    UserRole,
    Verdict,
    validate_budget,
)

__all__ = [
    "BUDGET_OPTIONS",
    "AcademicOptions",
    "AlreadyCapturedError",
    "AuditDelivery",
    "AuditRequest",
    "Caller",
    "CaptureDeferredError",
    "CaptureReceipt",
    "Category",
    "CategoryOptions",
    "ClaimLostError",
    "DeliverySubmission",
    "Hold",
    "HoldStatus",
    "ITCodeOptions",
    "InvalidTransitionError",
    "LedgerConstraintError",
    "MarketplaceError",
    "NewAuditRequest",
    "NotPermittedError",
    "PaymentProviderError",
    "PlatformSettings",
    "RequestNotFoundError",
    "RequestStatus",
    "SettlementEntryNotFoundError",
    "TranslationOptions",
    "UserRole",
    "ValidationError",
    "Verdict",
    "validate_budget",
]
