"""Pydantic v2 models for domain data structures in the audit marketplace."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    HttpUrl,
    field_validator,
    model_validator,
)

from auditdesk.domain.types import (
    TITLE_MAX_LENGTH,
    Category,
    Concern,
    Focus,
    HoldStatus,
    Medium,
    Phase,
    Priority,
    Purpose,
    Relationship,
    RequestStatus,
    ReviewPolicy,
    TechLevel,
    UserRole,
    Verdict,
    validate_budget,
)

# ---------------------------------------------------------------------------
# Category options (tagged union keyed by ``category``)
# ---------------------------------------------------------------------------


class ITCodeOptions(BaseModel):
    """Questionnaire answers for an IT / code audit."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    category: Literal["it_code"] = "it_code"
    phase: Phase
    priority: Priority
    tech_level: TechLevel


class TranslationOptions(BaseModel):
    """Questionnaire answers for a business translation audit."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    category: Literal["translation"] = "translation"
    relationship: Relationship
    purpose: Purpose
    concerns: list[Concern] = Field(default_factory=list)


class AcademicOptions(BaseModel):
    """Questionnaire answers for an academic / fact-check audit."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    category: Literal["academic"] = "academic"
    medium: Medium
    focus: Focus
    policy: ReviewPolicy


CategoryOptions = Annotated[
    ITCodeOptions | TranslationOptions | AcademicOptions,
    Field(discriminator="category"),
]


def _tag_category_options(data: Any) -> Any:
    """Copy the outer ``category`` into an untagged ``category_options`` dict.

    Clients submit the bare questionnaire answers; the tag is derived from the
    request's category so the union can be discriminated.
    """
    if isinstance(data, dict):
        options = data.get("category_options")
        if isinstance(options, dict) and "category" not in options and "category" in data:
            data = {**data, "category_options": {**options, "category": data["category"]}}
    return data


def _options_must_match_category(category: Category, options: BaseModel) -> None:
    if options.category != category:  # type: ignore[attr-defined]
        raise ValueError(
            f"category_options are for '{options.category}', "  # type: ignore[attr-defined]
            f"but the request category is '{category}'"
        )


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------


class Caller(BaseModel):
    """Identity of the caller as supplied by the identity provider.

    The lifecycle core trusts these values as given.
    """

    model_config = ConfigDict(frozen=True)

    caller_id: str
    role: UserRole
    is_reviewer_approved: bool = False

    @property
    def is_approved_reviewer(self) -> bool:
        """Return True if the caller may claim open requests."""
        return self.role == UserRole.REVIEWER and self.is_reviewer_approved

    @property
    def is_admin(self) -> bool:
        """Return True if the caller is a platform administrator."""
        return self.role == UserRole.ADMIN


# ---------------------------------------------------------------------------
# Audit requests
# ---------------------------------------------------------------------------


class NewAuditRequest(BaseModel):
    """Client input for creating an audit request."""

    model_config = ConfigDict(frozen=True)

    category: Category
    title: str
    content: str
    budget: int
    category_options: CategoryOptions
    ai_chat_url: HttpUrl | None = None

    @model_validator(mode="before")
    @classmethod
    def tag_category_options(cls, data: Any) -> Any:
        """Derive the options tag from the request category."""
        return _tag_category_options(data)

    @field_validator("title")
    @classmethod
    def title_must_be_short_and_present(cls, v: str) -> str:
        """Ensure the title is present and fits the listing."""
        if not v.strip():
            raise ValueError("title must not be empty")
        if len(v) > TITLE_MAX_LENGTH:
            raise ValueError(f"title must be at most {TITLE_MAX_LENGTH} characters")
        return v

    @field_validator("content")
    @classmethod
    def content_must_not_be_empty(cls, v: str) -> str:
        """Ensure there is something to audit."""
        if not v.strip():
            raise ValueError("content must not be empty")
        return v

    @field_validator("budget")
    @classmethod
    def budget_must_be_allowed(cls, v: int) -> int:
        """Ensure the budget is one of the allowed amounts."""
        validate_budget(v)
        return v

    @model_validator(mode="after")
    def options_must_match_category(self) -> NewAuditRequest:
        """Ensure the options variant matches the request category."""
        _options_must_match_category(self.category, self.category_options)
        return self


class AuditRequest(BaseModel):
    """An audit request as stored in the ledger.

    Validates the cross-field lifecycle invariants on construction, so a row
    read back from storage can never describe an inconsistent request.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    client_id: str
    reviewer_id: str | None = None
    category: Category
    title: str
    content: str
    ai_chat_url: str | None = None
    budget: int
    status: RequestStatus = RequestStatus.OPEN
    category_options: CategoryOptions
    payment_intent_id: str
    created_at: datetime
    updated_at: datetime
    claimed_at: datetime | None = None
    completed_at: datetime | None = None

    @model_validator(mode="before")
    @classmethod
    def tag_category_options(cls, data: Any) -> Any:
        """Derive the options tag from the request category."""
        return _tag_category_options(data)

    @field_validator("budget")
    @classmethod
    def budget_must_be_positive(cls, v: int) -> int:
        """Ensure the stored budget is a positive amount."""
        if v <= 0:
            raise ValueError("budget must be positive")
        return v

    @field_validator("payment_intent_id")
    @classmethod
    def hold_reference_must_be_present(cls, v: str) -> str:
        """Ensure every request carries an escrow hold reference."""
        if not v:
            raise ValueError("payment_intent_id must not be empty")
        return v

    @model_validator(mode="after")
    def lifecycle_fields_must_be_consistent(self) -> AuditRequest:
        """Ensure reviewer, timestamps and status agree with each other."""
        _options_must_match_category(self.category, self.category_options)

        assigned_states = {RequestStatus.IN_PROGRESS, RequestStatus.COMPLETED}
        if self.status in assigned_states and self.reviewer_id is None:
            raise ValueError(f"status '{self.status}' requires a reviewer_id")
        if self.status == RequestStatus.OPEN and self.reviewer_id is not None:
            raise ValueError("an open request must not have a reviewer_id")
        if (self.claimed_at is None) != (self.reviewer_id is None):
            raise ValueError("claimed_at must be set exactly when reviewer_id is set")
        if (self.completed_at is None) != (self.status != RequestStatus.COMPLETED):
            raise ValueError("completed_at must be set exactly when status is completed")
        return self


# ---------------------------------------------------------------------------
# Deliveries
# ---------------------------------------------------------------------------


class DeliverySubmission(BaseModel):
    """Reviewer input when delivering a verdict."""

    model_config = ConfigDict(frozen=True)

    verdict: Verdict
    comment: str
    revision: str | None = None

    @field_validator("comment")
    @classmethod
    def comment_must_not_be_empty(cls, v: str) -> str:
        """Ensure the reviewer explains the verdict."""
        if not v.strip():
            raise ValueError("comment must not be empty")
        return v

    @field_validator("revision")
    @classmethod
    def blank_revision_is_none(cls, v: str | None) -> str | None:
        """Normalize an empty revision to ``None``."""
        if v is not None and not v.strip():
            return None
        return v


class AuditDelivery(BaseModel):
    """A reviewer's verdict for a request. Created once, never modified."""

    model_config = ConfigDict(frozen=True)

    id: str
    request_id: str
    reviewer_id: str
    verdict: Verdict
    comment: str
    revision: str | None = None
    created_at: datetime


# ---------------------------------------------------------------------------
# Platform settings and escrow values
# ---------------------------------------------------------------------------


def reject_float(v: object) -> object:
    if isinstance(v, float):
        raise ValueError("Use Decimal or string, not float, for rates")
    return v


class PlatformSettings(BaseModel):
    """Process-wide platform configuration maintained by administrators."""

    model_config = ConfigDict(frozen=True)

    fee_rate: Decimal
    updated_at: datetime | None = None
    updated_by: str | None = None

    @field_validator("fee_rate", mode="before")
    @classmethod
    def reject_float_inputs(cls, v: object) -> object:
        """Reject float inputs for the fee rate to prevent precision errors."""
        return reject_float(v)

    @field_validator("fee_rate")
    @classmethod
    def fee_rate_must_be_a_fraction(cls, v: Decimal) -> Decimal:
        """Ensure the fee rate lies in [0, 1]."""
        if not Decimal("0") <= v <= Decimal("1"):
            raise ValueError(f"fee_rate must be between 0 and 1, got {v}")
        return v


class Hold(BaseModel):
    """An escrow hold created by the payment provider."""

    model_config = ConfigDict(frozen=True)

    hold_id: str
    status: HoldStatus
    amount: int
    currency: str
    client_secret: str | None = None


class CaptureReceipt(BaseModel):
    """Proof that a hold was converted into a charge."""

    model_config = ConfigDict(frozen=True)

    hold_id: str
    receipt_id: str
    amount_captured: int
    currency: str
