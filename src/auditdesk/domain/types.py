"""Domain enumerations and fixed option sets for the audit marketplace."""

from enum import StrEnum


class Category(StrEnum):
    """Closed set of audit request categories."""

    IT_CODE = "it_code"
    TRANSLATION = "translation"
    ACADEMIC = "academic"


class RequestStatus(StrEnum):
    """States in the audit request lifecycle."""

    OPEN = "open"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Verdict(StrEnum):
    """Reviewer's overall judgement on the audited content."""

    APPROVED = "approved"
    NEEDS_REVISION = "needs_revision"
    DANGEROUS = "dangerous"


class UserRole(StrEnum):
    """Roles supplied by the identity provider."""

    CLIENT = "client"
    REVIEWER = "reviewer"
    ADMIN = "admin"


class HoldStatus(StrEnum):
    """Advisory status of an escrow hold at the payment provider."""

    PENDING = "pending"
    AUTHORIZED = "authorized"
    CAPTURED = "captured"
    CANCELLED = "cancelled"
    FAILED = "failed"


# -- Category option values ---------------------------------------------------


class Phase(StrEnum):
    """it_code: where the generated code is going to run."""

    LEARNING = "learning"
    MVP = "mvp"
    PRODUCTION_SMALL = "production_small"
    PRODUCTION_LARGE = "production_large"


class Priority(StrEnum):
    """it_code: what the client cares about most."""

    FIX = "fix"
    SECURITY = "security"
    PERFORMANCE = "performance"
    MAINTAINABILITY = "maintainability"


class TechLevel(StrEnum):
    """it_code: the client's own technical background."""

    NON_ENGINEER = "non_engineer"
    BEGINNER = "beginner"
    PROFESSIONAL = "professional"


class Relationship(StrEnum):
    """translation: relationship with the recipient of the text."""

    NEW = "new"
    EXISTING_GOOD = "existing_good"
    EXISTING_TROUBLE = "existing_trouble"
    INTERNAL = "internal"
    PUBLIC = "public"


class Purpose(StrEnum):
    """translation: what the text is meant to achieve."""

    REQUEST = "request"
    APOLOGY = "apology"
    REJECTION = "rejection"
    NOTIFICATION = "notification"
    PROPOSAL = "proposal"


class Concern(StrEnum):
    """translation: specific worries the client wants checked."""

    CONDESCENDING = "condescending"
    JARGON = "jargon"
    GRAMMAR = "grammar"
    OTHER = "other"


class Medium(StrEnum):
    """academic: where the text will be published."""

    UNDERGRADUATE = "undergraduate"
    PEER_REVIEWED = "peer_reviewed"
    WEB_ARTICLE = "web_article"
    BUSINESS_DOC = "business_doc"


class Focus(StrEnum):
    """academic: what the fact check should concentrate on."""

    EXISTENCE_CHECK = "existence_check"
    CONTENT_MATCH = "content_match"
    LOGIC = "logic"
    RECENCY = "recency"


class ReviewPolicy(StrEnum):
    """academic: whether the reviewer only flags issues or also proposes fixes."""

    POINT_OUT_ONLY = "point_out_only"
    SUGGEST_ALTERNATIVES = "suggest_alternatives"


# Allowed budgets in minor currency units (the deployment currency is fixed).
BUDGET_OPTIONS: tuple[int, ...] = (1000, 3000, 5000, 10000, 30000, 50000)

TITLE_MAX_LENGTH = 40


def validate_budget(budget: int) -> None:
    """Validate that a budget is one of the allowed amounts.

    Args:
        budget: The requested budget in minor currency units.

    Raises:
        ValueError: If the budget is not in ``BUDGET_OPTIONS``.
    """
    if budget not in BUDGET_OPTIONS:
        raise ValueError(
            f"budget {budget} is not allowed. "
            f"Valid budgets: {', '.join(str(b) for b in BUDGET_OPTIONS)}"
        )
