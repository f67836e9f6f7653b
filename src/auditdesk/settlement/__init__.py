"""Settlement policy: fee split computed at capture time.

Re-exports key functions and types for convenient access:
    from auditdesk.settlement import settle, Settlement
"""

from auditdesk.settlement.policy import Settlement, calculate_platform_fee, settle

__all__ = [
    "Settlement",
    "calculate_platform_fee",
    "settle",
]
