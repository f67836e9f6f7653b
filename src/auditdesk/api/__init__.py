"""HTTP API: request and admin routers plus domain error mapping."""

from auditdesk.api.admin import router as admin_router
from auditdesk.api.errors import register_error_handlers
from auditdesk.api.requests import router as requests_router

__all__ = ["admin_router", "register_error_handlers", "requests_router"]
