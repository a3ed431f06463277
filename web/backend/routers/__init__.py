"""API route handlers."""

from .notifications import router as notifications_router
from .admin import router as admin_router
from .templates import router as templates_router
