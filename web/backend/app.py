#!/usr/bin/env python3
"""
Notification Service - FastAPI Application

HTTP surface for the notification subsystem: user inbox and preferences,
operator send/broadcast endpoints and template management.

Usage:
    uv run python -m web.backend.app

Then open:
    - http://localhost:8080/docs - API Documentation (Swagger UI)
    - http://localhost:8080/redoc - Alternative API Documentation
"""

import logging

from fastapi import FastAPI, HTTPException
from pydantic import ValidationError

from core.exceptions import NotificationError
from .config import get_config
from .exceptions import (
    notification_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    general_exception_handler
)
from .routers import (
    admin_router,
    notifications_router,
    templates_router
)
from .routers.admin import add_rate_limit_handlers

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Notification Service API",
    description="Multi-channel notification delivery: email, SMS, WhatsApp, push and in-app",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# Configure rate limiting
add_rate_limit_handlers(app)

# Register exception handlers
app.add_exception_handler(NotificationError, notification_exception_handler)
app.add_exception_handler(ValidationError, validation_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(Exception, general_exception_handler)

# Include routers
app.include_router(notifications_router)
app.include_router(admin_router)
app.include_router(templates_router)


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "notification-service"}


def main():
    """Run the web server."""
    import uvicorn

    config = get_config()
    logger.info(f"Starting Notification Service on {config.web.host}:{config.web.port}")
    logger.info(f"API Docs: http://{config.web.host}:{config.web.port}/docs")

    uvicorn.run(
        "web.backend.app:app",
        host=config.web.host,
        port=config.web.port,
        reload=False,
        log_level="info"
    )


if __name__ == "__main__":
    main()
