#!/usr/bin/env python3
"""
FastAPI dependencies for dependency injection.
"""

from functools import lru_cache
from uuid import UUID

from fastapi import Depends, Header

from core.app_context import AppContext
from notification.channels import ChannelRegistry
from notification.queue import DeliveryQueue
from notification.service import NotificationOrchestrator
from notification.templates import TemplateEngine
from .config import get_config


@lru_cache()
def get_app_context() -> AppContext:
    """Wire the notification subsystem once per process."""
    return AppContext.build(get_config())


def get_orchestrator(context: AppContext = Depends(get_app_context)) -> NotificationOrchestrator:
    return context.orchestrator


def get_template_engine(context: AppContext = Depends(get_app_context)) -> TemplateEngine:
    return context.template_engine


def get_delivery_queue(context: AppContext = Depends(get_app_context)) -> DeliveryQueue:
    return context.delivery_queue


def get_channel_registry(context: AppContext = Depends(get_app_context)) -> ChannelRegistry:
    return context.registry


def get_current_user_id(x_user_id: UUID = Header(..., description="Authenticated user id")) -> UUID:
    """
    Identify the caller.

    Authentication happens upstream (API gateway); it forwards the
    verified user id in the X-User-Id header.
    """
    return x_user_id
