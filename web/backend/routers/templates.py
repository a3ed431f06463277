#!/usr/bin/env python3
"""
Template endpoints - manage notification templates.
"""

from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Response

from ..config import get_config
from ..dependencies import get_template_engine
from ..models.requests import CloneTemplateRequest
from ..models.responses import CountResponse, TemplateView, template_to_view
from database.models import NotificationCategory, NotificationChannel
from notification.schemas import TemplateCreate, TemplateUpdate
from notification.templates import TemplateEngine

router = APIRouter(prefix="/api/templates", tags=["templates"])


@router.get("", response_model=List[TemplateView])
def list_templates(
    channel: Optional[NotificationChannel] = None,
    category: Optional[NotificationCategory] = None,
    is_active: Optional[bool] = None,
    locale: Optional[str] = None,
    engine: TemplateEngine = Depends(get_template_engine),
):
    templates = engine.find_all(channel=channel, category=category, is_active=is_active, locale=locale)
    return [template_to_view(t) for t in templates]


@router.get("/stats")
def get_template_stats(engine: TemplateEngine = Depends(get_template_engine)) -> Dict[str, Any]:
    """Counts by state, channel and category plus the ten most used templates."""
    return engine.get_stats()


@router.post("/seed", response_model=CountResponse)
def seed_templates(engine: TemplateEngine = Depends(get_template_engine)):
    """Create any missing system templates."""
    created = engine.seed_default_templates(app_url=get_config().templates.app_url)
    return CountResponse(count=created)


@router.get("/code/{code}", response_model=TemplateView)
def get_template_by_code(code: str, engine: TemplateEngine = Depends(get_template_engine)):
    return template_to_view(engine.find_by_code(code))


@router.post("", response_model=TemplateView, status_code=201)
def create_template(data: TemplateCreate, engine: TemplateEngine = Depends(get_template_engine)):
    return template_to_view(engine.create(data))


@router.get("/{template_id}", response_model=TemplateView)
def get_template(template_id: UUID, engine: TemplateEngine = Depends(get_template_engine)):
    return template_to_view(engine.find_by_id(template_id))


@router.patch("/{template_id}", response_model=TemplateView)
def update_template(
    template_id: UUID,
    data: TemplateUpdate,
    engine: TemplateEngine = Depends(get_template_engine),
):
    """System templates cannot be modified; clone them instead."""
    return template_to_view(engine.update(template_id, data))


@router.delete("/{template_id}", status_code=204)
def delete_template(template_id: UUID, engine: TemplateEngine = Depends(get_template_engine)):
    engine.delete(template_id)
    return Response(status_code=204)


@router.post("/{template_id}/clone", response_model=TemplateView, status_code=201)
def clone_template(
    template_id: UUID,
    request: CloneTemplateRequest,
    engine: TemplateEngine = Depends(get_template_engine),
):
    return template_to_view(engine.clone(template_id, request.new_code))
