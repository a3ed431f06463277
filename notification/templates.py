"""
Template Engine

Stores named templates and renders them by substituting {{name}}
placeholders. Whitespace inside the braces is tolerated ({{ name }}).
Placeholders without a supplied value or default are left as-is.
"""

import logging
import re
from typing import Any, Callable, Dict, List, Optional

from core.exceptions import (
    ConflictError,
    MissingTemplateVariablesError,
    NotificationValidationError,
    TemplateNotFound,
)
from core.utils import utcnow
from database.models import (
    NotificationCategory,
    NotificationChannel,
    NotificationTemplate,
)
from database.uow import notification_uow
from notification.default_templates import build_default_templates
from notification.schemas import RenderedTemplate, TemplateCreate, TemplateUpdate

logger = logging.getLogger(__name__)

PLACEHOLDER_PATTERN = re.compile(r'\{\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}\}')


def substitute(text: Optional[str], values: Dict[str, Any]) -> Optional[str]:
    """Replace every {{name}} whose name is in values."""
    if text is None:
        return None

    def _replace(match):
        name = match.group(1)
        if name in values:
            return str(values[name])
        return match.group(0)

    return PLACEHOLDER_PATTERN.sub(_replace, text)


def resolve_variables(template: NotificationTemplate, variables: Dict[str, Any]) -> Dict[str, Any]:
    """
    Check required variables and apply defaults.

    Raises:
        MissingTemplateVariablesError: listing exactly the required names
            absent from variables, in declaration order
    """
    missing = [name for name in template.required_variable_names() if name not in variables]
    if missing:
        raise MissingTemplateVariablesError(template.code, missing)

    values = dict(variables)
    for variable in template.variables or []:
        name = variable['name']
        if name not in values and variable.get('default_value') is not None:
            values[name] = variable['default_value']
    return values


class TemplateEngine:
    def __init__(self, uow_factory: Callable = notification_uow):
        self.uow_factory = uow_factory

    def render(self, code: str, variables: Optional[Dict[str, Any]] = None) -> RenderedTemplate:
        variables = variables or {}
        with self.uow_factory() as uow:
            template = uow.templates.get_by_code(code)
            if template is None:
                raise TemplateNotFound(f"Template '{code}' not found")
            if not template.is_active:
                raise NotificationValidationError(f"Template '{code}' is not active")

            values = resolve_variables(template, variables)
            rendered = RenderedTemplate(
                subject=substitute(template.subject, values),
                body=substitute(template.body, values),
                body_html=substitute(template.body_html, values),
                channel=template.channel,
                category=template.category,
            )

            template.usage_count = (template.usage_count or 0) + 1
            template.last_used_at = utcnow()

        logger.debug(f"Rendered template '{code}'")
        return rendered

    def find_by_code(self, code: str) -> NotificationTemplate:
        with self.uow_factory() as uow:
            template = uow.templates.get_by_code(code)
            if template is None:
                raise TemplateNotFound(f"Template '{code}' not found")
            return template

    def find_by_id(self, template_id) -> NotificationTemplate:
        with self.uow_factory() as uow:
            template = uow.templates.get_by_id(template_id)
            if template is None:
                raise TemplateNotFound(f"Template {template_id} not found")
            return template

    def find_all(
        self,
        channel: Optional[NotificationChannel] = None,
        category: Optional[NotificationCategory] = None,
        is_active: Optional[bool] = None,
        locale: Optional[str] = None,
    ) -> List[NotificationTemplate]:
        with self.uow_factory() as uow:
            return uow.templates.find(channel=channel, category=category, is_active=is_active, locale=locale)

    def create(self, data: TemplateCreate, is_system: bool = False) -> NotificationTemplate:
        with self.uow_factory() as uow:
            if uow.templates.code_exists(data.code):
                raise ConflictError(f"Template with code '{data.code}' already exists")

            fields = data.model_dump()
            fields['variables'] = [v.model_dump() for v in data.variables]
            template = uow.templates.add(NotificationTemplate(is_system=is_system, usage_count=0, **fields))

        logger.info(f"Created template '{template.code}' (system={is_system})")
        return template

    def update(self, template_id, data: TemplateUpdate) -> NotificationTemplate:
        with self.uow_factory() as uow:
            template = uow.templates.get_by_id(template_id)
            if template is None:
                raise TemplateNotFound(f"Template {template_id} not found")
            if template.is_system:
                raise NotificationValidationError("System templates cannot be modified; clone it instead")

            changes = data.model_dump(exclude_unset=True)
            if 'variables' in changes and data.variables is not None:
                changes['variables'] = [v.model_dump() for v in data.variables]
            for field, value in changes.items():
                setattr(template, field, value)

        logger.info(f"Updated template '{template.code}'")
        return template

    def delete(self, template_id) -> None:
        with self.uow_factory() as uow:
            template = uow.templates.get_by_id(template_id)
            if template is None:
                raise TemplateNotFound(f"Template {template_id} not found")
            if template.is_system:
                raise NotificationValidationError("System templates cannot be deleted")
            code = template.code
            uow.templates.delete(template)

        logger.info(f"Deleted template '{code}'")

    def clone(self, template_id, new_code: str) -> NotificationTemplate:
        """Copy a template (typically a system one) into an editable template."""
        with self.uow_factory() as uow:
            source = uow.templates.get_by_id(template_id)
            if source is None:
                raise TemplateNotFound(f"Template {template_id} not found")
            if uow.templates.code_exists(new_code):
                raise ConflictError(f"Template with code '{new_code}' already exists")

            clone = uow.templates.add(NotificationTemplate(
                code=new_code,
                name=f"{source.name} (Copy)",
                description=source.description,
                channel=source.channel,
                category=source.category,
                subject=source.subject,
                body=source.body,
                body_html=source.body_html,
                variables=[dict(v) for v in (source.variables or [])],
                channel_config=dict(source.channel_config) if source.channel_config else None,
                is_system=False,
                is_active=True,
                locale=source.locale,
                usage_count=0,
            ))

        logger.info(f"Cloned template '{source.code}' as '{new_code}'")
        return clone

    def get_stats(self) -> Dict[str, Any]:
        with self.uow_factory() as uow:
            by_active = uow.templates.count_by(NotificationTemplate.is_active)
            by_channel = uow.templates.count_by(NotificationTemplate.channel)
            by_category = uow.templates.count_by(NotificationTemplate.category)
            most_used = uow.templates.most_used(10)

            active = by_active.get(True, 0)
            inactive = by_active.get(False, 0)
            return {
                'total': active + inactive,
                'active': active,
                'inactive': inactive,
                'by_channel': {c.value: n for c, n in by_channel.items()},
                'by_category': {c.value: n for c, n in by_category.items()},
                'most_used': [
                    {'code': t.code, 'name': t.name, 'usage_count': t.usage_count}
                    for t in most_used
                ],
            }

    def seed_default_templates(self, app_url: str = "http://localhost:8080") -> int:
        """Create any missing system templates. Returns how many were created."""
        created = 0
        for data in build_default_templates(app_url):
            with self.uow_factory() as uow:
                if uow.templates.code_exists(data.code):
                    continue
            self.create(data, is_system=True)
            created += 1

        if created:
            logger.info(f"Seeded {created} system templates")
        return created
