"""
System templates seeded at startup, one per typed domain event.

Variable names follow the event payloads (camelCase, as sent by the
producing services).
"""

from typing import List

from database.models import NotificationCategory, NotificationChannel
from notification.schemas import TemplateCreate, TemplateVariable


def build_default_templates(app_url: str) -> List[TemplateCreate]:
    app_url = app_url.rstrip('/')
    return [
        TemplateCreate(
            code='poa_submitted',
            name='POA Submitted',
            description='Sent when a power of attorney is submitted for review',
            channel=NotificationChannel.EMAIL,
            category=NotificationCategory.POA_STATUS,
            subject='Your {{poaType}} power of attorney was submitted',
            body=(
                'Hello {{userName}},\n\n'
                'We received your {{poaType}} power of attorney on {{submittedDate}}. '
                'Our team will review it shortly.\n\n'
                'Track its status at {{poaUrl}}'
            ),
            variables=[
                TemplateVariable(name='userName', description='Recipient display name', example='Ana'),
                TemplateVariable(name='poaType', description='Type of power of attorney', example='general'),
                TemplateVariable(name='submittedDate', description='Submission date', example='2026-01-15'),
                TemplateVariable(name='poaUrl', required=False, default_value=f'{app_url}/poa'),
            ],
        ),
        TemplateCreate(
            code='poa_approved',
            name='POA Approved',
            description='Sent when a power of attorney is approved',
            channel=NotificationChannel.EMAIL,
            category=NotificationCategory.POA_STATUS,
            subject='Your {{poaType}} power of attorney was approved',
            body=(
                'Hello {{userName}},\n\n'
                'Good news: your {{poaType}} power of attorney was approved on {{approvalDate}}.\n\n'
                'View it at {{poaUrl}}'
            ),
            body_html=(
                '<p>Hello {{userName}},</p>'
                '<p>Good news: your <strong>{{poaType}}</strong> power of attorney was approved on {{approvalDate}}.</p>'
                '<p><a href="{{poaUrl}}">View your power of attorney</a></p>'
            ),
            variables=[
                TemplateVariable(name='userName', description='Recipient display name', example='Ana'),
                TemplateVariable(name='poaType', description='Type of power of attorney', example='general'),
                TemplateVariable(name='approvalDate', required=False, default_value='today'),
                TemplateVariable(name='poaUrl', required=False, default_value=f'{app_url}/poa'),
            ],
        ),
        TemplateCreate(
            code='poa_rejected',
            name='POA Rejected',
            description='Sent when a power of attorney is rejected',
            channel=NotificationChannel.EMAIL,
            category=NotificationCategory.POA_STATUS,
            subject='Your {{poaType}} power of attorney needs changes',
            body=(
                'Hello {{userName}},\n\n'
                'Your {{poaType}} power of attorney was not approved.\n'
                'Reason: {{reason}}\n\n'
                'Update it at {{poaUrl}}'
            ),
            variables=[
                TemplateVariable(name='userName'),
                TemplateVariable(name='poaType'),
                TemplateVariable(name='reason'),
                TemplateVariable(name='poaUrl', required=False, default_value=f'{app_url}/poa'),
            ],
        ),
        TemplateCreate(
            code='document_rejected',
            name='Document Rejected',
            description='Sent when an uploaded document is rejected',
            channel=NotificationChannel.EMAIL,
            category=NotificationCategory.POA_STATUS,
            subject='Document {{documentName}} was rejected',
            body=(
                'Hello {{userName}},\n\n'
                'The document "{{documentName}}" was rejected: {{reason}}\n\n'
                'Please upload a new version at {{uploadUrl}}'
            ),
            variables=[
                TemplateVariable(name='userName'),
                TemplateVariable(name='documentName'),
                TemplateVariable(name='reason'),
                TemplateVariable(name='uploadUrl', required=False, default_value=f'{app_url}/documents'),
            ],
        ),
        TemplateCreate(
            code='payment_received',
            name='Payment Received',
            description='Sent when a payment is confirmed',
            channel=NotificationChannel.EMAIL,
            category=NotificationCategory.PAYMENT,
            subject='Payment received: {{amount}}',
            body=(
                'Hello {{userName}},\n\n'
                'We received your payment of {{amount}} on {{paymentDate}}.\n'
                'Reference: {{reference}}'
            ),
            variables=[
                TemplateVariable(name='userName'),
                TemplateVariable(name='amount', example='$49.00'),
                TemplateVariable(name='paymentDate', required=False, default_value='today'),
                TemplateVariable(name='reference', required=False, default_value='-'),
            ],
        ),
        TemplateCreate(
            code='payment_failed',
            name='Payment Failed',
            description='Sent when a payment attempt fails',
            channel=NotificationChannel.EMAIL,
            category=NotificationCategory.PAYMENT,
            subject='Your payment of {{amount}} could not be processed',
            body=(
                'Hello {{userName}},\n\n'
                'Your payment of {{amount}} failed: {{reason}}\n\n'
                'Update your payment method at {{billingUrl}}'
            ),
            variables=[
                TemplateVariable(name='userName'),
                TemplateVariable(name='amount'),
                TemplateVariable(name='reason', required=False, default_value='the payment was declined'),
                TemplateVariable(name='billingUrl', required=False, default_value=f'{app_url}/billing'),
            ],
        ),
        TemplateCreate(
            code='security_alert',
            name='Security Alert',
            description='Sent on security-relevant account activity',
            channel=NotificationChannel.EMAIL,
            category=NotificationCategory.SECURITY,
            subject='Security alert: {{action}}',
            body=(
                'Hello {{userName}},\n\n'
                'We noticed the following activity on your account: {{action}} '
                'at {{occurredAt}} from {{ipAddress}}.\n\n'
                'If this was not you, secure your account at {{securityUrl}}'
            ),
            variables=[
                TemplateVariable(name='userName'),
                TemplateVariable(name='action'),
                TemplateVariable(name='occurredAt'),
                TemplateVariable(name='ipAddress', required=False, default_value='an unknown location'),
                TemplateVariable(name='securityUrl', required=False, default_value=f'{app_url}/security'),
            ],
        ),
    ]
