#!/usr/bin/env python3
"""
Notification Channels

One ChannelSender per delivery channel. Every sender exposes the same
contract, so the delivery queue can treat them interchangeably:

- is_available(): provider credentials are configured
- validate_recipient(recipient): address format check, no network
- send(payload): one provider call, never raises
- send_batch(payloads): fixed-size windows with a pacing delay

An unconfigured channel does not raise; it returns a failed SendResult
marked as simulated so the attempt is recorded and retried like any
other provider failure.

Usage:
    from notification.channels import ChannelRegistry

    registry = ChannelRegistry.from_config(config.channels)
    sender = registry.get_sender(NotificationChannel.SMS)
    result = sender.send(NotificationPayload(recipient="+14155550123", subject="Hi", body="..."))
"""

from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Dict, Any, Optional, List
import html
import logging
import os
import re
import time
import uuid

import requests
import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from email.utils import formataddr, make_msgid

from core.config_loader import (
    BatchPolicy,
    ChannelsConfig,
    EmailChannelConfig,
    InAppChannelConfig,
    PushChannelConfig,
    TwilioChannelConfig,
)
from core.utils import mask_recipient
from database.models import NotificationChannel
from notification.schemas import NotificationPayload, SendResult

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
E164_PATTERN = re.compile(r'^\+[1-9]\d{1,14}$')
UUID_PATTERN = re.compile(
    r'^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$', re.IGNORECASE
)

SMS_MAX_LENGTH = 1600
WHATSAPP_PREFIX = 'whatsapp:'


def _is_dry_run_mode() -> bool:
    """Check if notification channels should run in dry-run (log-only) mode."""
    return os.environ.get('NOTIFICATION_DRY_RUN', '').lower() in ('true', '1', 'yes')


def text_to_html(text: str) -> str:
    """Escape plain text and keep its line breaks."""
    return html.escape(text).replace('\n', '<br>\n')


def _wrap_html_layout(subject: str, content_html: str) -> str:
    safe_subject = html.escape(subject)
    year = datetime.now(timezone.utc).year
    return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <title>{safe_subject}</title>
    <style>
        body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; }}
        .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
        .footer {{ margin-top: 24px; font-size: 12px; color: #888; }}
    </style>
</head>
<body>
    <div class="container">
        {content_html}
        <div class="footer">&copy; {year}</div>
    </div>
</body>
</html>"""


class ChannelSender(ABC):
    """
    Abstract base class for all channel senders.

    Subclasses set `channel` and implement is_available, validate_recipient
    and _deliver. _deliver may raise; send() turns any exception into a
    failed SendResult.
    """

    channel: NotificationChannel
    default_batch_policy = BatchPolicy(size=10, delay_ms=0)

    def __init__(self, batch_policy: Optional[BatchPolicy] = None, timeout: int = 30):
        self.batch_policy = batch_policy or self.default_batch_policy
        self.timeout = timeout

    def get_channel(self) -> NotificationChannel:
        return self.channel

    @abstractmethod
    def is_available(self) -> bool:
        """Return True when the provider is configured."""
        pass

    @abstractmethod
    def validate_recipient(self, recipient: str) -> bool:
        pass

    @abstractmethod
    def _deliver(self, payload: NotificationPayload) -> SendResult:
        """Perform exactly one provider call."""
        pass

    def send(self, payload: NotificationPayload) -> SendResult:
        """
        Send one notification through this channel.

        Returns:
            SendResult; success=False with a reason on any failure
        """
        channel_name = self.channel.value

        if not self.is_available():
            logger.warning(f"{channel_name} not configured, simulating failed send to {mask_recipient(payload.recipient)}")
            return SendResult(
                success=False,
                error=f"{channel_name} not configured",
                metadata={'simulated': True},
            )

        if not self.validate_recipient(payload.recipient):
            logger.warning(f"Invalid {channel_name} recipient: {mask_recipient(payload.recipient)}")
            return SendResult(
                success=False,
                error=f"Invalid {channel_name} recipient",
                metadata={'validation_error': True},
            )

        if _is_dry_run_mode():
            logger.info(f"[DRY RUN] {channel_name} to {mask_recipient(payload.recipient)}: {payload.subject}")
            return SendResult(
                success=True,
                message_id=f"dry-run-{uuid.uuid4()}",
                metadata={'dry_run': True},
            )

        try:
            result = self._deliver(payload)
        except Exception as e:
            logger.error(f"Failed to send {channel_name} to {mask_recipient(payload.recipient)}: {e}")
            return SendResult(success=False, error=str(e))

        if result.success:
            logger.info(f"{channel_name} sent to {mask_recipient(payload.recipient)} ({result.message_id})")
        else:
            logger.warning(f"{channel_name} to {mask_recipient(payload.recipient)} rejected: {result.error}")
        return result

    def send_batch(self, payloads: List[NotificationPayload]) -> Dict[str, SendResult]:
        """
        Send many payloads in windows of batch_policy.size.

        Payloads inside a window are sent concurrently; the pacing delay is
        applied between windows. Results are keyed by recipient.
        """
        results: Dict[str, SendResult] = {}
        size = max(1, self.batch_policy.size)
        delay_seconds = self.batch_policy.delay_ms / 1000.0

        for start in range(0, len(payloads), size):
            window = payloads[start:start + size]
            with ThreadPoolExecutor(max_workers=len(window)) as executor:
                for payload, result in zip(window, executor.map(self.send, window)):
                    results[payload.recipient] = result

            if delay_seconds and start + size < len(payloads):
                time.sleep(delay_seconds)

        return results

    def get_status(self) -> Dict[str, Any]:
        return {
            'channel': self.channel.value,
            'available': self.is_available(),
            'batch_size': self.batch_policy.size,
            'batch_delay_ms': self.batch_policy.delay_ms,
        }


class EmailSender(ChannelSender):
    """Email via SMTP (STARTTLS)."""

    channel = NotificationChannel.EMAIL
    default_batch_policy = BatchPolicy(size=10, delay_ms=0)

    def __init__(self, config: Optional[EmailChannelConfig] = None, timeout: int = 30):
        self.config = config or EmailChannelConfig()
        super().__init__(self.config.batch, timeout)

    def is_available(self) -> bool:
        return bool(self.config.enabled and self.config.smtp_server and self.config.from_email)

    def validate_recipient(self, recipient: str) -> bool:
        return bool(recipient) and EMAIL_PATTERN.match(recipient) is not None

    def _build_message(self, payload: NotificationPayload, message_id: str) -> MIMEMultipart:
        msg = MIMEMultipart('alternative')
        msg['From'] = formataddr((self.config.from_name, self.config.from_email))
        msg['To'] = payload.recipient
        msg['Subject'] = payload.subject
        msg['Message-ID'] = message_id

        content_html = payload.body_html or text_to_html(payload.body)
        msg.attach(MIMEText(payload.body, 'plain', 'utf-8'))
        msg.attach(MIMEText(_wrap_html_layout(payload.subject, content_html), 'html', 'utf-8'))
        return msg

    def _deliver(self, payload: NotificationPayload) -> SendResult:
        domain = self.config.from_email.rsplit('@', 1)[-1]
        message_id = make_msgid(domain=domain)
        msg = self._build_message(payload, message_id)

        with smtplib.SMTP(self.config.smtp_server, self.config.smtp_port, timeout=self.timeout) as server:
            if self.config.use_tls:
                server.starttls()
            if self.config.smtp_username:
                server.login(self.config.smtp_username, self.config.smtp_password or '')
            server.send_message(msg)

        return SendResult(
            success=True,
            message_id=message_id,
            provider_id=message_id,
            metadata={'provider': 'smtp'},
        )


class TwilioSender(ChannelSender):
    """Shared Twilio Messages API client for SMS and WhatsApp."""

    def __init__(self, config: Optional[TwilioChannelConfig] = None, timeout: int = 30):
        self.config = config or TwilioChannelConfig(batch=self.default_batch_policy)
        super().__init__(self.config.batch, timeout)

    def is_available(self) -> bool:
        return bool(
            self.config.enabled
            and self.config.account_sid
            and self.config.auth_token
            and self.config.from_number
        )

    @abstractmethod
    def _format_message(self, payload: NotificationPayload) -> Dict[str, str]:
        """Return the To/From/Body form fields for the Messages API."""
        pass

    def _deliver(self, payload: NotificationPayload) -> SendResult:
        url = f"{self.config.api_base_url}/Accounts/{self.config.account_sid}/Messages.json"
        response = requests.post(
            url,
            data=self._format_message(payload),
            auth=(self.config.account_sid, self.config.auth_token),
            timeout=self.timeout,
        )

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.status_code >= 400:
            return SendResult(
                success=False,
                error=data.get('message') or f"Twilio returned HTTP {response.status_code}",
                metadata={'provider': 'twilio', 'code': data.get('code'), 'http_status': response.status_code},
            )

        return SendResult(
            success=True,
            message_id=data.get('sid'),
            provider_id=data.get('sid'),
            metadata={
                'provider': 'twilio',
                'status': data.get('status'),
                'segments': data.get('num_segments'),
                'price': data.get('price'),
            },
        )


class SmsSender(TwilioSender):
    """SMS via Twilio. Long messages are truncated to the concatenated-SMS limit."""

    channel = NotificationChannel.SMS
    default_batch_policy = BatchPolicy(size=5, delay_ms=100)

    def validate_recipient(self, recipient: str) -> bool:
        return bool(recipient) and E164_PATTERN.match(recipient) is not None

    def _format_message(self, payload: NotificationPayload) -> Dict[str, str]:
        message = f"{payload.subject}\n\n{payload.body}"
        if len(message) > SMS_MAX_LENGTH:
            message = message[:SMS_MAX_LENGTH - 3] + '...'
        return {
            'To': payload.recipient,
            'From': self.config.from_number,
            'Body': message,
        }


class WhatsAppSender(TwilioSender):
    """WhatsApp via Twilio. Recipients may carry a `whatsapp:` prefix."""

    channel = NotificationChannel.WHATSAPP
    default_batch_policy = BatchPolicy(size=3, delay_ms=200)

    @staticmethod
    def _strip_prefix(number: str) -> str:
        if number.startswith(WHATSAPP_PREFIX):
            return number[len(WHATSAPP_PREFIX):]
        return number

    def validate_recipient(self, recipient: str) -> bool:
        if not recipient:
            return False
        return E164_PATTERN.match(self._strip_prefix(recipient)) is not None

    def _format_message(self, payload: NotificationPayload) -> Dict[str, str]:
        fields = {
            'To': f"{WHATSAPP_PREFIX}{self._strip_prefix(payload.recipient)}",
            'From': f"{WHATSAPP_PREFIX}{self._strip_prefix(self.config.from_number)}",
            'Body': f"*{payload.subject}*\n\n{payload.body}",
        }
        media_url = payload.metadata.get('media_url')
        if media_url:
            fields['MediaUrl'] = media_url
        return fields


class PushSender(ChannelSender):
    """Push notifications via the FCM HTTP endpoint."""

    channel = NotificationChannel.PUSH
    default_batch_policy = BatchPolicy(size=1, delay_ms=0)

    def __init__(self, config: Optional[PushChannelConfig] = None, timeout: int = 30):
        self.config = config or PushChannelConfig()
        super().__init__(self.config.batch, timeout)

    def is_available(self) -> bool:
        return bool(self.config.enabled and self.config.server_key)

    def validate_recipient(self, recipient: str) -> bool:
        # FCM tokens are opaque; only reject obviously malformed values
        return bool(recipient) and not any(ch.isspace() for ch in recipient)

    def _deliver(self, payload: NotificationPayload) -> SendResult:
        data = {k: str(v) for k, v in payload.metadata.items() if v is not None}
        response = requests.post(
            self.config.endpoint,
            json={
                'to': payload.recipient,
                'notification': {'title': payload.subject, 'body': payload.body},
                'data': data,
            },
            headers={'Authorization': f"key={self.config.server_key}"},
            timeout=self.timeout,
        )
        response.raise_for_status()
        body = response.json()

        if body.get('failure'):
            error = (body.get('results') or [{}])[0].get('error', 'FCM rejected the message')
            return SendResult(success=False, error=error, metadata={'provider': 'fcm'})

        message_id = (body.get('results') or [{}])[0].get('message_id')
        return SendResult(
            success=True,
            message_id=message_id,
            provider_id=str(body.get('multicast_id')) if body.get('multicast_id') else None,
            metadata={'provider': 'fcm'},
        )


class InAppSender(ChannelSender):
    """In-app notifications. The stored record is the delivery."""

    channel = NotificationChannel.IN_APP
    default_batch_policy = BatchPolicy(size=50, delay_ms=0)

    def __init__(self, config: Optional[InAppChannelConfig] = None, timeout: int = 30):
        self.config = config or InAppChannelConfig()
        super().__init__(self.config.batch, timeout)

    def is_available(self) -> bool:
        return True

    def validate_recipient(self, recipient: str) -> bool:
        return bool(recipient) and UUID_PATTERN.match(recipient) is not None

    def _deliver(self, payload: NotificationPayload) -> SendResult:
        logger.info(f"[IN_APP] User: {payload.recipient}, Title: {payload.subject}")
        timestamp = int(datetime.now(timezone.utc).timestamp() * 1000)
        return SendResult(
            success=True,
            message_id=f"in-app-{timestamp}",
            metadata={'provider': 'in_app'},
        )


class ChannelRegistry:
    """
    Maps each NotificationChannel to the sender that handles it.

    Every channel must resolve to a sender; get_sender raises for an
    unregistered channel rather than silently dropping the notification.
    """

    def __init__(self, senders: Optional[Dict[NotificationChannel, ChannelSender]] = None):
        self._senders: Dict[NotificationChannel, ChannelSender] = {}
        for sender in (senders or {}).values():
            self.register(sender)

    @classmethod
    def from_config(cls, config: Optional[ChannelsConfig] = None) -> "ChannelRegistry":
        config = config or ChannelsConfig()
        timeout = config.provider_timeout_seconds
        registry = cls()
        registry.register(EmailSender(config.email, timeout))
        registry.register(SmsSender(config.sms, timeout))
        registry.register(WhatsAppSender(config.whatsapp, timeout))
        registry.register(PushSender(config.push, timeout))
        registry.register(InAppSender(config.in_app, timeout))
        return registry

    def register(self, sender: ChannelSender) -> None:
        if not isinstance(sender, ChannelSender):
            raise ValueError("Sender must extend ChannelSender")
        self._senders[sender.get_channel()] = sender
        logger.debug(f"Registered sender for channel: {sender.get_channel().value}")

    def get_sender(self, channel: NotificationChannel) -> ChannelSender:
        sender = self._senders.get(NotificationChannel(channel))
        if sender is None:
            raise ValueError(
                f"No sender registered for channel: {channel}. "
                f"Available: {', '.join(c.value for c in self._senders)}"
            )
        return sender

    def list_channels(self) -> List[NotificationChannel]:
        return [c for c in NotificationChannel if c in self._senders]

    def get_status(self) -> List[Dict[str, Any]]:
        return [self._senders[c].get_status() for c in self.list_channels()]

