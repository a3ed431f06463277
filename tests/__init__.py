#!/usr/bin/env python3
"""
Test suite configuration and utilities.

Unit tests run against an in-memory SQLite database and need neither
PostgreSQL nor Redis:

    # Run all tests
    uv run python -m pytest tests/ -v

    # Skip tests that need a running Redis
    uv run python -m pytest tests/ -v -m "not redis"

    # Using unittest
    uv run python -m unittest discover tests -v

Redis integration tests use REDIS_URL when set, otherwise they try to
start a throwaway container (see tests/conftest_docker.py).
"""

import functools
import uuid
from typing import Callable, List, Optional

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from core.config_loader import BatchPolicy
from database.models import Base, NotificationChannel, User
from database.uow import notification_uow
from notification.channels import ChannelRegistry, ChannelSender
from notification.schemas import NotificationPayload, SendResult


def make_session_factory() -> sessionmaker:
    """
    Fresh in-memory SQLite database with all tables created.

    StaticPool keeps a single connection so every session sees the same
    database.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def make_uow_factory(session_factory: sessionmaker) -> Callable:
    return functools.partial(notification_uow, session_factory=session_factory)


def create_user(
    session_factory: sessionmaker,
    email: Optional[str] = None,
    phone: Optional[str] = "+14155550100",
    is_active: bool = True,
    display_name: str = "Test User",
) -> User:
    user_id = uuid.uuid4()
    user = User(
        id=user_id,
        email=email or f"user-{user_id.hex[:8]}@example.com",
        phone=phone,
        display_name=display_name,
        is_active=is_active,
    )
    session = session_factory()
    try:
        session.add(user)
        session.commit()
    finally:
        session.close()
    return user


class FakeSender(ChannelSender):
    """
    Records every payload and succeeds, except for recipients listed in
    `failing_recipients`, which always fail.
    """

    def __init__(self, channel: NotificationChannel, failing_recipients=(), available: bool = True):
        self.channel = channel
        self.failing_recipients = set(failing_recipients)
        self.available = available
        self.sent: List[NotificationPayload] = []
        super().__init__(BatchPolicy(size=10, delay_ms=0))

    def is_available(self) -> bool:
        return self.available

    def validate_recipient(self, recipient: str) -> bool:
        return bool(recipient)

    def _deliver(self, payload: NotificationPayload) -> SendResult:
        self.sent.append(payload)
        if payload.recipient in self.failing_recipients:
            return SendResult(success=False, error="provider unavailable", metadata={'provider': 'fake'})
        return SendResult(
            success=True,
            message_id=f"fake-{len(self.sent)}",
            provider_id="fake-provider",
            metadata={'provider': 'fake'},
        )


def make_fake_registry(failing_recipients=()) -> ChannelRegistry:
    """Registry with a FakeSender for every channel."""
    return ChannelRegistry({
        channel: FakeSender(channel, failing_recipients)
        for channel in NotificationChannel
    })
