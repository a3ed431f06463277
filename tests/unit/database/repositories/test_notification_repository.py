#!/usr/bin/env python3
"""
Repository tests against in-memory SQLite.
"""

import uuid
from datetime import timedelta

import pytest

from core.utils import utcnow
from database.models import (
    Notification,
    NotificationCategory,
    NotificationChannel,
    NotificationStatus,
)
from notification.schemas import NotificationFilter


def add_notification(uow_factory, user_id, **overrides):
    fields = dict(
        user_id=user_id,
        channel=NotificationChannel.IN_APP,
        category=NotificationCategory.SYSTEM,
        status=NotificationStatus.SENT,
        subject="Subject",
        body="Body",
        recipient=str(user_id),
        attempts=1,
        max_attempts=3,
    )
    fields.update(overrides)
    with uow_factory() as uow:
        return uow.notifications.add(Notification(**fields))


class TestNotificationRepository:

    def test_find_paginates_and_counts(self, uow_factory):
        user_id = uuid.uuid4()
        base = utcnow()
        for i in range(5):
            add_notification(uow_factory, user_id, subject=f"n{i}", created_at=base + timedelta(minutes=i))
        add_notification(uow_factory, uuid.uuid4())

        with uow_factory() as uow:
            items, total = uow.notifications.find(NotificationFilter(user_id=user_id, page=2, limit=2))

        assert total == 5
        assert [n.subject for n in items] == ["n2", "n1"]

    def test_find_sort_ascending(self, uow_factory):
        user_id = uuid.uuid4()
        base = utcnow()
        for i in range(3):
            add_notification(uow_factory, user_id, subject=f"n{i}", created_at=base + timedelta(minutes=i))

        with uow_factory() as uow:
            items, _ = uow.notifications.find(NotificationFilter(user_id=user_id, sort_order='asc'))

        assert [n.subject for n in items] == ["n0", "n1", "n2"]

    def test_filters(self, uow_factory):
        user_id = uuid.uuid4()
        add_notification(uow_factory, user_id, channel=NotificationChannel.EMAIL, recipient="a@example.com")
        add_notification(uow_factory, user_id, category=NotificationCategory.PAYMENT)
        add_notification(uow_factory, user_id, read_at=utcnow())

        with uow_factory() as uow:
            _, email_total = uow.notifications.find(
                NotificationFilter(user_id=user_id, channel=NotificationChannel.EMAIL)
            )
            _, payment_total = uow.notifications.find(
                NotificationFilter(user_id=user_id, category=NotificationCategory.PAYMENT)
            )
            _, unread_total = uow.notifications.find(NotificationFilter(user_id=user_id, unread_only=True))

        assert email_total == 1
        assert payment_total == 1
        assert unread_total == 2

    def test_count_unread_only_counts_in_app(self, uow_factory):
        user_id = uuid.uuid4()
        add_notification(uow_factory, user_id)
        add_notification(uow_factory, user_id)
        add_notification(uow_factory, user_id, read_at=utcnow())
        add_notification(uow_factory, user_id, channel=NotificationChannel.EMAIL, recipient="a@example.com")

        with uow_factory() as uow:
            assert uow.notifications.count_unread(user_id) == 2

    def test_mark_read_is_scoped_to_user_and_ids(self, uow_factory):
        user_id = uuid.uuid4()
        mine = add_notification(uow_factory, user_id)
        other = add_notification(uow_factory, user_id)
        foreign = add_notification(uow_factory, uuid.uuid4())

        with uow_factory() as uow:
            changed = uow.notifications.mark_read(user_id, utcnow(), [mine.id, foreign.id])
        assert changed == 1

        with uow_factory() as uow:
            assert uow.notifications.get_by_id(mine.id).read_at is not None
            assert uow.notifications.get_by_id(other.id).read_at is None
            assert uow.notifications.get_by_id(foreign.id).read_at is None

    def test_mark_read_bumps_version(self, uow_factory):
        user_id = uuid.uuid4()
        notification = add_notification(uow_factory, user_id)
        version = notification.version

        with uow_factory() as uow:
            uow.notifications.mark_read(user_id, utcnow())

        with uow_factory() as uow:
            assert uow.notifications.get_by_id(notification.id).version == version + 1

    def test_count_by_status(self, uow_factory):
        user_id = uuid.uuid4()
        add_notification(uow_factory, user_id, status=NotificationStatus.SENT)
        add_notification(uow_factory, user_id, status=NotificationStatus.SENT)
        add_notification(uow_factory, user_id, status=NotificationStatus.FAILED)

        with uow_factory() as uow:
            counts = uow.notifications.count_by(Notification.status, NotificationFilter(user_id=user_id))

        assert counts == {NotificationStatus.SENT: 2, NotificationStatus.FAILED: 1}

    def test_rollback_on_error(self, uow_factory):
        user_id = uuid.uuid4()
        with pytest.raises(RuntimeError):
            with uow_factory() as uow:
                uow.notifications.add(Notification(
                    user_id=user_id,
                    channel=NotificationChannel.IN_APP,
                    status=NotificationStatus.PENDING,
                    subject="s",
                    body="b",
                    recipient=str(user_id),
                ))
                raise RuntimeError("boom")

        with uow_factory() as uow:
            _, total = uow.notifications.find(NotificationFilter(user_id=user_id))
        assert total == 0
