#!/usr/bin/env python3
"""
Tests for the Notification model status lifecycle.
"""

import unittest
import uuid
from datetime import timedelta

from core.exceptions import InvalidStatusTransition
from core.utils import utcnow
from database.models import (
    ALLOWED_TRANSITIONS,
    Notification,
    NotificationChannel,
    NotificationStatus,
    TERMINAL_STATUSES,
)

S = NotificationStatus


def make_notification(status=S.PENDING, attempts=0, max_attempts=3, **kwargs):
    return Notification(
        id=uuid.uuid4(),
        user_id=uuid.uuid4(),
        channel=NotificationChannel.EMAIL,
        status=status,
        subject="Subject",
        body="Body",
        recipient="ana@example.com",
        attempts=attempts,
        max_attempts=max_attempts,
        **kwargs
    )


class TestStatusTransitions(unittest.TestCase):

    def test_happy_path(self):
        notification = make_notification()
        for target in (S.QUEUED, S.SENDING, S.SENT, S.DELIVERED):
            notification.transition_to(target)
        self.assertTrue(notification.is_delivered())
        self.assertTrue(notification.is_terminal())

    def test_terminal_states_have_no_exits(self):
        for status in TERMINAL_STATUSES:
            self.assertEqual(ALLOWED_TRANSITIONS[status], set())
            notification = make_notification(status=status)
            for target in NotificationStatus:
                self.assertFalse(notification.can_transition_to(target))

    def test_invalid_transition_raises(self):
        notification = make_notification(status=S.PENDING)
        with self.assertRaises(InvalidStatusTransition) as ctx:
            notification.transition_to(S.SENT)
        self.assertEqual(ctx.exception.current, S.PENDING)
        self.assertEqual(ctx.exception.target, S.SENT)
        self.assertEqual(notification.status, S.PENDING)

    def test_sent_cannot_be_cancelled(self):
        notification = make_notification(status=S.SENT)
        self.assertFalse(notification.can_transition_to(S.CANCELLED))

    def test_failed_requeue_needs_attempts_left(self):
        notification = make_notification(status=S.FAILED, attempts=2)
        self.assertTrue(notification.can_retry())
        notification.transition_to(S.QUEUED)
        self.assertEqual(notification.status, S.QUEUED)

        exhausted = make_notification(status=S.FAILED, attempts=3)
        self.assertFalse(exhausted.can_retry())
        with self.assertRaises(InvalidStatusTransition):
            exhausted.transition_to(S.QUEUED)

    def test_bounced_is_failed(self):
        notification = make_notification(status=S.BOUNCED, attempts=1)
        self.assertTrue(notification.is_failed())
        self.assertTrue(notification.can_retry())


class TestNotificationHelpers(unittest.TestCase):

    def test_is_pending(self):
        self.assertTrue(make_notification(status=S.PENDING).is_pending())
        self.assertTrue(make_notification(status=S.QUEUED).is_pending())
        self.assertFalse(make_notification(status=S.SENDING).is_pending())

    def test_is_scheduled(self):
        future = make_notification(scheduled_for=utcnow() + timedelta(hours=1))
        past = make_notification(scheduled_for=utcnow() - timedelta(hours=1))
        self.assertTrue(future.is_scheduled())
        self.assertFalse(past.is_scheduled())
        self.assertFalse(make_notification().is_scheduled())


if __name__ == '__main__':
    unittest.main()
