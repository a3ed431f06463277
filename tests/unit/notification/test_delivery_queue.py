#!/usr/bin/env python3
"""
Tests for DeliveryQueue: dispatch, retry with exponential backoff,
cancellation and the RQ entry points.

The RQ queue is a Mock so enqueue/enqueue_in calls can be inspected and
jobs are run by calling run_job directly.
"""

import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock, patch

import pytest

from core.exceptions import NotificationValidationError, TransientProviderError
from database.models import Notification, NotificationChannel, NotificationStatus
from notification import queue as queue_module
from notification.queue import DeliveryQueue, job_id_for, process_notification_task, report_job_failure
from tests import FakeSender, make_fake_registry

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)
FAILING = "fail@example.com"


def add_notification(uow_factory, status=NotificationStatus.PENDING, recipient="ok@example.com", **overrides):
    fields = dict(
        user_id=uuid.uuid4(),
        channel=NotificationChannel.EMAIL,
        status=status,
        subject="Subject",
        body="Body",
        recipient=recipient,
        attempts=0,
        max_attempts=3,
    )
    fields.update(overrides)
    with uow_factory() as uow:
        return uow.notifications.add(Notification(**fields))


def load(uow_factory, notification_id):
    with uow_factory() as uow:
        return uow.notifications.get_by_id(notification_id)


@pytest.fixture
def registry():
    return make_fake_registry(failing_recipients=[FAILING])


@pytest.fixture
def rq_queue():
    queue = Mock()
    queue.name = "notifications"
    queue.job_ids = []
    queue.scheduled_job_registry.get_job_ids.return_value = []
    queue.started_job_registry.get_job_ids.return_value = []
    return queue


@pytest.fixture
def delivery_queue(registry, uow_factory, rq_queue):
    return DeliveryQueue(registry, uow_factory, queue=rq_queue, clock=lambda: NOW)


class TestDispatch:

    def test_queue_notification_enqueues_first_attempt(self, delivery_queue, rq_queue, uow_factory):
        notification = add_notification(uow_factory)

        job = delivery_queue.queue_notification(notification.id)

        assert job.attempt == 1
        assert load(uow_factory, notification.id).status == NotificationStatus.QUEUED
        rq_queue.enqueue.assert_called_once()
        args, kwargs = rq_queue.enqueue.call_args
        assert args[0] is process_notification_task
        assert args[1] == {'notification_id': str(notification.id), 'attempt': 1, 'next_run_at': NOW.isoformat()}
        assert kwargs['job_id'] == f"notification-{notification.id}-attempt-1"
        assert kwargs['on_failure'] is report_job_failure
        rq_queue.enqueue_in.assert_not_called()

    def test_future_schedule_uses_enqueue_in(self, delivery_queue, rq_queue, uow_factory):
        notification = add_notification(uow_factory)

        delivery_queue.schedule_notification(notification.id, NOW + timedelta(hours=2))

        rq_queue.enqueue.assert_not_called()
        delay = rq_queue.enqueue_in.call_args[0][0]
        assert delay == timedelta(hours=2)
        stored = load(uow_factory, notification.id)
        assert stored.status == NotificationStatus.QUEUED
        assert stored.scheduled_for.replace(tzinfo=timezone.utc) == NOW + timedelta(hours=2)

    def test_past_schedule_is_immediate(self, delivery_queue, rq_queue, uow_factory):
        notification = add_notification(uow_factory)

        delivery_queue.schedule_notification(notification.id, NOW - timedelta(minutes=5))

        rq_queue.enqueue.assert_called_once()
        rq_queue.enqueue_in.assert_not_called()

    def test_job_ids_are_deterministic(self):
        notification_id = uuid.UUID(int=7)
        assert job_id_for(notification_id, 2) == f"notification-{notification_id}-attempt-2"

    def test_backoff_delay(self, delivery_queue):
        assert [delivery_queue.backoff_delay(n) for n in (1, 2, 3)] == [60, 120, 240]


class TestProcessing:

    def test_success_marks_sent(self, delivery_queue, registry, uow_factory):
        notification = add_notification(uow_factory)
        job = delivery_queue.queue_notification(notification.id)

        result = delivery_queue.run_job(job.to_dict())

        assert result.success
        stored = load(uow_factory, notification.id)
        assert stored.status == NotificationStatus.SENT
        assert stored.attempts == 1
        assert stored.sent_at is not None
        assert stored.provider_metadata['message_id'] == result.message_id
        sent = registry.get_sender(NotificationChannel.EMAIL).sent
        assert [p.recipient for p in sent] == ["ok@example.com"]

    def test_failures_back_off_then_fail_permanently(self, delivery_queue, rq_queue, uow_factory):
        notification = add_notification(uow_factory, recipient=FAILING)
        job = delivery_queue.queue_notification(notification.id)

        # Attempt 1 fails -> attempt 2 in 60s
        delivery_queue.run_job(job.to_dict())
        stored = load(uow_factory, notification.id)
        assert stored.status == NotificationStatus.QUEUED
        assert stored.attempts == 1
        assert stored.error_message == "provider unavailable"
        assert stored.error_details['attempt'] == 1
        delay, _, job_data = rq_queue.enqueue_in.call_args[0]
        assert delay == timedelta(seconds=60)
        assert job_data['attempt'] == 2
        assert rq_queue.enqueue_in.call_args[1]['job_id'] == f"notification-{notification.id}-attempt-2"

        # Attempt 2 fails -> attempt 3 in 120s
        delivery_queue.run_job(job_data)
        delay, _, job_data = rq_queue.enqueue_in.call_args[0]
        assert delay == timedelta(seconds=120)
        assert job_data['attempt'] == 3

        # Attempt 3 fails -> FAILED, nothing more enqueued
        delivery_queue.run_job(job_data)
        stored = load(uow_factory, notification.id)
        assert stored.status == NotificationStatus.FAILED
        assert stored.attempts == 3
        assert rq_queue.enqueue_in.call_count == 2

    def test_reraise_inside_worker(self, delivery_queue, uow_factory):
        notification = add_notification(uow_factory, recipient=FAILING)
        job = delivery_queue.queue_notification(notification.id)

        with pytest.raises(TransientProviderError):
            delivery_queue.run_job(job.to_dict(), reraise=True)

        # The retry was still scheduled
        assert load(uow_factory, notification.id).status == NotificationStatus.QUEUED

    def test_cancelled_notification_is_skipped(self, delivery_queue, registry, uow_factory):
        notification = add_notification(uow_factory)
        job = delivery_queue.queue_notification(notification.id)
        delivery_queue.cancel_notification(notification.id)

        assert delivery_queue.run_job(job.to_dict()) is None
        assert registry.get_sender(NotificationChannel.EMAIL).sent == []
        assert load(uow_factory, notification.id).status == NotificationStatus.CANCELLED

    def test_duplicate_job_after_send_is_skipped(self, delivery_queue, registry, uow_factory):
        notification = add_notification(uow_factory)
        job = delivery_queue.queue_notification(notification.id)

        delivery_queue.run_job(job.to_dict())
        delivery_queue.run_job(job.to_dict())

        assert len(registry.get_sender(NotificationChannel.EMAIL).sent) == 1

    def test_redelivered_job_resumes(self, delivery_queue, registry, uow_factory):
        # Worker died after marking SENDING; RQ hands the same attempt out again
        notification = add_notification(uow_factory, status=NotificationStatus.SENDING, attempts=1)

        result = delivery_queue.run_job({'notification_id': str(notification.id), 'attempt': 1})

        assert result.success
        assert load(uow_factory, notification.id).status == NotificationStatus.SENT

    def test_missing_notification_is_dropped(self, delivery_queue):
        assert delivery_queue.run_job({'notification_id': str(uuid.uuid4()), 'attempt': 1}) is None

    def test_unavailable_channel_counts_as_failed_attempt(self, uow_factory, rq_queue):
        registry = make_fake_registry()
        registry.register(FakeSender(NotificationChannel.EMAIL, available=False))
        delivery_queue = DeliveryQueue(registry, uow_factory, queue=rq_queue, clock=lambda: NOW)
        notification = add_notification(uow_factory)
        job = delivery_queue.queue_notification(notification.id)

        delivery_queue.run_job(job.to_dict())

        stored = load(uow_factory, notification.id)
        assert stored.attempts == 1
        assert stored.error_message == "email not configured"
        assert stored.error_details['provider_metadata'] == {'simulated': True}


class TestSyncMode:

    def test_runs_inline(self, registry, uow_factory):
        delivery_queue = DeliveryQueue(registry, uow_factory)
        assert delivery_queue.sync_mode
        notification = add_notification(uow_factory)

        delivery_queue.queue_notification(notification.id)

        assert load(uow_factory, notification.id).status == NotificationStatus.SENT

    def test_retries_inline_until_exhausted(self, registry, uow_factory):
        delivery_queue = DeliveryQueue(registry, uow_factory)
        notification = add_notification(uow_factory, recipient=FAILING)

        delivery_queue.queue_notification(notification.id)

        stored = load(uow_factory, notification.id)
        assert stored.status == NotificationStatus.FAILED
        assert stored.attempts == 3
        assert len(registry.get_sender(NotificationChannel.EMAIL).sent) == 3

    def test_queue_stats(self, registry, uow_factory):
        stats = DeliveryQueue(registry, uow_factory).get_queue_stats()
        assert stats['mode'] == 'sync'
        assert stats['waiting'] == 0


class TestOperatorActions:

    def test_retry_failed_notification(self, delivery_queue, rq_queue, uow_factory):
        notification = add_notification(
            uow_factory, status=NotificationStatus.FAILED, attempts=1, error_message="boom"
        )

        job = delivery_queue.retry_notification(notification.id)

        assert job.attempt == 2
        stored = load(uow_factory, notification.id)
        assert stored.status == NotificationStatus.QUEUED
        assert stored.error_message is None
        rq_queue.enqueue.assert_called_once()

    def test_retry_exhausted_is_rejected(self, delivery_queue, uow_factory):
        notification = add_notification(uow_factory, status=NotificationStatus.FAILED, attempts=3)
        with pytest.raises(NotificationValidationError):
            delivery_queue.retry_notification(notification.id)

    def test_retry_sent_is_rejected(self, delivery_queue, uow_factory):
        notification = add_notification(uow_factory, status=NotificationStatus.SENT, attempts=1)
        with pytest.raises(NotificationValidationError):
            delivery_queue.retry_notification(notification.id)

    @patch('notification.queue.Job')
    def test_cancel_removes_waiting_jobs(self, mock_job, delivery_queue, rq_queue, uow_factory):
        notification = add_notification(uow_factory)
        delivery_queue.queue_notification(notification.id)
        waiting = job_id_for(notification.id, 1)
        rq_queue.job_ids = [waiting, "notification-someone-else-attempt-1"]

        cancelled = delivery_queue.cancel_notification(notification.id)

        assert cancelled.status == NotificationStatus.CANCELLED
        mock_job.fetch.assert_called_once_with(waiting, connection=None)
        mock_job.fetch.return_value.delete.assert_called_once()

    def test_handle_failed_job(self, delivery_queue, uow_factory):
        notification = add_notification(uow_factory, status=NotificationStatus.QUEUED)

        delivery_queue.handle_failed_job(notification.id, reason="JobTimeoutException: took too long")

        stored = load(uow_factory, notification.id)
        assert stored.status == NotificationStatus.FAILED
        assert stored.error_message == "JobTimeoutException: took too long"

    def test_handle_failed_job_leaves_sent_alone(self, delivery_queue, uow_factory):
        notification = add_notification(uow_factory, status=NotificationStatus.SENT, attempts=1)
        delivery_queue.handle_failed_job(notification.id, reason="late failure")
        assert load(uow_factory, notification.id).status == NotificationStatus.SENT

    def test_queue_stats_from_registries(self, delivery_queue, rq_queue):
        rq_queue.count = 4
        rq_queue.started_job_registry.count = 1
        rq_queue.finished_job_registry.count = 10
        rq_queue.failed_job_registry.count = 2
        rq_queue.scheduled_job_registry.count = 3

        stats = delivery_queue.get_queue_stats()

        assert stats == {
            'mode': 'async', 'queue': 'notifications', 'waiting': 4, 'active': 1,
            'completed': 10, 'failed': 2, 'delayed': 3,
        }


class TestWorkerEntryPoints:

    def test_process_notification_task(self, delivery_queue, uow_factory):
        notification = add_notification(uow_factory)
        job = delivery_queue.queue_notification(notification.id)

        with patch.object(queue_module, 'get_worker_queue', return_value=delivery_queue):
            result = process_notification_task(job.to_dict())

        assert result['success'] is True
        assert result['message_id'].startswith('fake-')

    def test_report_job_failure_marks_failed(self):
        worker_queue = Mock()
        rq_job = Mock(args=[{'notification_id': 'abc', 'attempt': 1}])

        with patch.object(queue_module, 'get_worker_queue', return_value=worker_queue):
            report_job_failure(rq_job, None, RuntimeError, RuntimeError("worker crashed"), None)

        worker_queue.handle_failed_job.assert_called_once_with('abc', reason="RuntimeError: worker crashed")

    def test_report_job_failure_ignores_provider_errors(self):
        worker_queue = Mock()
        rq_job = Mock(args=[{'notification_id': 'abc', 'attempt': 1}])
        error = TransientProviderError('abc', 1, 'nope')

        with patch.object(queue_module, 'get_worker_queue', return_value=worker_queue):
            report_job_failure(rq_job, None, TransientProviderError, error, None)

        worker_queue.handle_failed_job.assert_not_called()
