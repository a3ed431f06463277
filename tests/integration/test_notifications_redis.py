#!/usr/bin/env python3
"""
Integration Test: Delivery Queue with Real Redis

Verifies the full queue flow against a real Redis: enqueue, processing in
an RQ worker, delayed retries, cancellation and the sync-mode fallback.
The database is in-memory SQLite and channel senders are fakes.

Usage:
    # With automatic Docker containers:
    uv run python -m pytest tests/integration/test_notifications_redis.py -v

    # Or with existing Redis:
    REDIS_URL=redis://localhost:6379/0 \
    uv run python -m pytest tests/integration/test_notifications_redis.py -v

Requirements:
    - Docker running, or REDIS_URL pointing at a disposable Redis
"""

import os
import shutil
import unittest
from unittest.mock import patch

import pytest
from redis import Redis
from rq import Queue, SimpleWorker
from rq.job import Job

from core.config_loader import AppConfig, QueueConfig
from database.models import NotificationChannel, NotificationStatus
from notification.queue import DeliveryQueue, job_id_for
from notification.service import NotificationOrchestrator
from notification.templates import TemplateEngine
from tests import create_user, make_fake_registry, make_session_factory, make_uow_factory
from tests.conftest_docker import redis_container

USE_DOCKER = os.environ.get('USE_DOCKER_CONTAINERS', '1') == '1'
REDIS_URL = os.environ.get('REDIS_URL')
QUEUE_NAME = 'notifications-test'
FAILING_EMAIL = "broken@example.com"

# Keep tests off db 0 of a shared Redis
if REDIS_URL and REDIS_URL.endswith('/0'):
    REDIS_URL = REDIS_URL[:-2] + '/1'

USE_EXTERNAL_REDIS = bool(REDIS_URL)
RUN_TESTS = USE_EXTERNAL_REDIS or (USE_DOCKER and shutil.which('docker') is not None)


@pytest.mark.redis
@unittest.skipIf(not RUN_TESTS, "Docker not available and REDIS_URL not set")
class TestDeliveryQueueWithRedis(unittest.TestCase):

    @classmethod
    def setUpClass(cls):
        if USE_EXTERNAL_REDIS:
            cls.redis_url = REDIS_URL
        else:
            cls._container_ctx = redis_container()
            try:
                cls.container = cls._container_ctx.__enter__()
            except RuntimeError as e:
                raise unittest.SkipTest(f"Redis container unavailable: {e}")
            cls.redis_url = cls.container.redis_url

        cls.redis_conn = Redis.from_url(cls.redis_url)
        try:
            cls.redis_conn.ping()
        except Exception as e:
            raise unittest.SkipTest(f"Redis connection failed: {e}")

        cls.queue = Queue(QUEUE_NAME, connection=cls.redis_conn)

    @classmethod
    def tearDownClass(cls):
        if hasattr(cls, 'queue'):
            cls._clear_queue()
            cls.redis_conn.close()
        if not USE_EXTERNAL_REDIS and hasattr(cls, 'container'):
            cls._container_ctx.__exit__(None, None, None)

    @classmethod
    def _clear_queue(cls):
        cls.queue.empty()
        for registry in (
            cls.queue.scheduled_job_registry,
            cls.queue.failed_job_registry,
            cls.queue.finished_job_registry,
        ):
            for job_id in registry.get_job_ids():
                registry.remove(job_id, delete_job=True)

    def setUp(self):
        self._clear_queue()
        session_factory = make_session_factory()
        self.session_factory = session_factory
        self.uow_factory = make_uow_factory(session_factory)
        self.registry = make_fake_registry(failing_recipients=[FAILING_EMAIL])
        self.delivery_queue = self.build_queue()
        self.orchestrator = NotificationOrchestrator(
            self.delivery_queue, TemplateEngine(self.uow_factory), self.uow_factory
        )

        # Worker processes pick the DeliveryQueue up through this module global
        patcher = patch('notification.queue._worker_queue', self.delivery_queue)
        patcher.start()
        self.addCleanup(patcher.stop)

    def build_queue(self, backoff_base_seconds=60):
        return DeliveryQueue(
            self.registry,
            self.uow_factory,
            queue=self.queue,
            redis_conn=self.redis_conn,
            backoff_base_seconds=backoff_base_seconds,
        )

    def run_worker(self):
        # SimpleWorker runs jobs in this process, so the patched queue and
        # the in-memory database are shared with the test
        SimpleWorker([self.queue], connection=self.redis_conn).work(burst=True)

    def test_send_is_processed_by_worker(self):
        user = create_user(self.session_factory)

        notification = self.orchestrator.send(user.id, NotificationChannel.EMAIL, "Hello", "Body")

        self.assertEqual(notification.status, NotificationStatus.QUEUED)
        job_id = job_id_for(notification.id, 1)
        self.assertIn(job_id, self.queue.job_ids)

        self.run_worker()

        stored = self.orchestrator.find_by_id(notification.id)
        self.assertEqual(stored.status, NotificationStatus.SENT)
        self.assertEqual(stored.attempts, 1)
        self.assertEqual(Job.fetch(job_id, connection=self.redis_conn).get_status(), 'finished')

    def test_failed_attempt_schedules_delayed_retry(self):
        user = create_user(self.session_factory, email=FAILING_EMAIL)

        notification = self.orchestrator.send(user.id, NotificationChannel.EMAIL, "Hello", "Body")
        self.run_worker()

        stored = self.orchestrator.find_by_id(notification.id)
        self.assertEqual(stored.status, NotificationStatus.QUEUED)
        self.assertEqual(stored.attempts, 1)
        self.assertIn(job_id_for(notification.id, 2), self.queue.scheduled_job_registry.get_job_ids())
        self.assertIn(job_id_for(notification.id, 1), self.queue.failed_job_registry.get_job_ids())

    def test_attempts_are_exhausted(self):
        self.delivery_queue = self.build_queue(backoff_base_seconds=0)
        self.orchestrator.delivery_queue = self.delivery_queue
        user = create_user(self.session_factory, email=FAILING_EMAIL)

        with patch('notification.queue._worker_queue', self.delivery_queue):
            notification = self.orchestrator.send(user.id, NotificationChannel.EMAIL, "Hello", "Body")
            self.run_worker()

        stored = self.orchestrator.find_by_id(notification.id)
        self.assertEqual(stored.status, NotificationStatus.FAILED)
        self.assertEqual(stored.attempts, 3)
        self.assertEqual(len(self.registry.get_sender(NotificationChannel.EMAIL).sent), 3)

    def test_cancel_removes_scheduled_job(self):
        user = create_user(self.session_factory, email=FAILING_EMAIL)
        notification = self.orchestrator.send(user.id, NotificationChannel.EMAIL, "Hello", "Body")
        self.run_worker()

        cancelled = self.orchestrator.cancel(notification.id)

        self.assertEqual(cancelled.status, NotificationStatus.CANCELLED)
        self.assertEqual(self.queue.scheduled_job_registry.get_job_ids(), [])

    def test_queue_stats(self):
        user = create_user(self.session_factory)
        self.orchestrator.send(user.id, NotificationChannel.IN_APP, "Hello", "Body")

        stats = self.delivery_queue.get_queue_stats()

        self.assertEqual(stats['mode'], 'async')
        self.assertEqual(stats['queue'], QUEUE_NAME)
        self.assertEqual(stats['waiting'], 1)

    def test_unreachable_redis_falls_back_to_sync_mode(self):
        config = AppConfig(queue=QueueConfig(redis_url='redis://invalid-host:6379/9'))

        fallback = DeliveryQueue.from_config(config, registry=self.registry, uow_factory=self.uow_factory)

        self.assertTrue(fallback.sync_mode)
        self.assertEqual(fallback.get_queue_stats()['mode'], 'sync')


if __name__ == '__main__':
    unittest.main(verbosity=2)
