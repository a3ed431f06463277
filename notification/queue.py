"""
Delivery Queue

Schedules, dispatches and retries notification deliveries.

Each delivery attempt is one job {notification_id, attempt}. When an
attempt fails and attempts remain, the next attempt is enqueued with a
delay of backoff_base_seconds * 2^(attempt-1) (60s, 120s with defaults).
The next attempt is only enqueued after the previous one has concluded.

Backends:
- Redis + RQ: jobs run in `notification.worker`; delayed jobs use
  `enqueue_in`, which needs a worker started with the scheduler.
- Sync mode (no Redis): jobs run inline on the calling thread and
  delays are not honoured.
"""

import contextlib
import logging
import threading
from collections import defaultdict
from dataclasses import asdict
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional, Union

from redis import Redis
from rq import Queue
from rq.exceptions import NoSuchJobError
from rq.job import Job

from core.config_loader import AppConfig, load_config
from core.exceptions import (
    NotificationNotFound,
    NotificationValidationError,
    TransientProviderError,
)
from core.utils import as_uuid, ensure_utc, utcnow
from database.models import Notification, NotificationStatus
from database.uow import notification_uow
from notification.channels import ChannelRegistry
from notification.schemas import NotificationJob, NotificationPayload, SendResult

logger = logging.getLogger(__name__)

JOB_ID_PREFIX = "notification-"

# Process-local locks, used when no Redis connection is available
_local_locks: Dict[str, threading.Lock] = defaultdict(threading.Lock)
_local_locks_guard = threading.Lock()


def job_id_for(notification_id, attempt: int) -> str:
    return f"{JOB_ID_PREFIX}{notification_id}-attempt-{attempt}"


class DeliveryQueue:
    """
    Moves notifications from QUEUED to SENT (or FAILED) through a channel sender.

    Args:
        registry: Channel senders keyed by NotificationChannel
        uow_factory: Callable returning a unit-of-work context manager
        queue: RQ queue; None runs jobs inline (sync mode)
        redis_conn: Redis connection used for locks and job lookups
        max_attempts: Attempt cap for new notifications
        backoff_base_seconds: Delay after the first failed attempt
        clock: Returns the current UTC time
    """

    def __init__(
        self,
        registry: ChannelRegistry,
        uow_factory: Callable = notification_uow,
        queue: Optional[Queue] = None,
        redis_conn: Optional[Redis] = None,
        max_attempts: int = 3,
        backoff_base_seconds: int = 60,
        job_timeout: Union[str, int] = '5m',
        result_ttl: int = 86400,
        failure_ttl: int = 7 * 86400,
        lock_timeout_seconds: int = 300,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.registry = registry
        self.uow_factory = uow_factory
        self.queue = queue
        self.redis_conn = redis_conn
        self.max_attempts = max_attempts
        self.backoff_base_seconds = backoff_base_seconds
        self.job_timeout = job_timeout
        self.result_ttl = result_ttl
        self.failure_ttl = failure_ttl
        self.lock_timeout_seconds = lock_timeout_seconds
        self.clock = clock

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        registry: Optional[ChannelRegistry] = None,
        uow_factory: Callable = notification_uow,
    ) -> "DeliveryQueue":
        queue_config = config.queue
        registry = registry or ChannelRegistry.from_config(config.channels)

        queue = None
        redis_conn = None
        if not queue_config.use_async_queue:
            # Explicitly disabled via config - force sync mode
            logger.info("Async queue disabled via config. Using sync mode.")
        else:
            try:
                redis_conn = Redis.from_url(queue_config.redis_url)
                redis_conn.ping()
                queue = Queue(queue_config.queue_name, connection=redis_conn)
                logger.info(f"Delivery queue connected to Redis (queue '{queue_config.queue_name}')")
            except Exception as e:
                logger.error(f"Redis connection failed: {e}. Falling back to sync mode.")
                redis_conn = None
                queue = None

        return cls(
            registry=registry,
            uow_factory=uow_factory,
            queue=queue,
            redis_conn=redis_conn,
            max_attempts=queue_config.max_attempts,
            backoff_base_seconds=queue_config.backoff_base_seconds,
            job_timeout=queue_config.job_timeout,
            result_ttl=queue_config.result_ttl,
            failure_ttl=queue_config.failure_ttl,
            lock_timeout_seconds=queue_config.lock_timeout_seconds,
        )

    @property
    def sync_mode(self) -> bool:
        return self.queue is None

    def backoff_delay(self, failed_attempt: int) -> int:
        """Seconds to wait before retrying after attempt number `failed_attempt` failed."""
        return self.backoff_base_seconds * (2 ** (failed_attempt - 1))

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def queue_notification(self, notification_id, delay_seconds: float = 0) -> NotificationJob:
        """
        Mark the notification QUEUED and enqueue its next attempt.

        The attempt number continues from the record (attempts + 1), so a
        retried notification never exceeds max_attempts.
        """
        delay_seconds = max(0.0, float(delay_seconds))
        now = self.clock()

        with self.uow_factory() as uow:
            notification = self._get(uow, notification_id)
            if (notification.attempts or 0) >= notification.max_attempts:
                raise NotificationValidationError(
                    f"Notification {notification_id} has no attempts left "
                    f"({notification.attempts}/{notification.max_attempts})"
                )
            if notification.status != NotificationStatus.QUEUED:
                notification.transition_to(NotificationStatus.QUEUED)
            if delay_seconds > 0:
                notification.scheduled_for = now + timedelta(seconds=delay_seconds)

            job = NotificationJob(
                notification_id=notification.id,
                attempt=(notification.attempts or 0) + 1,
                next_run_at=now + timedelta(seconds=delay_seconds),
            )

        logger.info(f"Queued notification {job.notification_id} (attempt {job.attempt}, delay {delay_seconds:.0f}s)")
        self._dispatch(job, delay_seconds)
        return job

    def schedule_notification(self, notification_id, when: datetime) -> NotificationJob:
        """Queue for delivery at `when`; a time in the past means now."""
        delay = (ensure_utc(when) - self.clock()).total_seconds()
        return self.queue_notification(notification_id, delay_seconds=max(0.0, delay))

    def _dispatch(self, job: NotificationJob, delay_seconds: float) -> None:
        if self.sync_mode:
            if delay_seconds > 0:
                logger.warning(
                    f"No queue backend; delivering notification {job.notification_id} now "
                    f"instead of in {delay_seconds:.0f}s"
                )
            self.run_job(job.to_dict())
            return

        options = dict(
            job_id=job_id_for(job.notification_id, job.attempt),
            job_timeout=self.job_timeout,
            result_ttl=self.result_ttl,
            failure_ttl=self.failure_ttl,
            on_failure=report_job_failure,
            description=f"notification {job.notification_id} attempt {job.attempt}",
        )
        if delay_seconds > 0:
            self.queue.enqueue_in(timedelta(seconds=delay_seconds), process_notification_task, job.to_dict(), **options)
        else:
            self.queue.enqueue(process_notification_task, job.to_dict(), **options)

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    @contextlib.contextmanager
    def _lock(self, notification_id):
        """Mutual exclusion per notification while an attempt is in flight."""
        if self.redis_conn is not None:
            lock = self.redis_conn.lock(
                f"notification:lock:{notification_id}",
                timeout=self.lock_timeout_seconds,
                blocking_timeout=self.lock_timeout_seconds,
            )
            with lock:
                yield
            return

        with _local_locks_guard:
            local_lock = _local_locks[str(notification_id)]
        with local_lock:
            yield

    def _get(self, uow, notification_id) -> Notification:
        notification = uow.notifications.get_by_id(as_uuid(notification_id))
        if notification is None:
            raise NotificationNotFound(f"Notification {notification_id} not found")
        return notification

    def process_notification(self, job: NotificationJob) -> Optional[SendResult]:
        """
        Run one delivery attempt.

        Returns:
            SendResult on success, None when the job was skipped

        Raises:
            NotificationNotFound: the record no longer exists (not retryable)
            TransientProviderError: the provider call failed
        """
        with self._lock(job.notification_id):
            with self.uow_factory() as uow:
                notification = self._get(uow, job.notification_id)

                redelivered = (
                    notification.status == NotificationStatus.SENDING
                    and notification.attempts == job.attempt
                )
                if notification.status != NotificationStatus.QUEUED and not redelivered:
                    logger.info(
                        f"Skipping job for notification {notification.id} "
                        f"(status {notification.status.value}, attempt {job.attempt})"
                    )
                    return None

                if not redelivered:
                    notification.transition_to(NotificationStatus.SENDING)
                    notification.attempts = job.attempt

                channel = notification.channel
                payload = NotificationPayload(
                    recipient=notification.recipient,
                    subject=notification.subject,
                    body=notification.body,
                    body_html=notification.body_html or notification.body,
                    metadata={
                        'notification_id': str(notification.id),
                        'category': notification.category.value,
                        'priority': notification.priority.value,
                        'action_url': notification.action_url,
                    },
                )

            sender = self.registry.get_sender(channel)
            result = sender.send(payload)

            with self.uow_factory() as uow:
                notification = self._get(uow, job.notification_id)
                if result.success:
                    notification.transition_to(NotificationStatus.SENT)
                    notification.sent_at = self.clock()
                    notification.error_message = None
                    notification.error_details = None
                    notification.provider_metadata = {
                        **(notification.provider_metadata or {}),
                        **result.metadata,
                        'message_id': result.message_id,
                        'provider_id': result.provider_id,
                    }
                else:
                    notification.error_message = result.error
                    notification.error_details = {
                        'attempt': job.attempt,
                        'timestamp': self.clock().isoformat(),
                        'provider_metadata': result.metadata,
                    }

        if not result.success:
            raise TransientProviderError(job.notification_id, job.attempt, result.error or "unknown error")

        logger.info(f"Notification {job.notification_id} sent via {channel.value} (attempt {job.attempt})")
        return result

    def run_job(self, job_data: Dict[str, Any], reraise: bool = False) -> Optional[SendResult]:
        """
        Process one job and schedule what comes next.

        With reraise=True (inside an RQ worker) a failed attempt is re-raised
        after the retry has been scheduled, so RQ records the job as failed.
        """
        job = NotificationJob.from_dict(job_data)
        try:
            return self.process_notification(job)
        except NotificationNotFound as e:
            logger.error(f"Dropping job: {e}")
            return None
        except TransientProviderError as e:
            logger.warning(str(e))
            self._retry_or_fail(job, str(e))
            if reraise:
                raise
            return None

    def _retry_or_fail(self, job: NotificationJob, error: str) -> None:
        next_job = None
        with self.uow_factory() as uow:
            notification = self._get(uow, job.notification_id)
            if notification.status != NotificationStatus.SENDING:
                return

            notification.transition_to(NotificationStatus.FAILED)
            if notification.can_retry():
                delay = self.backoff_delay(job.attempt)
                notification.transition_to(NotificationStatus.QUEUED)
                next_job = NotificationJob(
                    notification_id=notification.id,
                    attempt=job.attempt + 1,
                    next_run_at=self.clock() + timedelta(seconds=delay),
                )
            max_attempts = notification.max_attempts

        if next_job is None:
            logger.error(
                f"Notification {job.notification_id} failed permanently after "
                f"{job.attempt}/{max_attempts} attempts: {error}"
            )
            return

        logger.info(
            f"Retrying notification {job.notification_id} in {delay}s "
            f"(attempt {next_job.attempt}/{max_attempts})"
        )
        self._dispatch(next_job, delay)

    def handle_failed_job(self, notification_id, reason: Optional[str] = None) -> None:
        """Force FAILED after a job died outside normal processing (timeout, crash)."""
        with self.uow_factory() as uow:
            notification = uow.notifications.get_by_id(as_uuid(notification_id))
            if notification is None:
                return
            if not notification.can_transition_to(NotificationStatus.FAILED):
                logger.info(
                    f"Not marking notification {notification_id} failed "
                    f"(status {notification.status.value})"
                )
                return
            notification.transition_to(NotificationStatus.FAILED)
            if reason:
                notification.error_message = reason

        logger.error(f"Notification {notification_id} marked failed: {reason}")

    # ------------------------------------------------------------------
    # Operator actions
    # ------------------------------------------------------------------

    def retry_notification(self, notification_id) -> NotificationJob:
        with self.uow_factory() as uow:
            notification = self._get(uow, notification_id)
            if not notification.can_retry():
                raise NotificationValidationError(
                    f"Notification {notification_id} cannot be retried "
                    f"(status {notification.status.value}, {notification.attempts}/{notification.max_attempts} attempts)"
                )
            notification.transition_to(NotificationStatus.PENDING)
            notification.error_message = None
            notification.error_details = None

        logger.info(f"Manual retry requested for notification {notification_id}")
        return self.queue_notification(notification_id)

    def cancel_notification(self, notification_id) -> Notification:
        """Remove any waiting job and mark the notification CANCELLED."""
        removed = self._remove_jobs(notification_id)

        with self.uow_factory() as uow:
            notification = self._get(uow, notification_id)
            if notification.status != NotificationStatus.CANCELLED:
                notification.transition_to(NotificationStatus.CANCELLED)

        logger.info(f"Cancelled notification {notification_id} ({removed} queued job(s) removed)")
        return notification

    def _remove_jobs(self, notification_id) -> int:
        if self.sync_mode:
            return 0

        prefix = f"{JOB_ID_PREFIX}{notification_id}-"
        job_ids = set(self.queue.job_ids)
        job_ids.update(self.queue.scheduled_job_registry.get_job_ids())
        job_ids.update(self.queue.started_job_registry.get_job_ids())

        removed = 0
        for job_id in sorted(j for j in job_ids if j.startswith(prefix)):
            try:
                Job.fetch(job_id, connection=self.redis_conn).delete()
                removed += 1
            except NoSuchJobError:
                continue
        return removed

    def get_queue_stats(self) -> Dict[str, Any]:
        if self.sync_mode:
            return {'mode': 'sync', 'waiting': 0, 'active': 0, 'completed': 0, 'failed': 0, 'delayed': 0}

        return {
            'mode': 'async',
            'queue': self.queue.name,
            'waiting': self.queue.count,
            'active': self.queue.started_job_registry.count,
            'completed': self.queue.finished_job_registry.count,
            'failed': self.queue.failed_job_registry.count,
            'delayed': self.queue.scheduled_job_registry.count,
        }

    def clean_old_jobs(self, days: int = 7) -> int:
        """Prune finished and failed job records older than `days`. Returns how many were removed."""
        if self.sync_mode:
            return 0

        cutoff = self.clock() - timedelta(days=days)
        removed = 0
        for registry in (self.queue.finished_job_registry, self.queue.failed_job_registry):
            for job_id in registry.get_job_ids():
                try:
                    job = Job.fetch(job_id, connection=self.redis_conn)
                except NoSuchJobError:
                    registry.remove(job_id)
                    removed += 1
                    continue

                ended_at = ensure_utc(job.ended_at)
                if ended_at is not None and ended_at < cutoff:
                    registry.remove(job, delete_job=True)
                    removed += 1

        logger.info(f"Cleaned {removed} jobs older than {days} days")
        return removed


# ----------------------------------------------------------------------
# RQ entry points
# ----------------------------------------------------------------------

_worker_queue: Optional[DeliveryQueue] = None


def get_worker_queue() -> DeliveryQueue:
    """DeliveryQueue for this worker process, built once from config."""
    global _worker_queue
    if _worker_queue is None:
        _worker_queue = DeliveryQueue.from_config(load_config())
    return _worker_queue


def process_notification_task(job_data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Worker task for RQ.

    This function is called by RQ workers to process queued notifications.
    """
    result = get_worker_queue().run_job(job_data, reraise=True)
    return asdict(result) if result is not None else None


def report_job_failure(job, connection, exc_type, exc_value, traceback) -> None:
    """RQ failure callback: mark the notification failed unless the retry path already handled it."""
    if exc_type is not None and issubclass(exc_type, TransientProviderError):
        return
    notification_id = (job.args[0] or {}).get('notification_id') if job.args else None
    if notification_id:
        get_worker_queue().handle_failed_job(notification_id, reason=f"{exc_type.__name__}: {exc_value}")
