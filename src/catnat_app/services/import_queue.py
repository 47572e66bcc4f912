"""Import job queue with a single background worker."""

from __future__ import annotations

import itertools
import logging
import threading
import uuid
from collections import deque
from datetime import timedelta
from typing import Callable

from catnat_app.core.clock import utc_now
from catnat_app.core.config import ImportQueueSettings
from catnat_app.core.errors import (
    CapacityError,
    ForbiddenError,
    JobStateError,
    NoActiveConfigError,
)
from catnat_app.models.import_job import ImportJob, ImportRow, JobStatus, QueuedJob, UserRole
from catnat_app.models.policy import CoverageType
from catnat_app.models.store import Store, StoreStatus
from catnat_app.repositories.store_repository import StoreRepository
from catnat_app.services.file_processor import FileProcessor
from catnat_app.services.lifecycle_manager import LifecycleManager
from catnat_app.services.policy_service import PolicyService

logger = logging.getLogger(__name__)

JobCallback = Callable[[ImportJob], None]

PROGRESS_STARTED = 10
PROGRESS_PARSED = 50
PROGRESS_APPLIED = 90
PROGRESS_DONE = 100

REASON_STORE_DEACTIVATED = "Store deactivated"


class _SessionChanged(Exception):
    """Raised inside the worker when the session was cleared mid-job."""


class ImportQueue:
    """Runs import jobs one at a time in FIFO order.

    enqueue() may be called from any thread. A single worker thread is
    started on demand and drains the wait list; the job map, the wait list
    and the processing flag are only touched under ``_lock``.
    """

    def __init__(
        self,
        file_processor: FileProcessor,
        lifecycle_manager: LifecycleManager,
        policy_service: PolicyService,
        store_repo: StoreRepository,
        settings: ImportQueueSettings,
        default_coverage_type: CoverageType = CoverageType.catnat,
    ):
        self._file_processor = file_processor
        self._lifecycle = lifecycle_manager
        self._policies = policy_service
        self._store_repo = store_repo
        self._settings = settings
        self._default_coverage_type = default_coverage_type

        self._lock = threading.RLock()
        self._idle = threading.Condition(self._lock)
        self._jobs: dict[str, QueuedJob] = {}
        self._queue: deque[str] = deque()
        self._processing = False
        self._generation = 0
        self._sequence = itertools.count(1)
        self._session_id: str | None = None

        self._subscribers: list[JobCallback] = []
        self._subscribers_lock = threading.Lock()
        self._publish_lock = threading.RLock()

    @property
    def session_id(self) -> str | None:
        return self._session_id

    def init_session(self, session_id: str) -> None:
        """Adopt a session; a different id wipes jobs, stores, policies and audit."""
        if self._session_id == session_id:
            return
        self.clear_session_data()
        self._session_id = session_id
        self._lifecycle.init_session(session_id)
        self._policies.init_session(session_id)
        logger.info("Import session %s started", session_id)

    def clear_session_data(self) -> None:
        """Drop every job and entity of the current session. Subscribers stay."""
        with self._lock:
            self._jobs.clear()
            self._queue.clear()
            self._generation += 1
            self._store_repo.purge_all()
            self._session_id = None
        self._lifecycle.clear_session_data()
        self._policies.clear_session_data()

    def _authorize(self, role: str | UserRole, action: str) -> None:
        role_name = role.value if isinstance(role, UserRole) else str(role)
        if role_name not in self._settings.authorized_roles:
            raise ForbiddenError(
                f"Access denied: only {', '.join(self._settings.authorized_roles)} "
                f"can {action}"
            )

    def enqueue(
        self,
        filename: str,
        content: str,
        uploaded_by: str,
        role: str | UserRole,
    ) -> ImportJob:
        """Accept an import job and start the worker if it is idle."""
        self._authorize(role, "import files")

        # Registering, queueing and announcing a job form one step so start
        # order always matches acceptance order.
        with self._publish_lock:
            with self._lock:
                self._prune_old_jobs()
                if len(self._jobs) >= self._settings.max_jobs_per_session:
                    raise CapacityError(
                        f"Session limit of {self._settings.max_jobs_per_session} jobs reached. "
                        "Wait for running jobs or delete old ones."
                    )
                now = utc_now()
                job = ImportJob(
                    job_id=f"JOB-{now:%Y%m%d%H%M%S}-{uuid.uuid4().hex[:8]}",
                    filename=filename,
                    uploaded_by=uploaded_by,
                    status=JobStatus.queued,
                    progress=0,
                    created_at=now,
                )
                record = QueuedJob(job=job, content=content, sequence=next(self._sequence))
                self._jobs[job.job_id] = record
                self._queue.append(job.job_id)
                start_worker = not self._processing
                self._processing = True
                view = record.view()

            logger.info("Queued import %s (%s) by %s", job.job_id, filename, uploaded_by)
            self._publish(view)

        if start_worker:
            threading.Thread(
                target=self._run_worker,
                name="import-queue-worker",
                daemon=True,
            ).start()
        return view

    def get_job(self, job_id: str) -> ImportJob | None:
        with self._lock:
            record = self._jobs.get(job_id)
            return record.view() if record else None

    def get_all_jobs(self) -> list[ImportJob]:
        """All jobs of the session without content, newest first."""
        with self._lock:
            records = sorted(
                self._jobs.values(),
                key=lambda record: (record.job.created_at, record.sequence),
                reverse=True,
            )
            return [record.view() for record in records]

    def delete_job(self, job_id: str, role: str | UserRole) -> bool:
        """Delete a job that is not processing. Returns False when unknown."""
        self._authorize(role, "delete import jobs")
        with self._lock:
            record = self._jobs.get(job_id)
            if record is None:
                return False
            if record.job.status == JobStatus.processing:
                raise JobStateError(f"Job {job_id} is processing and cannot be deleted")
            del self._jobs[job_id]
            if job_id in self._queue:
                self._queue.remove(job_id)
        logger.info("Deleted import job %s", job_id)
        return True

    def subscribe(self, callback: JobCallback) -> Callable[[], None]:
        """Register a job update callback and return its unsubscribe function."""
        with self._subscribers_lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._subscribers_lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def get_stores(self) -> list[Store]:
        return self._store_repo.list_stores()

    def get_store(self, store_code: str) -> Store | None:
        return self._store_repo.get(store_code)

    def cleanup_old_jobs(self, older_than_hours: int = 24) -> int:
        """Remove terminal jobs that completed before the cutoff."""
        cutoff = utc_now() - timedelta(hours=older_than_hours)
        with self._lock:
            doomed = [
                job_id
                for job_id, record in self._jobs.items()
                if record.job.is_terminal
                and record.job.completed_at is not None
                and record.job.completed_at < cutoff
            ]
            for job_id in doomed:
                del self._jobs[job_id]
        return len(doomed)

    def wait_until_idle(self, timeout: float | None = None) -> bool:
        """Block until the wait list is drained. Returns False on timeout."""
        with self._idle:
            return self._idle.wait_for(
                lambda: not self._processing and not self._queue,
                timeout,
            )

    def _prune_old_jobs(self) -> None:
        cutoff = utc_now() - timedelta(hours=self._settings.job_retention_hours)
        doomed = [
            job_id
            for job_id, record in self._jobs.items()
            if record.job.is_terminal and record.job.created_at < cutoff
        ]
        for job_id in doomed:
            del self._jobs[job_id]
        if doomed:
            logger.info("Pruned %d expired import jobs", len(doomed))

    def _run_worker(self) -> None:
        while True:
            with self._lock:
                if not self._queue:
                    self._processing = False
                    self._idle.notify_all()
                    return
                job_id = self._queue.popleft()
                record = self._jobs.get(job_id)
                generation = self._generation
            if record is not None:
                self._process_job(record, generation)

    def _process_job(self, record: QueuedJob, generation: int) -> None:
        job = record.job
        try:
            self._update(
                record,
                generation,
                status=JobStatus.processing,
                started_at=utc_now(),
                progress=PROGRESS_STARTED,
            )

            content = record.content
            if content is None:
                raise ValueError("File content is no longer available")

            result = self._file_processor.process_file(job.filename, content, job.uploaded_by)
            self._update(record, generation, progress=PROGRESS_PARSED)

            if result.validation.is_valid and result.rows:
                self._apply_import_changes(result.rows, job.uploaded_by, generation)
                self._update(record, generation, progress=PROGRESS_APPLIED)

            succeeded = result.validation.is_valid
            error = None
            if not succeeded:
                error = f"Validation failed with {len(result.validation.errors)} errors"
            self._update(
                record,
                generation,
                result=result,
                status=JobStatus.completed if succeeded else JobStatus.failed,
                progress=PROGRESS_DONE,
                completed_at=utc_now(),
                error=error,
            )
            if succeeded:
                logger.info("Import %s completed with %d rows", job.job_id, len(result.rows))
            else:
                logger.warning("Import %s failed: %s", job.job_id, error)
        except _SessionChanged:
            logger.warning("Session changed while import %s was running", job.job_id)
        except Exception as error:  # pylint: disable=broad-except
            # Worker boundary: one bad job must not stop the queue.
            logger.exception("Import %s crashed", job.job_id)
            with self._lock:
                job.status = JobStatus.failed
                job.error = str(error) or type(error).__name__
                job.completed_at = utc_now()
            if self._is_current(generation):
                self._publish(record.view())
        finally:
            self._schedule_clear_content(record)

    def _apply_import_changes(
        self,
        rows: list[ImportRow],
        performed_by: str,
        generation: int,
    ) -> None:
        self._ensure_current(generation)
        self._check_pricing(rows)

        outcome = self._lifecycle.process_bulk_update(
            self._store_repo.as_map(),
            rows,
            performed_by,
        )

        for store in outcome.created + outcome.updated:
            self._ensure_current(generation)
            self._store_repo.save(store)
            if store.status != StoreStatus.active:
                continue
            policy = self._policies.get_active_policy(store.store_code)
            self._ensure_current(generation)
            if policy is None:
                self._policies.create_policy(
                    store,
                    self._default_coverage_type,
                    performed_by=performed_by,
                )
            else:
                self._policies.update_policy_pricing(
                    policy.policy_id,
                    store,
                    performed_by=performed_by,
                )

        for store in outcome.deactivated:
            self._ensure_current(generation)
            self._store_repo.save(store)
            policy = self._policies.get_active_policy(store.store_code)
            if policy is not None:
                self._ensure_current(generation)
                self._policies.cancel_policy(
                    policy.policy_id,
                    REASON_STORE_DEACTIVATED,
                    performed_by=performed_by,
                )

    def _check_pricing(self, rows: list[ImportRow]) -> None:
        """Raise before any write when a row could not be priced."""
        now = utc_now()
        for row in rows:
            policy = self._policies.get_active_policy(row.store_code)
            if policy is None:
                coverage_type, as_of = self._default_coverage_type, now
            else:
                coverage_type, as_of = policy.coverage_type, policy.effective_from
            if not self._policies.can_price(coverage_type, as_of):
                raise NoActiveConfigError(
                    CoverageType(coverage_type).value,
                    as_of.date().isoformat(),
                )

    def _ensure_current(self, generation: int) -> None:
        if not self._is_current(generation):
            raise _SessionChanged()

    def _update(self, record: QueuedJob, generation: int, **changes) -> None:
        """Apply job field changes and publish the new state in order."""
        with self._lock:
            if generation != self._generation:
                raise _SessionChanged()
            for name, value in changes.items():
                setattr(record.job, name, value)
            view = record.view()
        self._publish(view)

    def _is_current(self, generation: int) -> bool:
        with self._lock:
            return generation == self._generation

    def _schedule_clear_content(self, record: QueuedJob) -> None:
        delay = self._settings.content_clear_delay_seconds
        if delay <= 0:
            self._clear_content(record)
            return
        timer = threading.Timer(delay, self._clear_content, args=(record,))
        timer.daemon = True
        timer.start()

    def _clear_content(self, record: QueuedJob) -> None:
        with self._lock:
            record.content = None

    def _publish(self, job: ImportJob) -> None:
        with self._subscribers_lock:
            subscribers = list(self._subscribers)
        with self._publish_lock:
            for callback in subscribers:
                try:
                    callback(job)
                except Exception:  # pylint: disable=broad-except
                    # Subscriber boundary: a broken listener must not stop the queue.
                    logger.exception("Import job subscriber failed for %s", job.job_id)
