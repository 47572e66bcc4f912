"""Tests for the import job queue."""

from __future__ import annotations

import threading
from decimal import Decimal

import pytest

from catnat_app.core.config import build_config
from catnat_app.core.container import ServiceContainer, build_container
from catnat_app.core.errors import CapacityError, ForbiddenError
from catnat_app.models.import_job import JobStatus, UserRole
from catnat_app.models.policy import PolicyStatus
from catnat_app.models.store import StoreStatus
from catnat_app.services.import_queue import ImportQueue

ROSTER = "codice;ragione sociale;indirizzo;mq\nS1;Bottega;Via Roma 1;100\nS2;Forno;Via Po 2;250\n"


def build(**queue_settings) -> ServiceContainer:
    settings = {"content_clear_delay_seconds": 0}
    settings.update(queue_settings)
    container = build_container(build_config({"import_queue": settings}))
    container.init_session("session-1")
    return container


def run_import(queue: ImportQueue, content: str, role=UserRole.admin):
    job = queue.enqueue("roster.csv", content, "alice", role)
    assert queue.wait_until_idle(timeout=5)
    return queue.get_job(job.job_id)


def test_import_creates_active_stores_with_policies() -> None:
    container = build()
    queue = container.import_queue

    job = run_import(queue, ROSTER)

    assert job.status == JobStatus.completed
    assert job.progress == 100
    assert job.error is None
    assert job.completed_at is not None
    assert {store.store_code for store in queue.get_stores()} == {"S1", "S2"}
    assert all(store.status == StoreStatus.active for store in queue.get_stores())
    policy = container.policy_service.get_active_policy("S2")
    assert policy.premium == Decimal("625.00")
    assert container.policy_service.get_portfolio_summary().active_policies == 2


def test_subscribers_see_every_step_in_order() -> None:
    queue = build().import_queue
    seen = []
    queue.subscribe(lambda job: seen.append((job.status, job.progress)))

    run_import(queue, ROSTER)

    assert seen == [
        (JobStatus.queued, 0),
        (JobStatus.processing, 10),
        (JobStatus.processing, 50),
        (JobStatus.processing, 90),
        (JobStatus.completed, 100),
    ]


def test_invalid_file_fails_without_touching_stores() -> None:
    container = build()
    queue = container.import_queue

    job = run_import(queue, "codice;mq\nS1;100\nS2;-5\nS1;200\n")

    assert job.status == JobStatus.failed
    assert job.progress == 100
    assert "2 errors" in job.error
    assert [error.row for error in job.result.validation.errors] == [3, 4]
    assert queue.get_stores() == []
    assert container.policy_service.get_all_policies() == []


def test_reimport_deactivates_missing_stores_and_cancels_policies() -> None:
    container = build()
    queue = container.import_queue
    run_import(queue, ROSTER)

    job = run_import(queue, "codice;ragione sociale;indirizzo;mq\nS1;Bottega;Via Roma 1;400\n")

    assert job.status == JobStatus.completed
    assert queue.get_store("S2").status == StoreStatus.inactive
    assert container.policy_service.get_active_policy("S2") is None
    s2_policies = container.policy_service.get_store_policies("S2")
    assert [policy.status for policy in s2_policies] == [PolicyStatus.cancelled]
    s1_policies = container.policy_service.get_store_policies("S1")
    assert len(s1_policies) == 1
    assert s1_policies[0].premium == Decimal("1000.00")


def test_unauthorized_role_is_rejected_before_a_job_exists() -> None:
    queue = build().import_queue

    with pytest.raises(ForbiddenError):
        queue.enqueue("roster.csv", ROSTER, "mallory", UserRole.store_manager)
    assert queue.get_all_jobs() == []

    queue.enqueue("roster.csv", ROSTER, "bruno", "broker")
    assert queue.wait_until_idle(timeout=5)


def test_job_limit_per_session() -> None:
    queue = build(max_jobs_per_session=1).import_queue
    run_import(queue, ROSTER)

    with pytest.raises(CapacityError):
        queue.enqueue("roster.csv", ROSTER, "alice", UserRole.admin)
    assert len(queue.get_all_jobs()) == 1


def test_content_is_never_exposed_and_is_discarded() -> None:
    queue = build().import_queue
    seen = []
    queue.subscribe(seen.append)

    job = run_import(queue, ROSTER)

    assert not hasattr(job, "content")
    assert all(not hasattr(update, "content") for update in seen)
    assert queue._jobs[job.job_id].content is None


def test_jobs_run_one_at_a_time_in_fifo_order() -> None:
    queue = build().import_queue
    started = []
    running = []
    overlap = threading.Event()

    def watch(job) -> None:
        if job.status == JobStatus.processing and job.progress == 10:
            started.append(job.job_id)
            running.append(job.job_id)
            if len(running) > 1:
                overlap.set()
        elif job.is_terminal and job.job_id in running:
            running.remove(job.job_id)

    queue.subscribe(watch)
    ids = [queue.enqueue(f"roster{n}.csv", ROSTER, "alice", "admin").job_id for n in range(3)]
    assert queue.wait_until_idle(timeout=5)

    assert started == ids
    assert not overlap.is_set()
    assert [job.job_id for job in queue.get_all_jobs()] == list(reversed(ids))


def test_delete_job() -> None:
    queue = build().import_queue
    job = run_import(queue, ROSTER)

    with pytest.raises(ForbiddenError):
        queue.delete_job(job.job_id, UserRole.store_manager)
    assert queue.delete_job(job.job_id, UserRole.admin) is True
    assert queue.get_job(job.job_id) is None
    assert queue.delete_job(job.job_id, UserRole.admin) is False


def test_unsubscribe_and_failing_subscriber() -> None:
    queue = build().import_queue
    seen = []

    def broken(job) -> None:
        raise RuntimeError("listener bug")

    queue.subscribe(broken)
    unsubscribe = queue.subscribe(seen.append)
    unsubscribe()

    job = run_import(queue, ROSTER)

    assert job.status == JobStatus.completed
    assert seen == []


def test_worker_crash_marks_job_failed_and_queue_continues() -> None:
    container = build()

    class ExplodingFileProcessor:
        def __init__(self):
            self.calls = 0

        def process_file(self, filename, content, uploaded_by):
            self.calls += 1
            if self.calls == 1:
                raise RuntimeError("disk on fire")
            return container.file_processor.process_file(filename, content, uploaded_by)

    queue = ImportQueue(
        ExplodingFileProcessor(),
        container.lifecycle_manager,
        container.policy_service,
        container.store_repo,
        container.config.import_queue,
    )
    first = queue.enqueue("a.csv", ROSTER, "alice", "admin")
    second = queue.enqueue("b.csv", ROSTER, "alice", "admin")
    assert queue.wait_until_idle(timeout=5)

    crashed = queue.get_job(first.job_id)
    assert crashed.status == JobStatus.failed
    assert crashed.error == "disk on fire"
    assert queue.get_job(second.job_id).status == JobStatus.completed


def test_new_session_wipes_jobs_and_entities() -> None:
    container = build()
    queue = container.import_queue
    run_import(queue, ROSTER)

    container.init_session("session-2")

    assert queue.session_id == "session-2"
    assert queue.get_all_jobs() == []
    assert queue.get_stores() == []
    assert container.policy_service.get_all_policies() == []
    assert container.lifecycle_manager.get_audit_log() == []


def test_cleanup_old_jobs_keeps_recent_ones() -> None:
    queue = build().import_queue
    run_import(queue, ROSTER)

    assert queue.cleanup_old_jobs(older_than_hours=1) == 0
    assert queue.cleanup_old_jobs(older_than_hours=-1) == 1
    assert queue.get_all_jobs() == []


EXPIRED_RATES = [
    {
        "coverage_type": "catnat",
        "rate_per_square_meter": "2.5",
        "minimum_premium": "500",
        "maximum_insured_sum": "10000000",
        "effective_from": "2020-01-01",
        "effective_to": "2020-12-31",
    }
]


def test_missing_rate_fails_job_before_any_store_is_written() -> None:
    container = build_container(
        build_config(
            {
                "pricing": {"rates": EXPIRED_RATES},
                "import_queue": {"content_clear_delay_seconds": 0},
            }
        )
    )
    container.init_session("session-1")
    queue = container.import_queue

    job = run_import(queue, "codice;mq\nS1;100\nS2;200\nS3;300\n")

    assert job.status == JobStatus.failed
    assert "No active pricing configuration" in job.error
    assert queue.get_stores() == []
    assert container.policy_service.get_all_policies() == []
    assert container.lifecycle_manager.get_audit_log() == []


def test_concurrent_enqueues_start_in_acceptance_order() -> None:
    queue = build().import_queue
    queued = []
    started = []

    def watch(job) -> None:
        if job.status == JobStatus.queued:
            queued.append(job.job_id)
        elif job.status == JobStatus.processing and job.progress == 10:
            started.append(job.job_id)

    queue.subscribe(watch)
    gate = threading.Barrier(6)

    def submit(n: int) -> None:
        gate.wait()
        queue.enqueue(f"roster{n}.csv", ROSTER, "alice", "admin")

    threads = [threading.Thread(target=submit, args=(n,)) for n in range(6)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    assert queue.wait_until_idle(timeout=10)

    assert len(started) == 6
    assert started == queued
    oldest_first = list(reversed(queue.get_all_jobs()))
    assert [job.job_id for job in oldest_first] == queued


class SessionClearingLifecycle:
    """Reconciles normally, then clears the session before anything is saved."""

    def __init__(self, inner):
        self.inner = inner
        self.queue = None

    def init_session(self, session_id):
        self.inner.init_session(session_id)

    def clear_session_data(self):
        self.inner.clear_session_data()

    def process_bulk_update(self, existing_stores, imported_rows, performed_by):
        outcome = self.inner.process_bulk_update(existing_stores, imported_rows, performed_by)
        self.queue.clear_session_data()
        return outcome


def test_session_cleared_during_reconciliation_writes_nothing() -> None:
    container = build()
    lifecycle = SessionClearingLifecycle(container.lifecycle_manager)
    queue = ImportQueue(
        container.file_processor,
        lifecycle,
        container.policy_service,
        container.store_repo,
        container.config.import_queue,
    )
    lifecycle.queue = queue

    job = queue.enqueue("roster.csv", ROSTER, "alice", "admin")
    assert queue.wait_until_idle(timeout=5)

    assert queue.get_job(job.job_id) is None
    assert queue.get_stores() == []
    assert container.policy_service.get_all_policies() == []
