"""Import file and job models."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum

from catnat_app.core.clock import utc_now
from catnat_app.models.store import StoreData


class JobStatus(str, Enum):
    """Import job status. completed and failed are terminal."""

    queued = "queued"
    processing = "processing"
    completed = "completed"
    failed = "failed"


TERMINAL_JOB_STATUSES = frozenset({JobStatus.completed, JobStatus.failed})


class UserRole(str, Enum):
    """Roles presented by the authentication layer."""

    admin = "admin"
    broker = "broker"
    store_manager = "store_manager"


class ImportStatus(str, Enum):
    pending = "pending"
    processing = "processing"
    completed = "completed"
    failed = "failed"


@dataclass(frozen=True)
class ImportRow(StoreData):
    """Typed roster row; row is the 1-based line number in the source file."""

    row: int = 0


@dataclass(frozen=True)
class ImportRowError:
    """Row and field addressable import problem. Row 0 means file level."""

    row: int
    field: str
    value: str
    message: str


@dataclass
class MappingResult:
    rows: list[ImportRow] = field(default_factory=list)
    errors: list[ImportRowError] = field(default_factory=list)


@dataclass
class ValidationResult:
    is_valid: bool
    errors: list[ImportRowError] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass
class FileImport:
    """Summary of one processed file."""

    import_id: str
    filename: str
    uploaded_by: str
    status: ImportStatus = ImportStatus.processing
    total_records: int = 0
    processed_records: int = 0
    error_records: int = 0
    errors: list[ImportRowError] = field(default_factory=list)
    uploaded_at: datetime = field(default_factory=utc_now)
    completed_at: datetime | None = None


@dataclass
class ProcessingResult:
    import_record: FileImport
    rows: list[ImportRow]
    validation: ValidationResult


@dataclass
class ImportJob:
    """Content-free view of an import job."""

    job_id: str
    filename: str
    uploaded_by: str
    status: JobStatus = JobStatus.queued
    progress: int = 0
    result: ProcessingResult | None = None
    created_at: datetime = field(default_factory=utc_now)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_JOB_STATUSES


@dataclass
class QueuedJob:
    """Internal job record holding the raw content until it is discarded."""

    job: ImportJob
    content: str | None = None
    sequence: int = 0

    def view(self) -> ImportJob:
        """Return a detached copy without content."""
        return replace(self.job)
