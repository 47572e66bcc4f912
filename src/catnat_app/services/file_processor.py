"""Roster file parsing, column mapping and validation."""

from __future__ import annotations

import csv
import logging
import uuid

from catnat_app.core.clock import utc_now
from catnat_app.core.config import ValidationSettings, build_config
from catnat_app.core.errors import MalformedInputError
from catnat_app.core.validation import (
    parse_square_meters,
    validate_required_text,
    validate_upload,
)
from catnat_app.models.import_job import (
    FileImport,
    ImportRow,
    ImportRowError,
    ImportStatus,
    MappingResult,
    ProcessingResult,
    ValidationResult,
)

logger = logging.getLogger(__name__)

STORE_CODE = "store_code"
SQUARE_METERS = "square_meters"
BUSINESS_NAME = "business_name"
ADDRESS = "address"

# Resolution order matters: a header claimed by an earlier field is not reused.
# Within a field, keywords are tried in order and the first matching header wins.
COLUMN_KEYWORDS: dict[str, tuple[str, ...]] = {
    STORE_CODE: ("codice", "store_code", "code", "id"),
    SQUARE_METERS: ("metri", "mq", "square", "superficie"),
    BUSINESS_NAME: ("ragione", "nome", "name", "business"),
    ADDRESS: ("indirizzo", "address", "ubicazione"),
}
REQUIRED_COLUMNS = (STORE_CODE, SQUARE_METERS)


def detect_delimiter(header_line: str) -> str:
    """Pick ';' or ',' from the header line."""
    return ";" if header_line.count(";") > header_line.count(",") else ","


def resolve_columns(headers: list[str]) -> dict[str, str | None]:
    """Map each logical field to a source header using COLUMN_KEYWORDS."""
    claimed: set[str] = set()
    resolved: dict[str, str | None] = {}
    for field_name, keywords in COLUMN_KEYWORDS.items():
        match = None
        for keyword in keywords:
            match = next(
                (
                    header
                    for header in headers
                    if header not in claimed and keyword in header.lower()
                ),
                None,
            )
            if match is not None:
                break
        resolved[field_name] = match
        if match is not None:
            claimed.add(match)
    return resolved


class FileProcessor:
    """Turns raw roster text into validated import rows."""

    def __init__(self, settings: ValidationSettings | None = None):
        self._settings = settings or build_config().validation

    def check_upload(self, filename: str, size: int) -> str:
        """Apply the extension allow-list and size cap before processing."""
        return validate_upload(
            filename,
            size,
            self._settings.allowed_extensions,
            self._settings.max_upload_bytes,
        )

    @staticmethod
    def parse_csv(content: str) -> list[dict[str, str]]:
        """Parse delimited text into header-keyed rows, skipping blank lines."""
        lines = [line for line in content.lstrip("\ufeff").splitlines() if line.strip()]
        if len(lines) < 2:
            raise MalformedInputError("CSV must have a header row and at least one data row.")

        reader = csv.reader(lines, delimiter=detect_delimiter(lines[0]), skipinitialspace=True)
        headers = [header.strip() for header in next(reader)]

        rows: list[dict[str, str]] = []
        for values in reader:
            row: dict[str, str] = {}
            for index, header in enumerate(headers):
                row[header] = values[index].strip() if index < len(values) else ""
            rows.append(row)
        return rows

    @staticmethod
    def map_rows(raw_rows: list[dict[str, str]]) -> MappingResult:
        """Map raw rows to typed rows, reporting every row that cannot be used."""
        result = MappingResult()
        if not raw_rows:
            return result

        columns = resolve_columns(list(raw_rows[0].keys()))
        for field_name in REQUIRED_COLUMNS:
            if columns[field_name] is None:
                expected = ", ".join(f"'{keyword}'" for keyword in COLUMN_KEYWORDS[field_name])
                result.errors.append(
                    ImportRowError(
                        row=0,
                        field=field_name,
                        value="",
                        message=f"Column for {field_name} not found. Expected one of: {expected}",
                    )
                )
        if result.errors:
            return result

        code_col = columns[STORE_CODE]
        sqm_col = columns[SQUARE_METERS]
        name_col = columns[BUSINESS_NAME]
        address_col = columns[ADDRESS]

        for index, raw in enumerate(raw_rows):
            row_number = index + 2
            try:
                store_code = validate_required_text(raw.get(code_col), "Store code")
            except ValueError as error:
                result.errors.append(
                    ImportRowError(
                        row=row_number,
                        field=STORE_CODE,
                        value="",
                        message=str(error),
                    )
                )
                continue

            raw_sqm = raw.get(sqm_col, "").strip()
            try:
                square_meters = parse_square_meters(raw_sqm)
            except ValueError as error:
                result.errors.append(
                    ImportRowError(
                        row=row_number,
                        field=SQUARE_METERS,
                        value=raw_sqm,
                        message=str(error),
                    )
                )
                continue

            result.rows.append(
                ImportRow(
                    store_code=store_code,
                    business_name=raw.get(name_col, "").strip() if name_col else "",
                    address=raw.get(address_col, "").strip() if address_col else "",
                    square_meters=square_meters,
                    row=row_number,
                )
            )
        return result

    def validate(self, rows: list[ImportRow]) -> ValidationResult:
        """Flag duplicate codes as errors and implausible areas as warnings."""
        errors: list[ImportRowError] = []
        warnings: list[str] = []
        seen: set[str] = set()

        for index, row in enumerate(rows):
            row_number = row.row or index + 2
            if row.store_code in seen:
                errors.append(
                    ImportRowError(
                        row=row_number,
                        field=STORE_CODE,
                        value=row.store_code,
                        message="Duplicate store code in file.",
                    )
                )
            seen.add(row.store_code)

            if row.square_meters < self._settings.min_square_meters:
                warnings.append(
                    f"Row {row_number}: {row.square_meters} m2 looks too small for a store"
                )
            if row.square_meters > self._settings.max_square_meters:
                warnings.append(f"Row {row_number}: {row.square_meters} m2 looks too large, check it")

        return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)

    def process_file(self, filename: str, content: str, uploaded_by: str) -> ProcessingResult:
        """Parse, map and validate a file. Rows are returned only if nothing failed."""
        record = FileImport(
            import_id=f"IMP-{utc_now():%Y%m%d%H%M%S}-{uuid.uuid4().hex[:8]}",
            filename=filename,
            uploaded_by=uploaded_by,
        )

        try:
            raw_rows = self.parse_csv(content)
        except (ValueError, csv.Error) as error:
            record.status = ImportStatus.failed
            record.errors = [ImportRowError(row=0, field="file", value=filename, message=str(error))]
            record.error_records = 1
            record.completed_at = utc_now()
            logger.warning("Import %s could not be parsed: %s", filename, error)
            return ProcessingResult(
                import_record=record,
                rows=[],
                validation=ValidationResult(is_valid=False, errors=list(record.errors)),
            )

        record.total_records = len(raw_rows)
        mapping = self.map_rows(raw_rows)
        validation = self.validate(mapping.rows)

        all_errors = mapping.errors + validation.errors
        succeeded = not mapping.errors and validation.is_valid

        record.errors = all_errors
        record.processed_records = len(mapping.rows)
        record.error_records = len(all_errors)
        record.status = ImportStatus.completed if succeeded else ImportStatus.failed
        record.completed_at = utc_now()

        logger.info(
            "Processed %s: %d rows, %d mapped, %d errors, %d warnings",
            filename,
            record.total_records,
            record.processed_records,
            record.error_records,
            len(validation.warnings),
        )
        return ProcessingResult(
            import_record=record,
            rows=mapping.rows if succeeded else [],
            validation=ValidationResult(
                is_valid=succeeded,
                errors=all_errors,
                warnings=validation.warnings,
            ),
        )
