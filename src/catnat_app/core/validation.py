"""Input validation rules for imported store rows."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation

from catnat_app.core.errors import UploadRejectedError


def validate_required_text(value: str | None, field_name: str) -> str:
    """Validate non-empty text fields."""
    normalized = (value or "").strip()
    if not normalized:
        raise ValueError(f"{field_name} is required.")
    return normalized


def parse_square_meters(value: str | None) -> Decimal:
    """Parse a floor area accepting both '.' and ',' as decimal separator."""
    normalized = (value or "").strip().replace(",", ".", 1)
    try:
        square_meters = Decimal(normalized)
    except InvalidOperation as error:
        raise ValueError("Square meters must be a positive number.") from error
    if not square_meters.is_finite() or square_meters <= 0:
        raise ValueError("Square meters must be a positive number.")
    return square_meters


def validate_upload(
    filename: str,
    size: int,
    allowed_extensions: tuple[str, ...],
    max_bytes: int,
) -> str:
    """Check the extension allow-list and the size cap for an upload."""
    lowered = filename.lower()
    if not any(lowered.endswith(ext) for ext in allowed_extensions):
        raise UploadRejectedError(
            f"Unsupported file type: {filename}. Allowed: {', '.join(allowed_extensions)}"
        )
    if size > max_bytes:
        raise UploadRejectedError(f"File exceeds the {max_bytes} byte upload limit.")
    return filename
