"""Job number normalization and validation."""

from __future__ import annotations

import re
from dataclasses import dataclass

JOB_NUMBER_LENGTH = 4

_NON_DIGITS = re.compile(r"[^0-9]")


@dataclass(frozen=True)
class JobNumberValidation:
    """Outcome of ``validate_job_number``.

    ``normalized`` is the input with every non-digit removed, whether or
    not it is valid.  ``message`` is empty when valid.
    """

    valid: bool
    normalized: str
    message: str = ""


def normalize_job_number(value: str | None) -> str:
    """Strip everything except ASCII digits."""
    if not value:
        return ""
    return _NON_DIGITS.sub("", value)


def validate_job_number(value: str | None) -> JobNumberValidation:
    if not value:
        return JobNumberValidation(False, "", "Job number is required")
    normalized = normalize_job_number(value)
    if len(normalized) != JOB_NUMBER_LENGTH:
        return JobNumberValidation(
            False, normalized, "Job number must be exactly 4 digits"
        )
    return JobNumberValidation(True, normalized)
