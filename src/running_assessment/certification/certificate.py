"""Application IDs and certificate numbers."""

from __future__ import annotations

import re

from running_assessment.core.exceptions import InputValidationError

from .audit import AuditEventType, AuditLog
from .types import GradeCode

APPLICATION_ID_PATTERN = re.compile(r"^JRPO-\d{4}-\d{6}$")
CERTIFICATE_NUMBER_PATTERN = re.compile(r"^CERT-\d+KYU-\d{4}-\d{6}$")

MAX_SEQUENCE = 999_999


def generate_application_id(year: int, sequence: int) -> str:
    """``JRPO-YYYY-NNNNNN``"""
    if not 1000 <= year <= 9999:
        raise InputValidationError(f"Year must have four digits, got {year}")
    if not 0 <= sequence <= MAX_SEQUENCE:
        raise InputValidationError(f"Sequence must be within 0..{MAX_SEQUENCE}, got {sequence}")
    return f"JRPO-{year:04d}-{sequence:06d}"


def generate_certificate_number(
    grade: GradeCode | int | str,
    application_id: str,
    year: int,
    audit: AuditLog | None = None,
    actor: str | None = None,
) -> str:
    """
    ``CERT-<n>KYU-YYYY-NNNNNN``; the sequence is taken from the application ID.

    When ``audit`` is given, a ``certificate_generated`` entry is recorded.
    """
    if not validate_application_id(application_id):
        raise InputValidationError(f"Invalid application ID: {application_id}")
    if not 1000 <= year <= 9999:
        raise InputValidationError(f"Year must have four digits, got {year}")
    code = GradeCode.parse(grade)
    sequence = application_id.rsplit("-", 1)[-1]
    number = f"CERT-{code.number}KYU-{year:04d}-{sequence}"
    if audit is not None:
        audit.record(
            AuditEventType.CERTIFICATE_GENERATED,
            {"certificate_number": number, "application_id": application_id, "grade": code.number},
            actor=actor,
        )
    return number


def validate_application_id(application_id: str) -> bool:
    return bool(APPLICATION_ID_PATTERN.match(application_id))


def validate_certificate_number(certificate_number: str) -> bool:
    return bool(CERTIFICATE_NUMBER_PATTERN.match(certificate_number))
