"""
Service error taxonomy.

Every error raised by the service layer carries a symbolic ``code`` (the
value reported to API clients) and the HTTP status it maps to. The FastAPI
exception handler in :mod:`premiers_awards_backend.middleware` turns them
into JSON responses.
"""

from __future__ import annotations


class ServiceError(Exception):
    code = "serverError"
    status_code = 500

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail or self.code
        super().__init__(self.detail)


class InvalidInput(ServiceError):
    code = "invalidInput"
    status_code = 400


class NoRecord(ServiceError):
    code = "noRecord"
    status_code = 404


class MissingFile(ServiceError):
    code = "missingFile"
    status_code = 404


class AlreadySubmitted(ServiceError):
    code = "alreadySubmitted"
    status_code = 409


class MaxDraftsExceeded(ServiceError):
    code = "maxDraftsExceeded"
    status_code = 409


class MaxAttachmentsExceeded(ServiceError):
    code = "maxAttachmentsExceeded"
    status_code = 409


class RecordExists(ServiceError):
    code = "recordExists"
    status_code = 409


class MaxPagesExceeded(ServiceError):
    code = "maxPagesExceeded"
    status_code = 422


class PDFCorrupted(ServiceError):
    """Conversion or merge of a nomination document failed."""

    code = "PDFCorrupted"
    status_code = 502


class SchemaUnavailable(ServiceError):
    """Category, section or organization lookup could not be resolved."""

    code = "schemaUnavailable"
    status_code = 500
