"""Typed error taxonomy for the compliance core.

Every error carries a stable machine-readable ``code`` and a human-readable
message.  ``http_status`` is a hint consumed by the API exception handler;
the core itself never depends on the web layer.
"""

from __future__ import annotations


class PtrsError(Exception):
    """Base class for all domain errors raised by :mod:`ptrs_core`."""

    code: str = "PTRS_ERROR"
    http_status: int = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code, "detail": self.message}


class InvalidTenantId(PtrsError):
    """Raised when a tenant token is missing or malformed."""

    code = "INVALID_TENANT_ID"
    http_status = 400


class TenantContextSetupFailed(PtrsError):
    """Raised when the tenant binding could not be set on a new transaction."""

    code = "TENANT_CONTEXT_SETUP_FAILED"
    http_status = 503


class RunNotFound(PtrsError):
    """Raised when a reporting run does not exist for the requesting tenant."""

    code = "RUN_NOT_FOUND"
    http_status = 404

    def __init__(self, run_id: str) -> None:
        super().__init__(f"Reporting run {run_id!r} not found")
        self.run_id = run_id


class EmptyUploadError(PtrsError):
    code = "SBI_EMPTY_UPLOAD"
    http_status = 400

    def __init__(self, message: str = "SBI results file is empty") -> None:
        super().__init__(message)


class UploadDecodeError(PtrsError):
    code = "SBI_UPLOAD_NOT_UTF8"
    http_status = 400

    def __init__(self, message: str = "SBI results file is not valid UTF-8 text") -> None:
        super().__init__(message)


class MissingRequiredColumns(PtrsError):
    """Raised when the SBI CSV header lacks an ABN or Outcome column."""

    code = "SBI_MISSING_COLUMNS"
    http_status = 400

    def __init__(self, missing: list[str]) -> None:
        super().__init__(
            "SBI results CSV must include columns for ABN and Outcome "
            f"(e.g. headers: Year, ABN, Outcome); missing: {', '.join(missing)}"
        )
        self.missing = missing


class NoAbnsParsed(PtrsError):
    code = "SBI_NO_ABNS"
    http_status = 400

    def __init__(self, message: str = "No ABNs could be parsed from the SBI results file") -> None:
        super().__init__(message)


class UploadNotFound(PtrsError):
    code = "SBI_UPLOAD_NOT_FOUND"
    http_status = 404

    def __init__(self, run_id: str, upload_id: int | None = None) -> None:
        if upload_id is None:
            message = f"No SBI upload exists for reporting run {run_id!r}"
        else:
            message = f"SBI upload {upload_id} not found for reporting run {run_id!r}"
        super().__init__(message)
        self.run_id = run_id
        self.upload_id = upload_id


class MalformedUploadError(PtrsError):
    """Raised when a line of the SBI CSV cannot be read as CSV at all."""

    code = "SBI_MALFORMED_CSV"
    http_status = 400

    def __init__(self, line_no: int, reason: str) -> None:
        super().__init__(f"SBI results file line {line_no} is malformed: {reason}")
        self.line_no = line_no
