"""Exception types shared by the analysis pipeline, job protocol and routes."""

from enum import Enum
from typing import Any, Dict, Iterable, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError


class ProtectionError(Exception):
    """Error that maps directly onto an HTTP response."""

    status_code = 500

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_body(self) -> Dict[str, Any]:
        return {"success": False, "error": self.message, **self.extra}


class BadRequest(ProtectionError):
    status_code = 400


class Unauthorized(ProtectionError):
    status_code = 401


class AccessDenied(ProtectionError):
    status_code = 403

    def __init__(self, message: str = "Access denied", **extra: Any):
        super().__init__(message, **extra)


class NotFound(ProtectionError):
    status_code = 404


class PayloadTooLarge(ProtectionError):
    status_code = 413


# --- Analysis stage ---

class AnalysisErrorKind(str, Enum):
    VALIDATION = "validation"
    PARSING = "parsing"
    EXTERNAL = "external"


class AnalysisError(Exception):
    """Tagged failure raised by the analysis stage."""

    kind = AnalysisErrorKind.EXTERNAL

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ContractValidationError(AnalysisError):
    """The input is not something we can analyze as a contract."""
    kind = AnalysisErrorKind.VALIDATION


class DocumentParsingError(AnalysisError):
    """The uploaded file could not be read."""
    kind = AnalysisErrorKind.PARSING


class ExternalServiceError(AnalysisError):
    """An upstream service (LLM, AI handler) failed."""
    kind = AnalysisErrorKind.EXTERNAL

    def __init__(self, message: str, details: Any = None, status_code: Optional[int] = None):
        super().__init__(message, details)
        self.status_code = status_code


class RateLimitedError(ExternalServiceError):
    """The LLM provider asked us to slow down (HTTP 429)."""


class DocumentRenderError(Exception):
    """Contract or report rendering failed."""


# --- Job protocol ---

class JobError(Exception):
    def __init__(self, message: str, job_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.job_id = job_id


class JobFailedError(JobError):
    pass


class JobTimeoutError(JobError):
    pass


class JobCancelledError(JobError):
    pass


# --- Schema drift ---

UNDEFINED_COLUMN_CODES = {"42703", "PGRST116"}


class UnknownColumnError(Exception):
    """A write referenced columns the backing table does not have."""

    def __init__(self, columns: Tuple[str, ...], original: Exception):
        super().__init__(f"Unknown column(s): {', '.join(columns)}")
        self.columns = columns
        self.original = original


def _error_code(exc: BaseException) -> Optional[str]:
    """Driver error code (pgcode/sqlstate) if the exception carries one."""
    orig = getattr(exc, "orig", None)
    for source in (orig, exc):
        if source is None:
            continue
        # SQLAlchemy exceptions use `code` for their own documentation links
        attrs = ("pgcode", "sqlstate") if isinstance(source, SQLAlchemyError) else ("pgcode", "sqlstate", "code")
        for attr in attrs:
            code = getattr(source, attr, None)
            if isinstance(code, str) and code:
                return code
    return None


def classify_write_error(
    exc: Exception,
    optional_columns: Iterable[str],
    fallback_columns: Tuple[str, ...] = ("user_id",),
) -> Optional[UnknownColumnError]:
    """Return an UnknownColumnError when `exc` is a missing-column failure.

    Columns are taken from the driver message when it names any of the
    optional columns. When only the error code identifies the failure,
    `fallback_columns` are reported instead.
    """
    message = str(getattr(exc, "orig", None) or exc)
    optional = tuple(optional_columns)
    named = tuple(
        col for col in optional
        if f'column "{col}"' in message or f"'{col}'" in message or col in message
    )
    if named:
        return UnknownColumnError(named, exc)

    if _error_code(exc) in UNDEFINED_COLUMN_CODES:
        fallback = tuple(col for col in fallback_columns if col in optional)
        if fallback:
            return UnknownColumnError(fallback, exc)
    return None
