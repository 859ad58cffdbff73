"""
Custom exception hierarchy for HeatAtlas.

Every error carries a stable ``code`` and an HTTP status so the global
handler can render the same envelope for all endpoints:

    {"success": false, "error": {"code": ..., "message": ..., "details": {...}}}

Soft failures (narration, single raster downloads) are absorbed by the
report pipeline; the classes still exist so they can be logged and counted
with a consistent name.
"""

from typing import Optional, Dict, Any
from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse


class HeatAtlasError(HTTPException):
    """
    Base exception class for all HeatAtlas errors.

    Extends FastAPI's HTTPException so an uncaught instance still becomes
    a proper HTTP response.
    """

    code: str = "HEATATLAS_ERROR"

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.details = details or {}

        super().__init__(
            status_code=status_code,
            detail={
                "code": self.code,
                "message": message,
                "details": self.details,
            }
        )

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} (details: {self.details})"
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


# ============================================================================
# INPUT VALIDATION
# ============================================================================

class InputValidationError(HeatAtlasError):
    """Missing or malformed geometry, dates, metric list or identifier."""

    code = "INPUT_VALIDATION_ERROR"

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        details: Optional[Dict] = None,
    ):
        details = details or {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)[:200]

        super().__init__(
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details,
        )


# ============================================================================
# RASTER ERRORS
# ============================================================================

class NoDataError(HeatAtlasError):
    """Empty image collection or empty reduction for the region/time window."""

    code = "NO_DATA"

    def __init__(self, message: str, layer: Optional[str] = None, details: Optional[Dict] = None):
        details = details or {}
        if layer:
            details["layer"] = layer
        self.layer = layer

        super().__init__(
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            details=details,
        )


class EmptyResultError(NoDataError):
    """A derived raster has zero valid pixels inside the region."""

    code = "EMPTY_RESULT"


class NormalizationError(HeatAtlasError):
    """Band rescaling impossible: empty reduction or min == max."""

    code = "NORMALIZATION_ERROR"

    def __init__(
        self,
        message: str,
        band: Optional[str] = None,
        minimum: Optional[float] = None,
        maximum: Optional[float] = None,
    ):
        details: Dict[str, Any] = {}
        if band:
            details["band"] = band
        if minimum is not None:
            details["min"] = minimum
        if maximum is not None:
            details["max"] = maximum
        self.band = band

        super().__init__(
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details,
        )


# ============================================================================
# EXTERNAL SERVICE ERRORS
# ============================================================================

class ExternalServiceError(HeatAtlasError):
    """Compute, narration or rendering backend unreachable or erroring."""

    code = "EXTERNAL_SERVICE_ERROR"

    def __init__(
        self,
        message: str,
        service_name: Optional[str] = None,
        status_code: int = status.HTTP_502_BAD_GATEWAY,
        response_body: Optional[str] = None,
        details: Optional[Dict] = None,
    ):
        details = details or {}
        if service_name:
            details["service"] = service_name
        if response_body:
            details["response"] = response_body[:500]
        self.service_name = service_name

        super().__init__(
            message=message,
            status_code=status_code,
            details=details,
        )


class ComputeBackendError(ExternalServiceError):
    """Earth Engine evaluation failed."""

    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message=message, service_name="Earth Engine", details=details)


class ServiceUnavailableError(ExternalServiceError):
    """A required backend was never initialized in this process."""

    code = "SERVICE_UNAVAILABLE"

    def __init__(self, message: str, service_name: Optional[str] = None):
        super().__init__(
            message=message,
            service_name=service_name,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        )


class NarrationProviderError(ExternalServiceError):
    """A text-generation provider failed or every provider failed."""

    def __init__(self, message: str, provider: Optional[str] = None, details: Optional[Dict] = None):
        super().__init__(message=message, service_name=provider or "narration", details=details)


class APITimeoutError(ExternalServiceError):
    """External request timed out."""

    def __init__(self, message: str, service_name: Optional[str] = None, timeout_seconds: Optional[float] = None):
        details = {}
        if timeout_seconds:
            details["timeout_seconds"] = timeout_seconds

        super().__init__(
            message=message,
            service_name=service_name,
            status_code=status.HTTP_504_GATEWAY_TIMEOUT,
            details=details,
        )


class RenderingError(ExternalServiceError):
    """Document rendering engine failed."""

    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(
            message=message,
            service_name="document renderer",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details=details,
        )


# ============================================================================
# REPORT ARTIFACT ERRORS
# ============================================================================

class DownloadError(HeatAtlasError):
    """Raster fetch failed after all attempts."""

    code = "DOWNLOAD_ERROR"

    def __init__(self, message: str, file_name: Optional[str] = None, attempts: Optional[int] = None):
        details: Dict[str, Any] = {}
        if file_name:
            details["file"] = file_name
        if attempts is not None:
            details["attempts"] = attempts

        super().__init__(
            message=message,
            status_code=status.HTTP_502_BAD_GATEWAY,
            details=details,
        )


class ArtifactNotFoundError(HeatAtlasError):
    """Requested report has no archive (yet, any more, or ever)."""

    code = "ARTIFACT_NOT_FOUND"

    def __init__(self, report_id: str, message: str = "Report not found or has expired"):
        super().__init__(
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            details={"report_id": report_id},
        )


class ReportGenerationError(HeatAtlasError):
    """Unrecoverable failure while assembling a report."""

    code = "REPORT_GENERATION_FAILED"

    def __init__(self, message: str, report_id: Optional[str] = None, details: Optional[Dict] = None):
        details = details or {}
        if report_id:
            details["report_id"] = report_id

        super().__init__(
            message=message,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details=details,
        )


# ============================================================================
# GLOBAL EXCEPTION HANDLER (for FastAPI)
# ============================================================================

def error_envelope(code: str, message: str, details: Optional[Any] = None) -> Dict[str, Any]:
    return {
        "success": False,
        "error": {
            "code": code,
            "message": message,
            "details": details if details is not None else {},
        },
    }


async def heatatlas_exception_handler(request: Request, exc: HeatAtlasError) -> JSONResponse:
    """
    Global exception handler for FastAPI.

    Usage in main.py:
        app.add_exception_handler(HeatAtlasError, heatatlas_exception_handler)
    """
    from heatatlas.utils.logger import get_logger

    logger = get_logger(__name__)

    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        f"Exception: {exc.__class__.__name__}",
        code=exc.code,
        message=exc.message,
        details=exc.details,
        status_code=exc.status_code,
        path=str(request.url),
        method=request.method,
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=error_envelope(exc.code, exc.message, exc.details),
    )
