"""
Error handlers for the FastAPI application.

Every failure leaves the service as ``{success: false, message, errorCode,
requestId}``; the status code comes from the exception type. Errors are
logged with the request id and counted per error code for /health.
"""

from fastapi import Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging
import time
from typing import Dict, Any, Optional

from menuscan.core.exceptions import (
    MenuScanException,
    InvalidInputError,
    ErrorCode,
)
from menuscan.models.api_models import ErrorResponse
from menuscan.services.response_assembler import assemble_error

logger = logging.getLogger(__name__)

_HTTP_ERROR_CODES = {
    400: ErrorCode.INVALID_INPUT,
    404: ErrorCode.NOT_FOUND,
    405: ErrorCode.INVALID_INPUT,
    413: ErrorCode.IMAGE_TOO_LARGE,
    422: ErrorCode.VALIDATION_ERROR,
    503: ErrorCode.SERVICE_UNAVAILABLE,
}


def _request_id(request: Request) -> str:
    return getattr(request.state, 'request_id', None) or 'unknown'


class ErrorHandler:
    """
    Converts exceptions into failure envelopes and keeps error statistics.
    """

    def __init__(self):
        self.error_counts: Dict[str, int] = {}
        self.last_error_time: Dict[str, float] = {}

    async def handle_menu_scan_exception(
        self,
        request: Request,
        exc: MenuScanException
    ) -> JSONResponse:
        """
        Handle the application's typed exceptions.

        Input errors are the client's fault and logged as warnings; the
        rest are logged as errors. Raw model output is never logged here.
        """
        request_id = _request_id(request)
        log = logger.warning if isinstance(exc, InvalidInputError) else logger.error
        log(
            f"{type(exc).__name__} in request {request_id}: {exc.message}",
            extra={
                'request_id': request_id,
                'error_code': exc.error_code.value,
                'status_code': exc.status_code,
                'details': exc.details,
                'request_path': request.url.path,
                'request_method': request.method,
            }
        )

        self._track_error(exc.error_code.value)
        status_code, body = assemble_error(exc, request_id)
        return self._json(status_code, body, request_id)

    async def handle_validation_error(
        self,
        request: Request,
        exc: RequestValidationError
    ) -> JSONResponse:
        """
        Handle Pydantic validation errors with field information.
        """
        request_id = _request_id(request)

        validation_errors = []
        for error in exc.errors():
            validation_errors.append({
                'field': '.'.join(str(loc) for loc in error['loc']),
                'message': error['msg'],
                'type': error['type'],
            })

        logger.warning(
            f"Validation error in request {request_id}: {len(validation_errors)} field errors",
            extra={
                'request_id': request_id,
                'validation_errors': validation_errors,
                'request_path': request.url.path
            }
        )

        self._track_error(ErrorCode.VALIDATION_ERROR.value)
        return self._create_error_response(
            error_code=ErrorCode.VALIDATION_ERROR.value,
            message="Request validation failed",
            details={'validation_errors': validation_errors},
            request_id=request_id,
            status_code=422
        )

    async def handle_http_exception(
        self,
        request: Request,
        exc: StarletteHTTPException
    ) -> JSONResponse:
        request_id = _request_id(request)
        error_code = _HTTP_ERROR_CODES.get(exc.status_code, ErrorCode.INTERNAL_SERVER_ERROR)

        logger.warning(
            f"HTTP exception in request {request_id}: {exc.status_code} - {exc.detail}",
            extra={
                'request_id': request_id,
                'status_code': exc.status_code,
                'request_path': request.url.path
            }
        )

        self._track_error(error_code.value)
        return self._create_error_response(
            error_code=error_code.value,
            message=str(exc.detail),
            request_id=request_id,
            status_code=exc.status_code
        )

    async def handle_generic_exception(
        self,
        request: Request,
        exc: Exception
    ) -> JSONResponse:
        """
        Handle unexpected exceptions with full error logging.
        """
        request_id = _request_id(request)

        logger.error(
            f"Unhandled exception in request {request_id}: {type(exc).__name__}: {str(exc)}",
            exc_info=exc,
            extra={
                'request_id': request_id,
                'exception_type': type(exc).__name__,
                'request_path': request.url.path,
                'request_method': request.method,
            }
        )

        self._track_error(ErrorCode.INTERNAL_SERVER_ERROR.value)
        status_code, body = assemble_error(exc, request_id)
        return self._json(status_code, body, request_id)

    def _create_error_response(
        self,
        error_code: str,
        message: str,
        request_id: str,
        status_code: int,
        details: Optional[Dict[str, Any]] = None
    ) -> JSONResponse:
        error_response = ErrorResponse(
            error_code=error_code,
            message=message,
            details=details,
            request_id=request_id,
        )
        return self._json(
            status_code,
            error_response.model_dump(mode="json", by_alias=True, exclude_none=True),
            request_id
        )

    @staticmethod
    def _json(status_code: int, body: Dict[str, Any], request_id: str) -> JSONResponse:
        # set here too: responses built by the server error middleware bypass
        # the request context middleware
        return JSONResponse(
            status_code=status_code,
            content=body,
            headers={"X-Request-ID": request_id}
        )

    def _track_error(self, error_code: str) -> None:
        """
        Track error frequency for monitoring.
        """
        self.error_counts[error_code] = self.error_counts.get(error_code, 0) + 1
        self.last_error_time[error_code] = time.time()

        if self.error_counts[error_code] % 10 == 0:
            logger.warning(
                f"High frequency error detected: {error_code} occurred {self.error_counts[error_code]} times"
            )

    def get_error_statistics(self) -> Dict[str, Any]:
        """
        Get error statistics for monitoring.
        """
        current_time = time.time()

        return {
            'error_counts': dict(self.error_counts),
            'recent_errors': {
                code: count for code, count in self.error_counts.items()
                if current_time - self.last_error_time.get(code, 0) < 3600  # last hour
            },
            'total_errors': sum(self.error_counts.values())
        }

    def reset(self) -> None:
        self.error_counts.clear()
        self.last_error_time.clear()


# Global error handler instance
error_handler = ErrorHandler()


def setup_error_handlers(app):
    """
    Set up all error handlers for the FastAPI application.
    """

    @app.exception_handler(MenuScanException)
    async def menu_scan_exception_handler(request: Request, exc: MenuScanException):
        return await error_handler.handle_menu_scan_exception(request, exc)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return await error_handler.handle_validation_error(request, exc)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return await error_handler.handle_http_exception(request, exc)

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        return await error_handler.handle_generic_exception(request, exc)

    logger.info("Error handlers configured successfully")
