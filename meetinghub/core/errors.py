"""
Typed failures raised by the service layer.

Every service operation reports rejections by raising one of these; the
FastAPI handler registered in ``main`` turns them into a stable status code
and a machine-readable ``code`` so clients can branch on the outcome.
"""
from fastapi import Request
from fastapi.responses import JSONResponse


class MeetingHubError(Exception):
    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(MeetingHubError):
    status_code = 404
    code = "NOT_FOUND"


class ForbiddenError(MeetingHubError):
    status_code = 403
    code = "FORBIDDEN"


class ConflictError(MeetingHubError):
    status_code = 409
    code = "CONFLICT"


class ValidationFailedError(MeetingHubError):
    status_code = 422
    code = "VALIDATION_FAILED"


class FileTooLargeError(ValidationFailedError):
    status_code = 413
    code = "FILE_TOO_LARGE"


class DependencyFailureError(MeetingHubError):
    """The object store, mail server or database call failed."""

    status_code = 502
    code = "DEPENDENCY_FAILURE"


async def meetinghub_error_handler(request: Request, exc: MeetingHubError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": {"code": exc.code, "message": exc.message}},
    )
