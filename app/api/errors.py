import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from app.domain.errors import (
    DirectoryError,
    InvalidJobStateError,
    JobError,
    JobNotFoundError,
    JobStoreError,
    PayloadValidationError,
)

logger = logging.getLogger(__name__)

# Most specific first; JobError is the catch-all for the queue
STATUS_BY_ERROR = [
    (JobNotFoundError, status.HTTP_404_NOT_FOUND),
    (InvalidJobStateError, status.HTTP_409_CONFLICT),
    (PayloadValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (JobStoreError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (DirectoryError, status.HTTP_502_BAD_GATEWAY),
    (JobError, status.HTTP_400_BAD_REQUEST),
]

def status_for(exc: Exception) -> int:
    for error_type, code in STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR

async def domain_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    code = status_for(exc)
    if code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {type(exc).__name__}: {exc}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected ({code}): {exc}")
    return JSONResponse(status_code=code, content={"detail": str(exc)})

def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(JobError, domain_exception_handler)
    app.add_exception_handler(DirectoryError, domain_exception_handler)
