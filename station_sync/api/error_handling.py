"""
Centralized error handling for the Station API
Maps sync engine exceptions onto JSON error responses
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from station_sync.core.exceptions import (
    StationSyncError, StoreNotOpenError, AuthenticationMissingError,
    RemoteUnavailableError, RemoteRejectedError
)

logger = logging.getLogger(__name__)


def status_for_error(exc: StationSyncError) -> int:
    if isinstance(exc, AuthenticationMissingError):
        return status.HTTP_401_UNAUTHORIZED
    if isinstance(exc, (StoreNotOpenError, RemoteUnavailableError)):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    if isinstance(exc, RemoteRejectedError):
        return status.HTTP_502_BAD_GATEWAY
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def station_sync_error_handler(request: Request, exc: StationSyncError) -> JSONResponse:
    status_code = status_for_error(exc)
    logger.warning(f"{request.method} {request.url.path} failed: {type(exc).__name__}: {exc}")

    content = {
        'success': False,
        'error': str(exc),
        'error_type': type(exc).__name__
    }
    if isinstance(exc, RemoteRejectedError):
        content['status'] = exc.status

    return JSONResponse(status_code=status_code, content=content)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StationSyncError, station_sync_error_handler)
