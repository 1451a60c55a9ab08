"""
Exception hierarchy for the station sync engine
"""

from typing import Optional


class StationSyncError(Exception):
    """Base exception for the station sync engine"""
    pass


class StoreNotOpenError(StationSyncError):
    """Raised when the local store is used before open()"""
    pass


class AuthenticationMissingError(StationSyncError):
    """Raised when a remote call is attempted without a bearer token"""
    pass


class RemoteUnavailableError(StationSyncError):
    """Transient failure: connection refused, DNS failure or timeout"""
    pass


class RemoteRejectedError(StationSyncError):
    """The server was reachable but answered with a non-2xx status"""

    def __init__(self, status: int, body: Optional[str] = None, endpoint: Optional[str] = None):
        self.status = status
        self.body = body
        self.endpoint = endpoint
        message = f"HTTP {status}: {body}" if body else f"HTTP {status}"
        super().__init__(message)


class InvalidResponseError(RemoteRejectedError):
    """2xx response whose body could not be decoded as JSON"""

    def __init__(self, status: int, body: Optional[str] = None, endpoint: Optional[str] = None):
        super().__init__(status, body, endpoint)
        self.args = (f"Invalid JSON in response from {endpoint or 'server'}",)
