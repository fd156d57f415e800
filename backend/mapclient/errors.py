from __future__ import annotations


class MapClientError(Exception):
    """
    Base class for listings request failures.
    """


class RequestAborted(MapClientError):
    """
    The request was cancelled because a newer one superseded it. Never retried, never shown.
    """


class NetworkFailure(MapClientError):
    """
    Timeout, refused connection or a zero-status response. Retried with backoff.
    """


class ServerFailure(MapClientError):
    """
    The endpoint answered but reported failure (`success: false` or a non-2xx body).
    """

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
