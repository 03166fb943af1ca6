from __future__ import annotations

from http import HTTPStatus


class PlaygroundError(Exception):
    """Base class for every error raised by the playground services."""


class TransportError(PlaygroundError):
    """An engine call failed. `cause` is the human-readable reason."""

    def __init__(self, cause: str) -> None:
        super().__init__(cause)
        self.cause = cause


class EngineInitError(TransportError):
    pass


class CancellationError(PlaygroundError):
    """A queued request was superseded by a later one before dispatch."""

    def __init__(self, message: str = "request superseded") -> None:
        super().__init__(message)


class CompressionError(PlaygroundError):
    pass


class ShareError(PlaygroundError):
    status: int = HTTPStatus.INTERNAL_SERVER_ERROR
    detail: str = "share_failed"


class AuthorizationError(ShareError):
    status = HTTPStatus.FORBIDDEN
    detail = "Unauthorized"


class PayloadTooLargeError(ShareError):
    status = HTTPStatus.REQUEST_ENTITY_TOO_LARGE
    detail = "payload_too_large"


class EmptyPayloadError(ShareError):
    status = HTTPStatus.BAD_REQUEST
    detail = "empty_payload"


class ShareNotFoundError(ShareError):
    status = HTTPStatus.NOT_FOUND
    detail = "not_found"


class StorageError(ShareError):
    status = HTTPStatus.INTERNAL_SERVER_ERROR
    detail = "storage_failed"
