"""
Error kinds raised by the resolution pipeline and their HTTP mapping.

Each error is tagged with an `ErrorKind` when it is created; the HTTP layer
only looks at the tag.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Optional

LOGGER = logging.getLogger(__name__)


class ErrorKind(str, Enum):
    BAD_REQUEST = "bad_request"
    NOT_FOUND = "not_found"
    INTERNAL = "internal"


_STATUS_CODES = {
    ErrorKind.BAD_REQUEST: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.INTERNAL: 500,
}


class ServiceError(Exception):
    """Base class for errors whose kind is known where they are raised."""

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, message: str, kind: Optional[ErrorKind] = None) -> None:
        super().__init__(message)
        if kind is not None:
            self.kind = kind

    @property
    def message(self) -> str:
        return str(self)


class BadRequestError(ServiceError):
    """The caller sent something we cannot work with."""

    kind = ErrorKind.BAD_REQUEST


class NotFoundError(ServiceError):
    """Well-formed input pointing at something that does not exist."""

    kind = ErrorKind.NOT_FOUND


class InternalError(ServiceError):
    """Upstream or infrastructure failure."""

    kind = ErrorKind.INTERNAL


def error_kind(exc: BaseException) -> ErrorKind:
    return exc.kind if isinstance(exc, ServiceError) else ErrorKind.INTERNAL


def error_status_code(exc: BaseException) -> int:
    """
    Map an exception to an HTTP status code.

    Unclassified failures are logged here since they point at a bug or a
    broken upstream rather than at the client.
    """
    kind = error_kind(exc)
    if kind is ErrorKind.INTERNAL:
        LOGGER.error("Unhandled error: %s", exc, exc_info=exc)
    return _STATUS_CODES[kind]
