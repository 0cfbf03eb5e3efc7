from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    IO_FAILURE = "io_failure"
    UNSATISFIABLE_RANGE = "unsatisfiable_range"


class DeliveryError(Exception):
    """
    Base class for every failure a delivery call can answer with an
    error response. Subclasses pin the status code and the error kind.
    """

    status = 500
    kind = ErrorKind.IO_FAILURE
    message = "Internal Server Error"

    def __init__(self, message: Optional[str] = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


class FileNotFound(DeliveryError):
    status = 404
    kind = ErrorKind.NOT_FOUND
    message = "File not found or not readable"


class PathNotAllowed(DeliveryError):
    status = 403
    kind = ErrorKind.FORBIDDEN
    message = "Path is outside the allowed directory"


class FileUnreadable(DeliveryError):
    status = 500
    kind = ErrorKind.IO_FAILURE
    message = "Cannot open file for reading"


class RangeNotSatisfiable(DeliveryError):
    status = 416
    kind = ErrorKind.UNSATISFIABLE_RANGE
    message = "416 Range Not Satisfiable"

    def __init__(self, total_size: int, message: Optional[str] = None):
        self.total_size = total_size
        super().__init__(message)
