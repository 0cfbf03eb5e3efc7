import re
from dataclasses import dataclass
from typing import Optional

from filedelivery.server.exceptions import RangeNotSatisfiable

# Single range only. Anything else (multi-range, other units) is served in full.
RANGE_PATTERN = re.compile(r"^bytes=([0-9]*)-([0-9]*)$")


@dataclass(frozen=True)
class ByteRange:
    """An inclusive [start, end] slice of a file of total_size bytes."""

    start: int
    end: int
    total_size: int

    def __post_init__(self):
        if not 0 <= self.start <= self.end < self.total_size:
            raise ValueError(
                f"invalid byte range {self.start}-{self.end}/{self.total_size}"
            )

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    @property
    def content_range(self) -> str:
        return f"bytes {self.start}-{self.end}/{self.total_size}"


def parse_range(header: Optional[str], total_size: int) -> Optional[ByteRange]:
    """
    Parse a Range header value against a known file size.

    Returns None when the whole file should be sent, either because no
    header was given or because it isn't the single `bytes=<start>-<end>`
    form. A missing start means 0 and a missing end means the last byte.

    Raises RangeNotSatisfiable when the bounds don't fit the file.
    """

    if not header:
        return None

    match = RANGE_PATTERN.match(header.strip())
    if not match:
        return None

    from_bytes, until_bytes = match.groups()
    start = int(from_bytes) if from_bytes else 0
    end = int(until_bytes) if until_bytes else total_size - 1

    if start > end or start >= total_size or end >= total_size:
        raise RangeNotSatisfiable(total_size)

    return ByteRange(start, end, total_size)
