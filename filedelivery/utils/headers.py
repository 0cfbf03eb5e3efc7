import re
from dataclasses import dataclass, field
from typing import Dict, Optional
from urllib.parse import quote

from filedelivery.utils.range_parser import ByteRange

GENERIC_MIME_TYPE = "application/octet-stream"

# Types a browser would execute when rendered inline
DANGEROUS_MIME_TYPES = frozenset({
    "text/html",
    "text/javascript",
    "application/javascript",
    "application/x-javascript",
    "application/xhtml+xml",
    "image/svg+xml",
})

NO_CACHE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, max-age=0",
    "Pragma": "no-cache",
    "Expires": "Wed, 11 Jan 1984 05:00:00 GMT",
}

SECURITY_HEADERS = {
    "X-Robots-Tag": "noindex, nofollow",
    "X-Content-Type-Options": "nosniff",
}

_UNSAFE_FILENAME_CHARS = re.compile(r"[^\x20-\x7e]")


@dataclass
class HeaderSet:
    status: int = 200
    headers: Dict[str, str] = field(default_factory=dict)


def is_dangerous_type(mime_type: str) -> bool:
    essence = mime_type.split(";", 1)[0].strip().lower()
    return essence in DANGEROUS_MIME_TYPES


def content_disposition(filename: str, inline: bool = False) -> str:
    """
    Build a Content-Disposition value that legacy and RFC 5987 aware
    clients can both read.

    Anything outside printable ASCII is replaced with "_" in `filename=`.
    When that changed the name, the original goes into `filename*=` as
    percent-encoded UTF-8.
    """

    disposition = "inline" if inline else "attachment"
    safe_filename = _UNSAFE_FILENAME_CHARS.sub("_", filename)
    quoted = safe_filename.replace("\\", "\\\\").replace('"', '\\"')

    value = f'{disposition}; filename="{quoted}"'
    if safe_filename != filename:
        value += f"; filename*=UTF-8''{quote(filename, safe='')}"

    return value


def compose_headers(
    filename: str,
    mime_type: Optional[str],
    *,
    force_download: bool = True,
    range_enabled: bool = True,
    byte_range: Optional[ByteRange] = None,
    total_size: Optional[int] = None,
) -> HeaderSet:
    """
    Derive status and headers for a file response.

    Caching is always disabled. Dangerous types are downgraded to a
    generic binary type and always sent as attachment, whatever the
    caller asked for. Length and range headers are only added when the
    size is known, so offloaded responses leave them to the web server.
    """

    mime_type = mime_type or GENERIC_MIME_TYPE
    inline = not force_download

    if is_dangerous_type(mime_type):
        mime_type = GENERIC_MIME_TYPE
        inline = False

    headers = {**NO_CACHE_HEADERS, **SECURITY_HEADERS}
    headers["Content-Type"] = mime_type
    headers["Content-Description"] = "File Transfer"
    headers["Content-Transfer-Encoding"] = "binary"
    headers["Content-Disposition"] = content_disposition(filename, inline)

    if byte_range is not None:
        headers["Accept-Ranges"] = "bytes"
        headers["Content-Range"] = byte_range.content_range
        headers["Content-Length"] = str(byte_range.length)
        return HeaderSet(206, headers)

    if total_size is not None:
        headers["Accept-Ranges"] = "bytes" if range_enabled else "none"
        headers["Content-Length"] = str(total_size)

    return HeaderSet(200, headers)


def unsatisfiable_headers(total_size: int) -> HeaderSet:
    headers = {**NO_CACHE_HEADERS, **SECURITY_HEADERS}
    headers["Content-Range"] = f"bytes */{total_size}"
    headers["Content-Length"] = "0"
    return HeaderSet(416, headers)
