"""
Path and type helpers the delivery core relies on: sanitizing untrusted
paths, checking containment, mapping references to files and guessing
MIME types. Each one is a plain function so callers can swap it out.
"""

import mimetypes
import os
import posixpath
import re
from typing import Iterable, Optional, Tuple
from urllib.parse import quote

from filedelivery.utils.headers import GENERIC_MIME_TYPE


def _protocol_patterns(protocols: Iterable[str]) -> Tuple[re.Pattern, ...]:
    variants = set()
    for protocol in protocols:
        if not protocol.endswith("://"):
            protocol += "://"
        variants.add(protocol)
        variants.add(quote(protocol, safe=""))

    return tuple(re.compile("^" + re.escape(v), re.IGNORECASE) for v in sorted(variants))


def normalize_path(path: str) -> str:
    """Resolve "." and ".." segments without ever climbing above the top."""

    path = path.replace("\\", "/")
    leading = "/" if path.startswith("/") else ""

    parts = []
    for segment in path.split("/"):
        if segment in ("", "."):
            continue
        if segment == "..":
            if parts:
                parts.pop()
            continue
        parts.append(segment)

    return leading + "/".join(parts)


def sanitize_path(path: str, restricted_protocols: Iterable[str]) -> str:
    """
    Strip restricted pseudo-protocols (plain or URL-encoded, in any case)
    from the front of the path, then normalize it.

    The list is passed explicitly, the host owns the default.
    """

    if not path:
        return ""

    patterns = _protocol_patterns(restricted_protocols)

    stripped = True
    while stripped:
        stripped = False
        for pattern in patterns:
            path, count = pattern.subn("", path, count=1)
            stripped = stripped or bool(count)

    return normalize_path(path)


def is_within_directory(path: str, root: str) -> bool:
    real_path = os.path.realpath(path)
    real_root = os.path.realpath(root)

    try:
        return os.path.commonpath([real_path, real_root]) == real_root
    except ValueError:
        # different drives on Windows
        return False


def resolve_path(reference: str, root: str) -> Optional[str]:
    """Map a logical reference like "docs/a.pdf" to a file under root."""

    relative = posixpath.normpath("/" + reference.replace("\\", "/")).lstrip("/")
    if not relative or relative == ".":
        return None

    candidate = os.path.join(os.path.abspath(root), *relative.split("/"))
    if not is_within_directory(candidate, root):
        return None

    return candidate


def resolve_mime_type(path: str) -> str:
    guessed, _ = mimetypes.guess_type(path)
    return guessed or GENERIC_MIME_TYPE
