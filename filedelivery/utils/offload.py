import logging
import os
from enum import Enum
from typing import Optional, Tuple
from urllib.parse import quote

from filedelivery.utils.channels import OutputChannel
from filedelivery.utils.headers import compose_headers

log = logging.getLogger(__name__)


class OffloadMechanism(str, Enum):
    """How the web server in front of us can take over a transfer."""

    NONE = "none"
    # Apache mod_xsendfile, lighttpd: literal filesystem path
    XSENDFILE = "xsendfile"
    # nginx: internal location, mapped to a directory in nginx's own config
    XACCEL = "xaccel"


class OffloadDispatcher:
    def __init__(self, mechanism: OffloadMechanism = OffloadMechanism.NONE, internal_prefix: str = "/protected/"):
        self.mechanism = OffloadMechanism(mechanism)
        self.internal_prefix = internal_prefix

    def supported(self) -> bool:
        return self.mechanism is not OffloadMechanism.NONE

    def offload_header(self, file_path: str) -> Tuple[str, str]:
        if self.mechanism is OffloadMechanism.XSENDFILE:
            return "X-Sendfile", file_path

        if self.mechanism is OffloadMechanism.XACCEL:
            prefix = self.internal_prefix.rstrip("/") + "/"
            return "X-Accel-Redirect", prefix + quote(os.path.basename(file_path))

        raise RuntimeError("no offload mechanism configured")

    def dispatch(
        self,
        file_path: str,
        channel: OutputChannel,
        filename: str,
        mime_type: Optional[str],
        force_download: bool = True,
    ) -> None:
        """
        Answer with headers only and let the web server send the body.
        Whether the server actually maps the header to the file is up to
        its configuration, we can't see that from here.
        """

        header_set = compose_headers(filename, mime_type, force_download=force_download)
        name, value = self.offload_header(file_path)
        header_set.headers[name] = value

        log.info(f"Offloading {file_path} via {name}")
        channel.send_headers(header_set.status, header_set.headers)
        channel.finish()
