"""
Entry point of the delivery core.

A FileDelivery validates the target, then either hands the transfer to
the web server in front of us or streams the file (or a byte range of
it) into an output channel. It is stateless between calls and safe to
share across worker threads.
"""

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, Optional

from filedelivery.info import settings
from filedelivery.server.exceptions import (
    DeliveryError,
    ErrorKind,
    FileNotFound,
    PathNotAllowed,
    RangeNotSatisfiable,
)
from filedelivery.utils.channels import OutputChannel
from filedelivery.utils.file_properties import is_within_directory, resolve_mime_type, sanitize_path
from filedelivery.utils.headers import NO_CACHE_HEADERS, SECURITY_HEADERS, compose_headers, unsatisfiable_headers
from filedelivery.utils.offload import OffloadDispatcher
from filedelivery.utils.range_parser import parse_range
from filedelivery.utils.streamer import ChunkedStreamer

log = logging.getLogger(__name__)


class DeliveryState(str, Enum):
    VALIDATING = "validating"
    OFFLOADING = "offloading"
    STREAMING_FULL = "streaming_full"
    STREAMING_PARTIAL = "streaming_partial"
    REJECTED = "rejected"


class OutcomeKind(str, Enum):
    OFFLOADED = "offloaded"
    STREAMED = "streamed"
    FAILED = "failed"


@dataclass(frozen=True)
class DeliveryOutcome:
    kind: OutcomeKind
    state: DeliveryState
    bytes_sent: int = 0
    error: Optional[ErrorKind] = None

    @classmethod
    def offloaded(cls) -> "DeliveryOutcome":
        return cls(OutcomeKind.OFFLOADED, DeliveryState.OFFLOADING)

    @classmethod
    def streamed(cls, bytes_sent: int, state: DeliveryState) -> "DeliveryOutcome":
        return cls(OutcomeKind.STREAMED, state, bytes_sent)

    @classmethod
    def failed(cls, error: ErrorKind) -> "DeliveryOutcome":
        return cls(OutcomeKind.FAILED, DeliveryState.REJECTED, error=error)


@dataclass
class DeliveryRequest:
    file_path: str
    display_filename: Optional[str] = None
    mime_type: Optional[str] = None
    force_download: bool = True
    chunk_size: int = field(default_factory=lambda: settings.chunk_size)
    range_enabled: bool = field(default_factory=lambda: settings.enable_range)
    offload_enabled: bool = field(default_factory=lambda: settings.enable_offload)

    def __post_init__(self):
        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be a positive number of bytes")

        if not self.display_filename:
            self.display_filename = os.path.basename(self.file_path)


class FileDelivery:
    def __init__(
        self,
        allowed_root: Optional[str] = None,
        restricted_protocols: Iterable[str] = settings.restricted_protocols,
        streamer: Optional[ChunkedStreamer] = None,
        dispatcher: Optional[OffloadDispatcher] = None,
        mime_resolver: Callable[[str], str] = resolve_mime_type,
    ):
        self.allowed_root = str(allowed_root) if allowed_root is not None else None
        self.restricted_protocols = tuple(restricted_protocols)
        self.streamer = streamer or ChunkedStreamer(settings.chunk_size, settings.flush_threshold)
        self.dispatcher = dispatcher or OffloadDispatcher()
        self.mime_resolver = mime_resolver

    @classmethod
    def from_settings(cls, config=settings) -> "FileDelivery":
        return cls(
            allowed_root=config.root_dir,
            restricted_protocols=config.restricted_protocols,
            streamer=ChunkedStreamer(config.chunk_size, config.flush_threshold),
            dispatcher=OffloadDispatcher(config.offload_mechanism, config.offload_internal_prefix),
        )

    def validate(self, request: DeliveryRequest) -> str:
        """Sanitize and check the target; returns the path to serve."""

        path = sanitize_path(request.file_path, self.restricted_protocols)
        if not path:
            raise FileNotFound()

        if self.allowed_root is not None and not is_within_directory(path, self.allowed_root):
            raise PathNotAllowed()

        if not os.path.isfile(path) or not os.access(path, os.R_OK):
            raise FileNotFound()

        return path

    def deliver(
        self,
        request: DeliveryRequest,
        channel: OutputChannel,
        range_header: Optional[str] = None,
        send_body: bool = True,
    ) -> DeliveryOutcome:
        """
        Serve one file into the channel and report what happened.

        Rejections (403, 404, 416, 500 on open failure) are written to
        the channel as error responses, never raised. A peer that goes
        away mid-transfer just ends the stream. The channel is finished
        on every path.
        """

        try:
            path = self.validate(request)
            mime_type = request.mime_type or self.mime_resolver(path)

            if request.offload_enabled and self.dispatcher.supported():
                self.dispatcher.dispatch(
                    path,
                    channel,
                    request.display_filename,
                    mime_type,
                    force_download=request.force_download,
                )
                return DeliveryOutcome.offloaded()

            try:
                total_size = os.path.getsize(path)
            except OSError as e:
                raise FileNotFound() from e

            byte_range = None
            if request.range_enabled:
                byte_range = parse_range(range_header, total_size)

            header_set = compose_headers(
                request.display_filename,
                mime_type,
                force_download=request.force_download,
                range_enabled=request.range_enabled,
                byte_range=byte_range,
                total_size=total_size,
            )
            channel.send_headers(header_set.status, header_set.headers)

            if byte_range is not None:
                state = DeliveryState.STREAMING_PARTIAL
                start, end = byte_range.start, byte_range.end
            else:
                state = DeliveryState.STREAMING_FULL
                start, end = 0, total_size - 1

            if not send_body:
                return DeliveryOutcome.streamed(0, state)

            bytes_sent = self.streamer.stream(path, start, end, channel, request.chunk_size)
            log.debug(f"Sent {bytes_sent} bytes of {path} ({state.value})")
            return DeliveryOutcome.streamed(bytes_sent, state)

        except DeliveryError as e:
            log.warning(f"Rejected {request.file_path}: {e.status} {e.message}")
            self._reject(channel, e, send_body)
            return DeliveryOutcome.failed(e.kind)

        finally:
            try:
                channel.finish()
            except ConnectionError:
                log.debug("Connection lost before the response was finished")

    @staticmethod
    def _reject(channel: OutputChannel, error: DeliveryError, send_body: bool) -> None:
        if channel.headers_sent:
            log.error(f"Cannot send {error.status}, response already started")
            return

        if isinstance(error, RangeNotSatisfiable):
            header_set = unsatisfiable_headers(error.total_size)
            channel.send_headers(header_set.status, header_set.headers)
            return

        body = error.message.encode()
        headers = {**NO_CACHE_HEADERS, **SECURITY_HEADERS}
        headers["Content-Type"] = "text/plain; charset=utf-8"
        headers["Content-Length"] = str(len(body))
        channel.send_headers(error.status, headers)

        if send_body:
            try:
                channel.write(body)
            except ConnectionError:
                log.debug("Connection lost while sending error body")
