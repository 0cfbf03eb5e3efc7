import logging
from typing import Optional

from filedelivery.server.exceptions import FileUnreadable
from filedelivery.utils.channels import OutputChannel

log = logging.getLogger(__name__)

# ================= CONFIG ================= #

DEFAULT_CHUNK = 1024 * 1024
FLUSH_EVERY = 10 * 1024 * 1024

# ========================================= #


class ChunkedStreamer:
    def __init__(self, chunk_size: int = DEFAULT_CHUNK, flush_threshold: int = FLUSH_EVERY):
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")

        self.chunk_size = chunk_size
        self.flush_threshold = flush_threshold

    def stream(
        self,
        file_path: str,
        start: int,
        end: int,
        channel: OutputChannel,
        chunk_size: Optional[int] = None,
    ) -> int:
        """
        Send bytes start..end (inclusive) of file_path to the channel and
        return how many were actually sent.

        The peer is polled before every chunk; once it is gone the loop
        stops quietly. A read error also ends the transfer early, leaving
        a partial response behind. Only a failure to open the file raises.
        """

        chunk_size = chunk_size or self.chunk_size

        try:
            handle = open(file_path, "rb")
        except OSError as e:
            log.error(f"Cannot open {file_path}: {e}")
            raise FileUnreadable() from e

        bytes_to_send = end - start + 1
        bytes_sent = 0
        unflushed = 0

        with handle:
            if start > 0:
                handle.seek(start)

            while bytes_sent < bytes_to_send:
                if not channel.is_connected():
                    log.info(f"Peer disconnected after {bytes_sent}/{bytes_to_send} bytes of {file_path}")
                    return bytes_sent

                read_size = min(chunk_size, bytes_to_send - bytes_sent)

                try:
                    data = handle.read(read_size)
                except OSError as e:
                    log.warning(f"Read error on {file_path} at byte {start + bytes_sent}: {e}")
                    break

                if not data:
                    break

                try:
                    channel.write(data)
                    bytes_sent += len(data)
                    unflushed += len(data)

                    if unflushed >= self.flush_threshold:
                        channel.flush()
                        unflushed = 0
                except ConnectionError:
                    log.info(f"Connection lost after {bytes_sent}/{bytes_to_send} bytes of {file_path}")
                    return bytes_sent

        if channel.is_connected():
            try:
                channel.flush()
            except ConnectionError:
                log.debug("Connection lost on final flush")

        return bytes_sent
