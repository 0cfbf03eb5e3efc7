"""
Output channels a delivery call writes its response into.

Every channel is driven from a single worker thread. Status and headers
are recorded by send_headers() and only committed on the first write,
flush or finish, so a failure discovered before any body byte goes out
can still replace them with an error response.
"""

import asyncio
import logging
import queue
import threading
import time
from typing import Dict, Optional, Protocol, Tuple

from aiohttp import web

log = logging.getLogger(__name__)


class OutputChannel(Protocol):
    headers_sent: bool

    def send_headers(self, status: int, headers: Dict[str, str]) -> None: ...

    def write(self, data: bytes) -> None: ...

    def flush(self) -> None: ...

    def is_connected(self) -> bool: ...

    def finish(self) -> None: ...


class BaseChannel:
    def __init__(self):
        self.status: int = 500
        self.headers: Dict[str, str] = {}
        self.headers_sent = False
        self.finished = False

    def send_headers(self, status: int, headers: Dict[str, str]) -> None:
        if self.headers_sent:
            raise RuntimeError("headers were already sent")

        self.status = status
        self.headers = dict(headers)

    def write(self, data: bytes) -> None:
        self._ensure_committed()
        self._write(data)

    def flush(self) -> None:
        self._ensure_committed()
        self._flush()

    def finish(self) -> None:
        if self.finished:
            return

        self.finished = True
        self._ensure_committed()
        self._finish()

    def is_connected(self) -> bool:
        raise NotImplementedError

    def _ensure_committed(self) -> None:
        if not self.headers_sent:
            self.headers_sent = True
            self._commit()

    def _commit(self) -> None:
        raise NotImplementedError

    def _write(self, data: bytes) -> None:
        raise NotImplementedError

    def _flush(self) -> None:
        pass

    def _finish(self) -> None:
        pass


class BufferChannel(BaseChannel):
    """
    Collects the whole response in memory. `disconnect_after` makes the
    peer go away once that many body bytes were written.
    """

    def __init__(self, disconnect_after: Optional[int] = None):
        super().__init__()
        self.body = bytearray()
        self.flushes = 0
        self.connected = True
        self.disconnect_after = disconnect_after

    def _commit(self) -> None:
        pass

    def _write(self, data: bytes) -> None:
        self.body += data

        if self.disconnect_after is not None and len(self.body) >= self.disconnect_after:
            self.connected = False

    def _flush(self) -> None:
        self.flushes += 1

    def is_connected(self) -> bool:
        return self.connected

    def disconnect(self) -> None:
        self.connected = False

    def getvalue(self) -> bytes:
        return bytes(self.body)


class AiohttpChannel(BaseChannel):
    """
    Bridges a worker thread to an aiohttp StreamResponse living on the
    event loop. Each operation is scheduled on the loop and waited for.
    """

    def __init__(self, request: web.Request, loop: asyncio.AbstractEventLoop):
        super().__init__()
        self.request = request
        self.loop = loop
        self.response: Optional[web.StreamResponse] = None

    def _run(self, coro):
        return asyncio.run_coroutine_threadsafe(coro, self.loop).result()

    def _commit(self) -> None:
        self.response = web.StreamResponse(status=self.status, headers=self.headers)
        self._run(self.response.prepare(self.request))

    def _write(self, data: bytes) -> None:
        self._run(self.response.write(data))

    # StreamResponse.write() already drains the transport, nothing to flush

    def _finish(self) -> None:
        self._run(self.response.write_eof())

    def is_connected(self) -> bool:
        transport = self.request.transport
        return transport is not None and not transport.is_closing()


class QueueChannel(BaseChannel):
    """
    Hands chunks to a consumer on another thread or event loop through a
    bounded queue. The consumer calls close() once its client is gone,
    which the producer observes as a disconnect.
    """

    EOF = None

    def __init__(self, maxsize: int = 8, write_timeout: float = 60.0):
        super().__init__()
        self.chunks: "queue.Queue[Optional[bytes]]" = queue.Queue(maxsize)
        self.committed = threading.Event()
        self.closed = threading.Event()
        self.write_timeout = write_timeout

    def _commit(self) -> None:
        self.committed.set()

    def _put(self, item: Optional[bytes]) -> None:
        deadline = time.monotonic() + self.write_timeout

        while not self.closed.is_set():
            try:
                self.chunks.put(item, timeout=0.1)
                return
            except queue.Full:
                if time.monotonic() >= deadline:
                    raise ConnectionResetError("consumer stopped reading")

        raise ConnectionResetError("consumer closed the channel")

    def _write(self, data: bytes) -> None:
        self._put(data)

    # the queue is bounded, there is no further buffer to flush

    def _finish(self) -> None:
        try:
            self._put(self.EOF)
        except ConnectionError:
            log.debug("Consumer gone before end of stream")

    def is_connected(self) -> bool:
        return not self.closed.is_set()

    def wait_headers(self, timeout: Optional[float] = None) -> Tuple[int, Dict[str, str]]:
        if not self.committed.wait(timeout):
            raise TimeoutError("no response headers were produced")

        return self.status, self.headers

    def get(self) -> Optional[bytes]:
        """Next chunk, or None once the producer finished."""

        try:
            return self.chunks.get(timeout=self.write_timeout)
        except queue.Empty:
            log.warning("Producer stalled, ending stream")
            return self.EOF

    def close(self) -> None:
        self.closed.set()
