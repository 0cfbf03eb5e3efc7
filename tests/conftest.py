"""Shared fixtures: a served directory with a few deterministic files."""

import pytest

from filedelivery.delivery import FileDelivery
from filedelivery.utils.streamer import ChunkedStreamer


def make_payload(size: int) -> bytes:
    return bytes(i % 251 for i in range(size))


@pytest.fixture
def root_dir(tmp_path):
    root = tmp_path / "files"
    root.mkdir()
    return root


@pytest.fixture
def payload():
    return make_payload(1000)


@pytest.fixture
def sample_file(root_dir, payload):
    path = root_dir / "report.bin"
    path.write_bytes(payload)
    return path


@pytest.fixture
def delivery(root_dir):
    return FileDelivery(allowed_root=str(root_dir), streamer=ChunkedStreamer(chunk_size=64, flush_threshold=256))
