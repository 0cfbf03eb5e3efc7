import pytest
from fastapi.testclient import TestClient

from app import app


@pytest.fixture
def client(delivery, sample_file):
    previous = app.state.delivery
    app.state.delivery = delivery
    with TestClient(app) as test_client:
        yield test_client
    app.state.delivery = previous


def test_full_download(client, payload):
    resp = client.get("/download/report.bin")

    assert resp.status_code == 200
    assert resp.headers["content-length"] == "1000"
    assert resp.headers["accept-ranges"] == "bytes"
    assert resp.content == payload


def test_partial_download(client, payload):
    resp = client.get("/download/report.bin", headers={"Range": "bytes=10-19"})

    assert resp.status_code == 206
    assert resp.headers["content-range"] == "bytes 10-19/1000"
    assert resp.content == payload[10:20]


def test_unsatisfiable_range(client):
    resp = client.get("/download/report.bin", headers={"Range": "bytes=1200-1300"})

    assert resp.status_code == 416
    assert resp.headers["content-range"] == "bytes */1000"
    assert resp.content == b""


def test_missing_file(client):
    resp = client.get("/download/missing.bin")

    assert resp.status_code == 404


def test_dangerous_type_downloaded(client, root_dir):
    (root_dir / "x.js").write_text("alert(1)")

    resp = client.get("/download/x.js", params={"download": "0"})

    assert resp.headers["content-type"] == "application/octet-stream"
    assert resp.headers["content-disposition"].startswith("attachment;")


def test_head_request(client):
    resp = client.head("/download/report.bin")

    assert resp.status_code == 200
    assert resp.headers["content-length"] == "1000"
    assert resp.content == b""
