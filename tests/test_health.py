from fastapi.testclient import TestClient

from exhibit_api import __version__
from exhibit_api.main import app

client = TestClient(app)


def test_root():
    resp = client.get("/")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "service": "exhibit-api", "version": __version__}


def test_health():
    assert client.get("/health").json() == {"status": "healthy"}


def test_healthz():
    assert client.get("/healthz").json() == {"status": "ok"}
