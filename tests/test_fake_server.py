from __future__ import annotations

import socket
from pathlib import Path

import httpx
import pytest

from runtime_harness.config import CannedResponse, FakeServerConfig
from runtime_harness.environment import set_serve_mode
from runtime_harness.fake_server import FakeResponseServer, ServerStartError


def _pick_free_port() -> int:
    s = socket.socket()
    s.bind(("127.0.0.1", 0))
    port = int(s.getsockname()[1])
    s.close()
    return port


@pytest.fixture()
def served_root(tmp_path: Path) -> Path:
    (tmp_path / "test" / "fixtures").mkdir(parents=True)
    (tmp_path / "test" / "fixtures" / "served.html").write_text("<p>served</p>", encoding="utf-8")
    (tmp_path / "README.md").write_text("readme", encoding="utf-8")
    return tmp_path


@pytest.fixture()
def fake_server(served_root: Path):
    config = FakeServerConfig(
        host="127.0.0.1",
        port=_pick_free_port(),
        root=str(served_root),
        canned_responses=[
            CannedResponse(path="/list/fruit-data/get", json_body={"items": [{"name": "apple"}]}),
            CannedResponse(path="/iframe/unavailable", status_code=503, body="Service Unavailable"),
        ],
    )
    with FakeResponseServer(config) as server:
        yield server


def test_server_answers_health_and_canned_routes(fake_server: FakeResponseServer) -> None:
    with httpx.Client(base_url=fake_server.base_url) as client:
        assert client.get("/healthz").json()["status"] == "healthy"

        fruit = client.get("/list/fruit-data/get")
        assert fruit.status_code == 200
        assert fruit.json() == {"items": [{"name": "apple"}]}

        down = client.get("/iframe/unavailable")
        assert down.status_code == 503
        assert down.text == "Service Unavailable"

        assert client.get("/status/418").status_code == 418


def test_echo_json_form_and_cors(fake_server: FakeResponseServer) -> None:
    with httpx.Client(base_url=fake_server.base_url) as client:
        r = client.post(
            "/form/echo-json/post?__amp_source_origin=http%3A%2F%2Flocalhost%3A9876",
            data={"name": "amp", "email": "amp@example.com"},
            headers={"Origin": "http://localhost:9876"},
        )
        assert r.status_code == 200
        assert r.json() == {"name": "amp", "email": "amp@example.com"}
        assert r.headers["access-control-allow-origin"] == "http://localhost:9876"
        assert r.headers["amp-access-control-allow-source-origin"] == "http://localhost:9876"

        j = client.post("/form/echo-json/post", json={"a": 1})
        assert j.json() == {"a": 1}


def test_serve_mode_reflects_environment(fake_server: FakeResponseServer, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SERVE_MODE", "default")
    set_serve_mode(True)
    with httpx.Client(base_url=fake_server.base_url) as client:
        assert client.get("/serve-mode").json() == {"serveMode": "compiled"}
    set_serve_mode(False)
    with httpx.Client(base_url=fake_server.base_url) as client:
        assert client.get("/serve-mode").json() == {"serveMode": "default"}


def test_static_files_and_directory_listing(fake_server: FakeResponseServer) -> None:
    with httpx.Client(base_url=fake_server.base_url) as client:
        page = client.get("/test/fixtures/served.html")
        assert page.status_code == 200
        assert page.text == "<p>served</p>"

        listing = client.get("/test/fixtures")
        assert listing.status_code == 200
        assert 'href="/test/fixtures/served.html"' in listing.text

        root = client.get("/")
        assert 'href="/test/"' in root.text
        assert 'href="/README.md"' in root.text

        assert client.get("/missing.js").status_code == 404
        assert client.get("/../../etc/passwd").status_code == 404


def test_server_stops_on_exit(served_root: Path) -> None:
    config = FakeServerConfig(host="127.0.0.1", port=_pick_free_port(), root=str(served_root))
    with FakeResponseServer(config) as server:
        base_url = server.base_url
    with pytest.raises(httpx.HTTPError):
        httpx.get(f"{base_url}/healthz", timeout=1.0)


def test_start_fails_when_port_is_taken(served_root: Path) -> None:
    holder = socket.socket()
    holder.bind(("127.0.0.1", 0))
    holder.listen(1)
    port = int(holder.getsockname()[1])
    try:
        config = FakeServerConfig(host="127.0.0.1", port=port, root=str(served_root), startup_timeout=5)
        server = FakeResponseServer(config)
        with pytest.raises(ServerStartError) as excinfo:
            server.start()
        assert (excinfo.value.host, excinfo.value.port) == ("127.0.0.1", port)
    finally:
        holder.close()
