"""Local fake-response server used while the browser tests run.

Tests that issue network requests are pointed at this server so they get
canned answers instead of depending on live services.
"""

from __future__ import annotations

import threading
import time
from pathlib import Path
from typing import Any

import httpx
import structlog
import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import FileResponse, JSONResponse, Response
from fastapi.templating import Jinja2Templates

from .config import CannedResponse, FakeServerConfig
from .environment import get_serve_mode

logger = structlog.get_logger(__name__)

TEMPLATES_DIR = Path(__file__).parent / "templates"


def _cors_headers(request: Request) -> dict[str, str]:
    origin = request.headers.get("origin")
    source_origin = request.query_params.get("__amp_source_origin")
    headers = {
        "Access-Control-Allow-Origin": origin or "*",
        "Access-Control-Allow-Credentials": "true",
        "Access-Control-Expose-Headers": "AMP-Access-Control-Allow-Source-Origin",
    }
    if source_origin:
        headers["AMP-Access-Control-Allow-Source-Origin"] = source_origin
    return headers


def _canned_endpoint(canned: CannedResponse):
    async def _endpoint(request: Request) -> Response:
        headers = dict(canned.headers)
        headers.update(_cors_headers(request))
        if canned.json_body is not None:
            return JSONResponse(content=canned.json_body, status_code=canned.status_code, headers=headers)
        return Response(
            content=canned.body,
            status_code=canned.status_code,
            media_type=canned.content_type,
            headers=headers,
        )

    return _endpoint


def _resolve_under(root: Path, rel_path: str) -> Path:
    candidate = (root / rel_path).resolve()
    if candidate != root and root not in candidate.parents:
        raise HTTPException(status_code=404, detail="Not Found")
    return candidate


def create_app(config: FakeServerConfig | None = None) -> FastAPI:
    config = config or FakeServerConfig()
    root = Path(config.root).resolve()

    app = FastAPI(title="Test responses server", version="0.1.0")
    app.state.config = config
    app.state.templates = Jinja2Templates(directory=str(TEMPLATES_DIR))

    @app.get("/healthz")
    async def healthz() -> dict[str, Any]:
        return {"status": "healthy", "service": "fake-response-server"}

    @app.get("/serve-mode")
    async def serve_mode(request: Request) -> JSONResponse:
        return JSONResponse(content={"serveMode": get_serve_mode()}, headers=_cors_headers(request))

    @app.post("/form/echo-json/post")
    async def echo_json(request: Request) -> JSONResponse:
        content_type = request.headers.get("content-type", "")
        if content_type.startswith("application/json"):
            payload = await request.json()
        else:
            form = await request.form()
            payload = {key: form.getlist(key) if len(form.getlist(key)) > 1 else form.get(key) for key in form.keys()}
        return JSONResponse(content=payload, headers=_cors_headers(request))

    @app.api_route("/status/{code}", methods=["GET", "POST"])
    async def status(code: int, request: Request) -> Response:
        if code < 100 or code > 599:
            raise HTTPException(status_code=400, detail="invalid_status_code")
        return Response(status_code=code, headers=_cors_headers(request))

    for canned in config.canned_responses:
        app.add_api_route(
            canned.path,
            _canned_endpoint(canned),
            methods=[canned.method.upper()],
            include_in_schema=False,
        )

    @app.get("/{rel_path:path}")
    async def static_files(rel_path: str, request: Request) -> Response:
        target = _resolve_under(root, rel_path)
        if target.is_file():
            return FileResponse(str(target))
        if target.is_dir() and config.directory_listing:
            url_path = "/" + rel_path.strip("/")
            prefix = url_path.rstrip("/") + "/"
            entries = []
            for p in sorted(target.iterdir(), key=lambda p: (not p.is_dir(), p.name)):
                name = p.name + ("/" if p.is_dir() else "")
                entries.append({"name": name, "href": prefix + name})
            return app.state.templates.TemplateResponse(
                request,
                "directory_listing.html",
                {"path": url_path, "parent": prefix.rstrip("/").rsplit("/", 1)[0] + "/", "entries": entries},
            )
        raise HTTPException(status_code=404, detail="Not Found")

    return app


class ServerStartError(RuntimeError):
    def __init__(self, host: str, port: int):
        super().__init__(f"Test responses server did not start on {host}:{port}")
        self.host = host
        self.port = port


class FakeResponseServer:
    """Runs the fake-response app with uvicorn on a background thread."""

    def __init__(self, config: FakeServerConfig | None = None, app: FastAPI | None = None):
        self.config = config or FakeServerConfig()
        self.app = app or create_app(self.config)
        self._server: uvicorn.Server | None = None
        self._thread: threading.Thread | None = None

    @property
    def base_url(self) -> str:
        return f"http://{self.config.host}:{self.config.port}"

    def __enter__(self) -> "FakeResponseServer":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()

    def start(self) -> None:
        uv_config = uvicorn.Config(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level="warning",
            access_log=False,
        )
        self._server = uvicorn.Server(uv_config)
        self._thread = threading.Thread(target=self._server.run, name="fake-response-server", daemon=True)
        self._thread.start()
        self._wait_until_ready()
        logger.info("Started test responses server", host=self.config.host, port=self.config.port)

    def _wait_until_ready(self) -> None:
        deadline = time.monotonic() + float(self.config.startup_timeout)
        with httpx.Client() as client:
            while time.monotonic() < deadline:
                if self._thread is not None and not self._thread.is_alive():
                    break
                try:
                    r = client.get(f"{self.base_url}/healthz", timeout=1.0)
                    if r.status_code == 200:
                        return
                except httpx.HTTPError:
                    pass
                time.sleep(0.05)
        self.stop()
        raise ServerStartError(self.config.host, self.config.port)

    def stop(self) -> None:
        if self._server is None:
            return
        logger.info("Shutting down test responses server", host=self.config.host, port=self.config.port)
        self._server.should_exit = True
        if self._thread is not None:
            self._thread.join(timeout=5)
        self._server = None
        self._thread = None
