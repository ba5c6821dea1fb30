import logging
import threading
from dataclasses import dataclass
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from uuid import UUID

import pytest

from metaverse_sdk_automation.config.automation_config import AutomationConfig

MOCKED_API_URL = "http://api.test/v2"
MOCKED_TOKEN = "test-token"
MOCKED_ENTITY_ID = "3f1c0b7e-7f0a-4c44-9a1e-6c1f2d9e4b10"
MOCKED_APP_ID = "9b2e4d61-0c3a-4f7e-8a55-2d7c1e9f0a34"


@dataclass
class CapturedRequest:
    method: str
    path: str
    headers: dict[str, str]
    body: bytes


class _CapturingHandler(BaseHTTPRequestHandler):
    protocol_version = "HTTP/1.1"

    def _capture(self) -> None:
        length = int(self.headers.get("Content-Length") or 0)
        body = self.rfile.read(length) if length else b""
        self.server.requests.append(
            CapturedRequest(
                method=self.command,
                path=self.path,
                headers={k.lower(): v for k, v in self.headers.items()},
                body=body,
            )
        )
        status, payload = self.server.status, self.server.payload
        try:
            self.send_response(status)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(payload)))
            self.send_header("Connection", "close")
            self.end_headers()
            self.wfile.write(payload)
        except (BrokenPipeError, ConnectionResetError):
            # client aborted the body
            pass

    do_PUT = _capture
    do_POST = _capture

    def log_message(self, format, *args):
        pass


class UploadServer(ThreadingHTTPServer):
    """Local HTTP server recording every request it receives."""

    daemon_threads = True

    def __init__(self) -> None:
        super().__init__(("127.0.0.1", 0), _CapturingHandler)
        self.requests: list[CapturedRequest] = []
        self.status = 200
        self.payload = b""

    @property
    def url(self) -> str:
        return f"http://127.0.0.1:{self.server_port}"

    def respond(self, status: int, payload: bytes = b"") -> None:
        self.status = status
        self.payload = payload


@pytest.fixture
def upload_server():
    """Fixture running a capturing HTTP server on a free local port."""
    server = UploadServer()
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield server
    finally:
        server.shutdown()
        server.server_close()
        thread.join(timeout=5)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the caller's environment out of configuration tests."""
    for name in (
        "METAVERSE_API_URL",
        "METAVERSE_TOKEN",
        "METAVERSE_CHUNK_SIZE",
        "METAVERSE_HTTP_TIMEOUT",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def reset_package_logger():
    """Undo handlers and propagation changes made by configure_logging."""
    package_logger = logging.getLogger("metaverse_sdk_automation")
    yield
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()
    package_logger.propagate = True
    package_logger.setLevel(logging.NOTSET)


@pytest.fixture
def config() -> AutomationConfig:
    return AutomationConfig(api_url=MOCKED_API_URL, token=MOCKED_TOKEN, timeout=10)


@pytest.fixture
def make_file(tmp_path):
    """Factory fixture writing ``data`` to a file under ``tmp_path``."""

    def _make(name: str, data: bytes) -> Path:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return path

    return _make


@pytest.fixture
def entity_id() -> UUID:
    return UUID(MOCKED_ENTITY_ID)


@pytest.fixture
def app_id() -> UUID:
    return UUID(MOCKED_APP_ID)


@pytest.fixture
def unreal_project(tmp_path) -> Path:
    """Minimal Unreal project layout with one plugin named ``MyPlugin``."""
    project_dir = tmp_path / "MyProject"
    plugin_dir = project_dir / "Plugins" / "MyPlugin"
    content_dir = plugin_dir / "Temp" / "MyPlugin"
    (content_dir / "Content" / "Maps").mkdir(parents=True)
    (project_dir / "Config").mkdir()

    (project_dir / "MyProject.uproject").write_text('{"FileVersion": 3}')
    (project_dir / "Config" / "DefaultGame.ini").write_text(
        "[/Script/EngineSettings.GeneralProjectSettings]\n"
        "ProjectID=ABCDEF\n"
        "ProjectVersion=1.2.0\n"
        "+MapsToCook=(FilePath=\"/Game/Maps/Main\")\n"
        "+MapsToCook=(FilePath=\"/Game/Maps/Other\")\n"
    )
    (plugin_dir / "MyPlugin.uplugin").write_text('{"FriendlyName": "MyPlugin"}')
    (content_dir / "MyPlugin.uplugin").write_text('{"FriendlyName": "MyPlugin"}')
    (content_dir / "Content" / "Maps" / "Main.umap").write_bytes(b"\x00umap" * 64)
    return project_dir
