import shutil
import tempfile
from pathlib import Path
from typing import Any

import pytest

from editorlens.daemon.editor import EditorChannel
from editorlens.daemon.handlers import HandlerContext
from editorlens.daemon.rpc import EditorMeta
from editorlens.daemon.session import Document, Session
from editorlens.lsp.types import CodeLens, ServerCapabilities
from editorlens.utils.config import DEFAULT_CONFIG
from editorlens.utils.uri import path_to_uri

BUFFILE = "/project/src/app.py"


@pytest.fixture
def temp_dir():
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def isolated_config(temp_dir, monkeypatch):
    cache_dir = temp_dir / "cache"
    config_dir = temp_dir / "config"
    cache_dir.mkdir()
    config_dir.mkdir()

    monkeypatch.setenv("XDG_CACHE_HOME", str(cache_dir))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(config_dir))

    return {"cache": cache_dir, "config": config_dir}


class RecordingChannel(EditorChannel):
    def __init__(self):
        self.sent: list[tuple[EditorMeta, str]] = []

    def exec(self, meta: EditorMeta, command: str) -> None:
        self.sent.append((meta, command))

    @property
    def commands(self) -> list[str]:
        return [command for _, command in self.sent]


class FakeClient:
    """Stands in for LSPClient: canned responses, recorded traffic."""

    def __init__(
        self,
        capabilities: dict[str, Any] | None = None,
        position_encoding: str = "utf-16",
    ):
        self.capabilities = ServerCapabilities.model_validate(capabilities or {})
        self.position_encoding = position_encoding
        self.responses: dict[str, Any] = {}
        self.requests: list[tuple[str, Any]] = []
        self.notifications: list[tuple[str, Any]] = []
        self.notification_handlers: dict[str, Any] = {}

    async def send_request(self, method: str, params: Any, timeout: float | None = None) -> Any:
        self.requests.append((method, params))
        response = self.responses.get(method)
        if isinstance(response, Exception):
            raise response
        return response

    async def send_notification(self, method: str, params: Any) -> None:
        self.notifications.append((method, params))

    def on_notification(self, method: str, handler) -> None:
        self.notification_handlers[method] = handler


@pytest.fixture
def editor():
    return RecordingChannel()


@pytest.fixture
def client():
    return FakeClient(capabilities={"codeLensProvider": {}, "executeCommandProvider": {"commands": []}})


@pytest.fixture
def session(editor, client):
    session = Session(editor=editor, config=dict(DEFAULT_CONFIG))
    session.client = client
    return session


@pytest.fixture
def ctx(session):
    return HandlerContext(session=session)


@pytest.fixture
def meta():
    return EditorMeta(session="kak-1", client="client0", buffile=BUFFILE)


def open_document(session: Session, text: str, version: int = 1, buffile: str = BUFFILE) -> Document:
    doc = Document(uri=path_to_uri(buffile), version=version, text=text, language_id="python")
    session.documents[buffile] = doc
    return doc


def make_lens(
    start_line: int,
    end_line: int | None = None,
    title: str | None = "lens",
    command: str = "editor.action.run",
    arguments: list[Any] | None = None,
) -> CodeLens:
    end_line = start_line if end_line is None else end_line
    data: dict[str, Any] = {
        "range": {
            "start": {"line": start_line, "character": 0},
            "end": {"line": end_line, "character": 4},
        }
    }
    if title is not None:
        data["command"] = {"title": title, "command": command, "arguments": arguments}
    return CodeLens.model_validate(data)
