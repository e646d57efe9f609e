"""Base protocol framing and the errors raised while talking to a server."""

import asyncio
import json
from typing import Any

METHOD_NOT_FOUND = -32601
REQUEST_FAILED = -1


class LSPProtocolError(Exception):
    pass


class LSPResponseError(Exception):
    code: int
    message: str
    data: object | None

    def __init__(self, code: int, message: str, data: object | None = None):
        self.code = code
        self.message = message
        self.data = data
        super().__init__(f"LSP Error {code}: {message}")

    def is_method_not_found(self) -> bool:
        # some servers answer unknown commands with a generic code and a telling message
        return self.code == METHOD_NOT_FOUND or "not found" in self.message.lower()


class LSPMethodNotSupported(Exception):
    def __init__(self, method: str, server_name: str):
        self.method = method
        self.server_name = server_name
        super().__init__(f"{method} is not supported by {server_name}")


class LanguageServerNotFound(Exception):
    def __init__(self, server_name: str):
        self.server_name = server_name
        super().__init__(
            f"Language server '{server_name}' not found. "
            "Set [server] command in the editorlens config."
        )


class LanguageServerStartupError(Exception):
    """The server process ran but never answered ``initialize``.

    The first line of the message is what the editor shows; the rest (the tail
    of the server's stderr log) ends up in the daemon log.
    """

    def __init__(
        self,
        server_name: str,
        workspace_root: str,
        original_error: Exception,
        server_log: str | None = None,
        log_path: str | None = None,
    ):
        self.server_name = server_name
        self.workspace_root = workspace_root
        self.original_error = original_error
        self.server_log = server_log
        self.log_path = log_path

        message = f"Language server '{server_name}' failed to start in {workspace_root}: {original_error}"
        if server_log and server_log.strip():
            tail = "\n".join(f"  {line}" for line in server_log.strip().splitlines()[-20:])
            message += f"\n\nServer log (last 20 lines):\n{tail}"
        if log_path:
            message += f"\n\nFull server log: {log_path}"
        super().__init__(message)


def encode_message(obj: dict[str, Any]) -> bytes:
    content = json.dumps(obj).encode("utf-8")
    return b"Content-Length: %d\r\n\r\n" % len(content) + content


async def _read_content_length(reader: asyncio.StreamReader) -> int:
    content_length = None
    while True:
        line = await reader.readline()
        if not line:
            raise LSPProtocolError("Connection closed")
        if not line.strip():
            break

        name, _, value = line.decode("ascii").partition(":")
        # Content-Type is the only other header and always utf-8 JSON in practice
        if name.strip().lower() == "content-length":
            content_length = int(value)

    if content_length is None:
        raise LSPProtocolError("Missing Content-Length header")
    return content_length


async def read_message(reader: asyncio.StreamReader) -> dict[str, Any]:
    content_length = await _read_content_length(reader)
    try:
        content = await reader.readexactly(content_length)
    except asyncio.IncompleteReadError as e:
        raise LSPProtocolError(
            f"Connection closed after {len(e.partial)} of {content_length} bytes"
        )

    return json.loads(content.decode("utf-8"))
