import asyncio
import logging
import os
from collections.abc import Awaitable
from pathlib import Path
from typing import Any, Callable, Literal, TextIO, overload

from pydantic import BaseModel

from .capabilities import get_client_capabilities
from .protocol import (
    METHOD_NOT_FOUND,
    REQUEST_FAILED,
    LSPProtocolError,
    LSPResponseError,
    encode_message,
    read_message,
)
from .types import (
    ClientCapabilities,
    CodeLens,
    CodeLensParams,
    CodeLensResponse,
    ExecuteCommandParams,
    InitializeParams,
    InitializeResult,
    ServerCapabilities,
    WorkspaceFolder,
)

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = float(os.environ.get("EDITORLENS_REQUEST_TIMEOUT", "30"))
SHUTDOWN_TIMEOUT = 5.0

SUPPORTED_ENCODINGS = ("utf-8", "utf-16", "utf-32")

NotificationHandler = Callable[[dict[str, Any] | None], Awaitable[None]]

# Requests the server may send us, answered without any editor involvement.
# workspace/configuration is handled separately since its reply mirrors the request.
SERVER_REQUEST_REPLIES: dict[str, Any] = {
    "window/workDoneProgress/create": None,
    "client/registerCapability": None,
    "client/unregisterCapability": None,
    # lenses are pulled again on the editor's next idle hook
    "workspace/codeLens/refresh": None,
    "workspace/applyEdit": {"applied": False, "failureReason": "editorlens does not apply edits"},
}


class LSPClient:
    """One language server process, spoken to over its stdio."""

    process: asyncio.subprocess.Process
    workspace_root: str
    init_options: dict[str, object]
    server_name: str | None
    log_file: Path | None
    position_encodings: list[str]
    request_timeout: float
    _request_id: int
    _pending_requests: dict[int, asyncio.Future[Any]]
    _reader_task: asyncio.Task[None] | None
    _stderr_task: asyncio.Task[None] | None
    _initialized: bool
    _server_capabilities: ServerCapabilities
    _position_encoding: str
    _notification_handlers: dict[str, NotificationHandler]
    _log_handle: TextIO | None

    def __init__(
        self,
        process: asyncio.subprocess.Process,
        workspace_root: str,
        init_options: dict[str, object] | None = None,
        server_name: str | None = None,
        log_file: Path | None = None,
        position_encodings: list[str] | None = None,
        request_timeout: float | None = None,
    ):
        self.process = process
        self.workspace_root = workspace_root
        self.init_options = init_options or {}
        self.server_name = server_name
        self.log_file = log_file
        self.position_encodings = position_encodings or ["utf-16"]
        self.request_timeout = request_timeout or REQUEST_TIMEOUT
        self._request_id = 0
        self._pending_requests = {}
        self._reader_task = None
        self._stderr_task = None
        self._initialized = False
        self._server_capabilities = ServerCapabilities()
        self._position_encoding = "utf-16"
        self._notification_handlers = {}
        self._log_handle = None

    @property
    def capabilities(self) -> ServerCapabilities:
        return self._server_capabilities

    @property
    def position_encoding(self) -> str:
        """Encoding of ``character`` offsets, settled during initialize."""
        return self._position_encoding

    async def start(self) -> None:
        assert self.process.stdout is not None
        self._reader_task = asyncio.create_task(self._read_loop(self.process.stdout))
        if self.process.stderr is not None:
            if self.log_file:
                self.log_file.parent.mkdir(parents=True, exist_ok=True)
                self._log_handle = open(self.log_file, "a")
            self._stderr_task = asyncio.create_task(self._copy_stderr(self.process.stderr))
        await self._initialize()

    async def stop(self) -> None:
        if self._initialized:
            try:
                await self.send_request("shutdown", None, timeout=SHUTDOWN_TIMEOUT)
                await self.send_notification("exit", None)
            except Exception as e:
                logger.warning(f"{self.server_name} did not shut down cleanly: {e}")
            self._initialized = False

        for task in (self._reader_task, self._stderr_task):
            if task is None:
                continue
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        if self.process.returncode is None:
            self.process.terminate()
            try:
                await asyncio.wait_for(self.process.wait(), timeout=SHUTDOWN_TIMEOUT)
            except asyncio.TimeoutError:
                self.process.kill()

    async def _initialize(self) -> None:
        root_name = self.workspace_root.rstrip("/").rsplit("/", 1)[-1]
        params = InitializeParams(
            processId=os.getpid(),
            rootUri=self.workspace_root,
            rootPath=self.workspace_root.removeprefix("file://"),
            capabilities=ClientCapabilities.model_validate(
                get_client_capabilities(self.position_encodings)
            ),
            workspaceFolders=[WorkspaceFolder(uri=self.workspace_root, name=root_name)],
            initializationOptions=self.init_options or None,
        )

        result = await self.send_request("initialize", params)
        self._server_capabilities = result.capabilities
        self._position_encoding = negotiate_position_encoding(result)
        logger.info(
            f"{self.server_name} initialized: {self._position_encoding} offsets, "
            f"codeLens={self._server_capabilities.supports_code_lens()}"
        )
        await self.send_notification("initialized", {})
        self._initialized = True

    @overload
    async def send_request(
        self,
        method: Literal["initialize"],
        params: InitializeParams,
        timeout: float | None = None,
    ) -> InitializeResult: ...

    @overload
    async def send_request(
        self,
        method: Literal["shutdown"],
        params: None,
        timeout: float | None = None,
    ) -> None: ...

    @overload
    async def send_request(
        self,
        method: Literal["textDocument/codeLens"],
        params: CodeLensParams,
        timeout: float | None = None,
    ) -> CodeLensResponse: ...

    @overload
    async def send_request(
        self,
        method: Literal["workspace/executeCommand"],
        params: ExecuteCommandParams,
        timeout: float | None = None,
    ) -> Any: ...

    @overload
    async def send_request(
        self,
        method: str,
        params: Any,
        timeout: float | None = None,
    ) -> Any: ...

    async def send_request(
        self,
        method: str,
        params: Any,
        timeout: float | None = None,
    ) -> Any:
        self._request_id += 1
        request_id = self._request_id
        timeout = timeout or self.request_timeout

        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._pending_requests[request_id] = future

        logger.debug(f"LSP REQUEST [{request_id}] {method}")
        await self._write(_message(method, params, request_id=request_id))

        try:
            raw_result = await asyncio.wait_for(future, timeout=timeout)
        except asyncio.TimeoutError:
            self._pending_requests.pop(request_id, None)
            raise LSPResponseError(REQUEST_FAILED, f"Request {method} timed out after {timeout}s")

        return _parse_response(method, raw_result)

    async def send_notification(self, method: str, params: Any) -> None:
        logger.debug(f"LSP NOTIFICATION {method}")
        await self._write(_message(method, params))

    def on_notification(self, method: str, handler: NotificationHandler) -> None:
        self._notification_handlers[method] = handler

    async def _write(self, message: dict[str, Any]) -> None:
        assert self.process.stdin is not None
        self.process.stdin.write(encode_message(message))
        await self.process.stdin.drain()

    async def _copy_stderr(self, stderr: asyncio.StreamReader) -> None:
        try:
            while True:
                data = await stderr.read(4096)
                if not data:
                    break
                text = data.decode(errors="replace")
                if self._log_handle:
                    self._log_handle.write(text)
                    self._log_handle.flush()
        finally:
            if self._log_handle:
                self._log_handle.close()
                self._log_handle = None

    async def _read_loop(self, stdout: asyncio.StreamReader) -> None:
        try:
            while True:
                message = await read_message(stdout)
                if "method" not in message:
                    self._resolve(message)
                elif "id" in message:
                    await self._answer(message)
                else:
                    await self._dispatch_notification(message)
        except asyncio.CancelledError:
            raise
        except LSPProtocolError as e:
            logger.error(f"Lost connection to {self.server_name}: {e}")
            self._fail_pending(e)
        except Exception as e:
            logger.exception(f"Error reading from {self.server_name}")
            self._fail_pending(e)

    def _fail_pending(self, error: Exception) -> None:
        for future in self._pending_requests.values():
            if not future.done():
                future.set_exception(error)
        self._pending_requests.clear()

    def _resolve(self, message: dict[str, Any]) -> None:
        request_id = message.get("id")
        future = self._pending_requests.pop(request_id, None)
        if future is None or future.done():
            logger.warning(f"Dropping response to unknown request {request_id}")
            return

        error = message.get("error")
        if error is not None:
            logger.debug(f"LSP RESPONSE [{request_id}] ERROR: {error}")
            future.set_exception(
                LSPResponseError(
                    error.get("code", REQUEST_FAILED),
                    error.get("message", "Unknown error"),
                    error.get("data"),
                )
            )
        else:
            future.set_result(message.get("result"))

    async def _answer(self, message: dict[str, Any]) -> None:
        method = message["method"]
        response: dict[str, Any] = {"jsonrpc": "2.0", "id": message["id"]}

        if method == "workspace/configuration":
            items = (message.get("params") or {}).get("items", [])
            response["result"] = [{}] * len(items)
        elif method in SERVER_REQUEST_REPLIES:
            response["result"] = SERVER_REQUEST_REPLIES[method]
        else:
            logger.debug(f"Refusing server request {method}")
            response["error"] = {"code": METHOD_NOT_FOUND, "message": f"Method not found: {method}"}

        await self._write(response)

    async def _dispatch_notification(self, message: dict[str, Any]) -> None:
        handler = self._notification_handlers.get(message["method"])
        if handler is not None:
            await handler(message.get("params"))


def negotiate_position_encoding(result: InitializeResult) -> str:
    """Pick the offset encoding the server settled on.

    LSP 3.17 servers answer in capabilities.positionEncoding; clangd uses its
    own offsetEncoding field. Anything else means the protocol default, utf-16.
    """
    for encoding in (result.capabilities.positionEncoding, result.offsetEncoding):
        if encoding in SUPPORTED_ENCODINGS:
            return encoding
        if encoding is not None:
            logger.warning(f"Ignoring unknown position encoding: {encoding}")
    return "utf-16"


def _message(method: str, params: Any, request_id: int | None = None) -> dict[str, Any]:
    message: dict[str, Any] = {"jsonrpc": "2.0", "method": method}
    if request_id is not None:
        message["id"] = request_id
    if isinstance(params, BaseModel):
        params = params.model_dump(exclude_none=True)
    if params is not None:
        message["params"] = params
    return message


def _parse_response(method: str, raw_result: Any) -> Any:
    if raw_result is None:
        return None

    if method == "initialize":
        return InitializeResult.model_validate(raw_result)

    if method == "textDocument/codeLens":
        if not isinstance(raw_result, list):
            return None
        return [CodeLens.model_validate(item) for item in raw_result]

    return raw_result
