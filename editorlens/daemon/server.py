"""Daemon server that connects editor sessions to the language server."""

import asyncio
import json
import logging
import os
import signal
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import BaseModel, ValidationError

from .editor import EditorChannel, EditorError, SubprocessChannel
from .handlers import (
    HandlerContext,
    handle_code_lens,
    handle_apply_code_lens,
    handle_did_open,
    handle_did_change,
    handle_did_close,
    handle_execute_command,
    handle_shutdown,
    handle_describe_session,
)
from .pidfile import write_pid, remove_pid
from .rpc import (
    EditorMeta,
    RpcRequest,
    CodeLensParams,
    ApplyCodeLensParams,
    DidOpenParams,
    DidChangeParams,
    DidCloseParams,
    ExecuteCommandParams,
    ShutdownParams,
    ShutdownResult,
    DescribeSessionParams,
)
from .session import Session
from ..lsp.protocol import (
    LSPResponseError,
    LSPMethodNotSupported,
    LanguageServerNotFound,
    LanguageServerStartupError,
)
from ..utils.config import get_socket_path, get_pid_path, get_log_dir, get_log_level, load_config

logger = logging.getLogger(__name__)

Handler = Callable[[HandlerContext, EditorMeta, Any], Awaitable[Any]]


class DaemonServer:
    def __init__(self, config: dict[str, Any], editor: EditorChannel | None = None):
        if editor is None:
            editor = SubprocessChannel(config["editor"]["command"])
        self.session = Session(editor=editor, config=config)
        self.server: asyncio.Server | None = None
        self._shutdown_event = asyncio.Event()
        self._ctx = HandlerContext(session=self.session)
        self._handlers: dict[str, tuple[type[BaseModel], Handler]] = {
            "code-lens": (CodeLensParams, handle_code_lens),
            "apply-code-lens": (ApplyCodeLensParams, handle_apply_code_lens),
            "execute-command": (ExecuteCommandParams, handle_execute_command),
            "did-open": (DidOpenParams, handle_did_open),
            "did-change": (DidChangeParams, handle_did_change),
            "did-close": (DidCloseParams, handle_did_close),
            "describe-session": (DescribeSessionParams, handle_describe_session),
            "shutdown": (ShutdownParams, self._handle_shutdown),
        }

    async def start(self) -> None:
        socket_path = get_socket_path()
        socket_path.parent.mkdir(parents=True, exist_ok=True)

        if socket_path.exists():
            socket_path.unlink()

        self.server = await asyncio.start_unix_server(
            self._handle_client, path=str(socket_path)
        )

        pid_path = get_pid_path()
        write_pid(pid_path, os.getpid())

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, lambda: asyncio.create_task(self._shutdown()))

        logger.info(f"Daemon started, listening on {socket_path}")

        await self._shutdown_event.wait()

    async def _shutdown(self) -> None:
        if self._shutdown_event.is_set():
            return

        logger.info("Shutting down daemon")
        await self.session.close_all()

        if self.server:
            self.server.close()
            await self.server.wait_closed()

        remove_pid(get_pid_path())
        socket_path = get_socket_path()
        if socket_path.exists():
            socket_path.unlink()

        self._shutdown_event.set()

    async def _handle_client(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        try:
            data = await reader.read()
            if not data:
                return

            try:
                request = json.loads(data.decode())
            except json.JSONDecodeError as e:
                logger.error(f"Malformed request ({len(data)} bytes): {e}")
                response: dict[str, Any] = {"error": f"Malformed request: {e}"}
            else:
                response = await self._handle_request(request)

            writer.write(json.dumps(response).encode())
            await writer.drain()
        except Exception:
            logger.exception("Error handling client connection")
        finally:
            writer.close()
            await writer.wait_closed()

    async def _handle_request(self, request: dict) -> dict:
        try:
            rpc = RpcRequest.model_validate(request)
        except ValidationError as e:
            return {"error": f"Invalid request: {e}"}

        method, meta = rpc.method, rpc.meta
        if method not in self._handlers:
            return {"error": f"Unknown method: {method}"}
        params_class, handler = self._handlers[method]

        try:
            params = params_class.model_validate(rpc.params)
        except ValidationError as e:
            return {"error": f"Invalid params for {method}: {e}"}

        logger.debug(f"{method} for {meta.buffile} from {meta.session}/{meta.client}")
        try:
            result = await handler(self._ctx, meta, params)
        except (LSPMethodNotSupported, EditorError) as e:
            return self._user_error(meta, str(e))
        except (LanguageServerNotFound, LanguageServerStartupError) as e:
            logger.error(f"Language server unavailable: {e}")
            return self._user_error(meta, str(e).splitlines()[0])
        except LSPResponseError as e:
            logger.error(f"LSP error in {method}: {e.message} (code={e.code})")
            return self._user_error(meta, f"LSP error: {e.message}")
        except Exception as e:
            logger.exception(f"Error in handler {method}")
            return {"error": str(e)}

        if isinstance(result, BaseModel):
            return {"result": result.model_dump(exclude_none=True)}
        return {"result": result}

    def _user_error(self, meta: EditorMeta, message: str) -> dict[str, Any]:
        """Report ``message`` in the editor as well as to the caller."""
        self.session.show_error(meta, message)
        return {"error": message}

    async def _handle_shutdown(
        self, ctx: HandlerContext, meta: EditorMeta, params: ShutdownParams
    ) -> ShutdownResult:
        return await handle_shutdown(
            ctx, meta, params, lambda: asyncio.create_task(self._shutdown())
        )


async def run_daemon() -> None:
    config = load_config()

    log_dir = get_log_dir()
    log_dir.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=get_log_level(config),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.FileHandler(log_dir / "daemon.log"),
        ],
    )

    daemon = DaemonServer(config)
    await daemon.start()
