"""Base handler context and shared utilities."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from ...lsp.client import LSPClient
from ...lsp.protocol import LSPResponseError
from ...utils.config import get_server_root

if TYPE_CHECKING:
    from ..rpc import EditorMeta
    from ..session import Session

logger = logging.getLogger(__name__)

Continuation = Callable[["HandlerContext", "EditorMeta", Any], None]


class HandlerContext:
    """Context object handed to every handler: the session plus request plumbing."""

    def __init__(self, session: Session):
        self.session = session
        self._pending: set[asyncio.Task[None]] = set()

    async def ensure_client(self, meta: EditorMeta) -> LSPClient:
        if self.session.client is not None:
            return self.session.client

        from .diagnostics import handle_publish_diagnostics

        root = get_server_root(self.session.config, meta.buffile)
        client = await self.session.start_server(root)

        async def on_diagnostics(params: dict[str, Any] | None) -> None:
            if params:
                handle_publish_diagnostics(self, meta, params)

        client.on_notification("textDocument/publishDiagnostics", on_diagnostics)
        return client

    def call(
        self,
        meta: EditorMeta,
        method: str,
        params: Any,
        continuation: Continuation,
    ) -> asyncio.Task[None]:
        """Send a request and run ``continuation`` once with its result.

        Returns without waiting for the response. The continuation does not
        run if the request fails or the connection goes away first.
        """
        client = self.session.client
        assert client is not None

        async def run() -> None:
            try:
                result = await client.send_request(method, params)
            except LSPResponseError as e:
                logger.error(f"LSP error in {method}: {e.message} (code={e.code})")
                self.session.show_error(meta, f"{method} failed: {e.message}")
                return
            except Exception as e:
                logger.error(f"Request {method} for {meta.buffile} did not complete: {e}")
                return
            try:
                continuation(self, meta, result)
            except Exception:
                logger.exception(f"Error handling {method} response for {meta.buffile}")

        task = asyncio.create_task(run())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        """Wait for continuations that are still outstanding."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
