"""Handlers for daemon lifecycle and introspection."""

import os
from collections.abc import Callable

from ..rpc import (
    DescribeSessionParams,
    DescribeSessionResult,
    DocumentInfo,
    EditorMeta,
    ShutdownParams,
    ShutdownResult,
)
from .base import HandlerContext


async def handle_shutdown(
    _ctx: HandlerContext,
    _meta: EditorMeta,
    _params: ShutdownParams,
    shutdown_callback: Callable[[], None],
) -> ShutdownResult:
    shutdown_callback()
    return ShutdownResult(status="shutting_down")


async def handle_describe_session(
    ctx: HandlerContext, _meta: EditorMeta, _params: DescribeSessionParams
) -> DescribeSessionResult:
    session = ctx.session
    capabilities = session.capabilities

    documents = [
        DocumentInfo(
            buffile=buffile,
            version=doc.version,
            code_lenses=len(session.code_lenses[buffile]) if buffile in session.code_lenses else None,
            diagnostics=len(session.diagnostics.get(buffile, [])),
        )
        for buffile, doc in session.documents.items()
    ]

    return DescribeSessionResult(
        daemon_pid=os.getpid(),
        server=session.server_name,
        server_running=session.client is not None,
        offset_encoding=session.offset_encoding,
        supports_code_lens=capabilities.supports_code_lens() if capabilities else False,
        documents=documents,
    )
