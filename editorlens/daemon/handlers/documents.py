"""Handlers keeping the daemon's copy of open buffers in sync with the editor."""

from pathlib import Path

from ..rpc import (
    DidChangeParams,
    DidCloseParams,
    DidOpenParams,
    DocumentResult,
    EditorMeta,
)
from .base import HandlerContext


async def handle_did_open(
    ctx: HandlerContext, meta: EditorMeta, params: DidOpenParams
) -> DocumentResult:
    await ctx.ensure_client(meta)

    if meta.buffile in ctx.session.documents:
        doc = await ctx.session.change_document(meta.buffile, params.text, params.version)
    else:
        language_id = params.language_id or meta.filetype or Path(meta.buffile).suffix.lstrip(".")
        doc = await ctx.session.open_document(
            meta.buffile, params.text, params.version, language_id or "plaintext"
        )

    assert doc is not None
    return DocumentResult(buffile=meta.buffile, version=doc.version)


async def handle_did_change(
    ctx: HandlerContext, meta: EditorMeta, params: DidChangeParams
) -> DocumentResult:
    await ctx.ensure_client(meta)

    doc = await ctx.session.change_document(meta.buffile, params.text, params.version)
    if doc is None:
        return DocumentResult(buffile=meta.buffile)
    return DocumentResult(buffile=meta.buffile, version=doc.version)


async def handle_did_close(
    ctx: HandlerContext, meta: EditorMeta, _params: DidCloseParams
) -> DocumentResult:
    await ctx.session.close_document(meta.buffile)
    return DocumentResult(buffile=meta.buffile)
