"""Handlers for fetching code lenses and running the one under the selection."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..editor import (
    CodeLensWithoutCommand,
    NoCodeLensInSelection,
    editor_quote,
    encode_command_arguments,
)
from ..rpc import (
    ApplyCodeLensParams,
    ApplyCodeLensResult,
    CodeLensParams as RPCCodeLensParams,
    CodeLensResult,
    EditorMeta,
)
from ...lsp.protocol import LSPMethodNotSupported
from ...lsp.types import CodeLens, CodeLensParams, TextDocumentIdentifier
from ...utils.position import native_range_to_lsp, parse_selection_desc, ranges_lines_overlap
from ...utils.uri import path_to_uri
from .base import HandlerContext
from .diagnostics import refresh_line_flags

if TYPE_CHECKING:
    from ...lsp.types import Range

logger = logging.getLogger(__name__)


async def handle_code_lens(
    ctx: HandlerContext, meta: EditorMeta, params: RPCCodeLensParams
) -> CodeLensResult:
    client = await ctx.ensure_client(meta)

    # codeLensProvider.resolveProvider is not consulted: lenses are expected
    # to arrive with their command filled in.
    if not client.capabilities.supports_code_lens():
        raise LSPMethodNotSupported("textDocument/codeLens", ctx.session.server_name)

    request = CodeLensParams(
        textDocument=TextDocumentIdentifier(uri=path_to_uri(meta.buffile)),
    )
    ctx.call(meta, "textDocument/codeLens", request, editor_code_lens)
    return CodeLensResult(status="requested")


def sort_code_lenses(lenses: list[CodeLens] | None) -> list[CodeLens]:
    # sorted() is stable, so lenses on one line keep the server's order
    return sorted(lenses or [], key=lambda lens: lens.range.start.line)


def editor_code_lens(
    ctx: HandlerContext, meta: EditorMeta, result: list[CodeLens] | None
) -> None:
    session = ctx.session
    lenses = sort_code_lenses(result)

    if meta.buffile not in session.documents:
        logger.debug(f"Discarding {len(lenses)} code lenses for closed buffer {meta.buffile}")
        return

    session.code_lenses[meta.buffile] = lenses
    logger.debug(f"Stored {len(lenses)} code lenses for {meta.buffile}")
    refresh_line_flags(session, meta, meta.buffile)


def lenses_in_range(lenses: list[CodeLens], selection: Range) -> list[CodeLens]:
    return [lens for lens in lenses if ranges_lines_overlap(lens.range, selection)]


def perform_code_lens_command(lenses: list[CodeLens]) -> str:
    choices = []
    for lens in lenses:
        command = lens.command
        if command is None:
            raise CodeLensWithoutCommand(lens.range.start.line)

        arguments = editor_quote(encode_command_arguments(command.arguments))
        invocation = f"lsp-execute-command {editor_quote(command.command)} {arguments}"
        choices.append(f"{editor_quote(command.title)} {editor_quote(invocation)}")

    return "lsp-perform-code-lens " + " ".join(choices)


async def handle_apply_code_lens(
    ctx: HandlerContext, meta: EditorMeta, params: ApplyCodeLensParams
) -> ApplyCodeLensResult:
    session = ctx.session
    native_range, _cursor = parse_selection_desc(params.selection_desc)

    document = session.documents.get(meta.buffile)
    if document is None:
        logger.debug(f"apply-code-lens for unknown buffer {meta.buffile}")
        return ApplyCodeLensResult()

    selection = native_range_to_lsp(native_range, document.text, session.offset_encoding)

    lenses = session.code_lenses.get(meta.buffile)
    if lenses is None:
        logger.debug(f"No code lenses fetched yet for {meta.buffile}")
        return ApplyCodeLensResult()

    matches = lenses_in_range(lenses, selection)
    if not matches:
        raise NoCodeLensInSelection()

    command = perform_code_lens_command(matches)
    session.exec(meta, command)
    return ApplyCodeLensResult(command=command, matches=len(matches))
