"""Diagnostics bookkeeping and the per-line flag column they share with code lenses."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from ..editor import editor_quote
from ...lsp.types import DiagnosticSeverity, PublishDiagnosticsParams

if TYPE_CHECKING:
    from ..rpc import EditorMeta
    from ..session import Session
    from .base import HandlerContext

logger = logging.getLogger(__name__)

SEVERITY_SIGNS = {
    DiagnosticSeverity.Error: "%opt[lsp_diagnostic_line_error_sign]",
    DiagnosticSeverity.Warning: "%opt[lsp_diagnostic_line_warning_sign]",
    DiagnosticSeverity.Information: "%opt[lsp_diagnostic_line_info_sign]",
    DiagnosticSeverity.Hint: "%opt[lsp_diagnostic_line_hint_sign]",
}
CODE_LENS_SIGN = "%opt[lsp_code_lens_sign]"
FALLBACK_SIGN = "'0|%opt[lsp_diagnostic_line_error_sign]'"


def gather_line_flags(session: Session, buffile: str) -> str:
    """Flag column entries for a buffer, one per flagged line.

    The most severe diagnostic on a line decides its sign; lines holding only
    code lenses get the code lens sign.
    """
    severities: dict[int, int] = {}
    for diagnostic in session.diagnostics.get(buffile, []):
        line = diagnostic.range.start.line
        severity = diagnostic.severity or DiagnosticSeverity.Error
        severities[line] = min(severity, severities.get(line, severity))

    error_sign = SEVERITY_SIGNS[DiagnosticSeverity.Error]
    signs = {line: SEVERITY_SIGNS.get(s, error_sign) for line, s in severities.items()}
    for lens in session.code_lenses.get(buffile, []):
        signs.setdefault(lens.range.start.line, CODE_LENS_SIGN)

    return " ".join(
        editor_quote(f"{line + 1}|{sign}") for line, sign in sorted(signs.items())
    )


def line_flags_command(buffile: str, version: int, line_flags: str) -> str:
    command = (
        f'evaluate-commands "set-option buffer lsp_error_lines {version} '
        f'{line_flags} {FALLBACK_SIGN}"'
    )
    # The command is nested in a %§...§ block, which only escapes by doubling
    return "evaluate-commands -buffer {} %§{}§".format(
        editor_quote(buffile), command.replace("§", "§§")
    )


def refresh_line_flags(session: Session, meta: EditorMeta, buffile: str) -> bool:
    document = session.documents.get(buffile)
    if document is None:
        return False

    line_flags = gather_line_flags(session, buffile)
    command = line_flags_command(buffile, document.version, line_flags)
    # buffer scoped only: the window that asked may be gone by the time this runs
    meta = session.meta_for_buffer_version(meta, buffile, document.version)
    meta = meta.model_copy(update={"client": None})
    return session.exec(meta, command)


def handle_publish_diagnostics(
    ctx: HandlerContext, meta: EditorMeta, raw_params: dict[str, Any]
) -> None:
    params = PublishDiagnosticsParams.model_validate(raw_params)
    session = ctx.session

    buffile = session.buffile_for_uri(params.uri)
    if buffile is None:
        logger.debug(f"Diagnostics for unopened document {params.uri}")
        return

    session.diagnostics[buffile] = params.diagnostics
    refresh_line_flags(session, meta, buffile)
