from enum import IntEnum
from typing import Any, Literal

from pydantic import BaseModel


PositionEncodingKind = Literal["utf-8", "utf-16", "utf-32"]


class Position(BaseModel):
    line: int
    character: int


class Range(BaseModel):
    start: Position
    end: Position


class TextDocumentIdentifier(BaseModel):
    uri: str


class VersionedTextDocumentIdentifier(TextDocumentIdentifier):
    version: int


class TextDocumentItem(BaseModel):
    uri: str
    languageId: str
    version: int
    text: str


class Command(BaseModel):
    title: str
    command: str
    arguments: list[Any] | None = None


class CodeLens(BaseModel):
    range: Range
    command: Command | None = None
    data: Any | None = None


class DiagnosticSeverity(IntEnum):
    Error = 1
    Warning = 2
    Information = 3
    Hint = 4


class Diagnostic(BaseModel):
    range: Range
    message: str
    severity: int | None = None
    code: str | int | None = None
    source: str | None = None


class CodeLensOptions(BaseModel, extra="allow"):
    resolveProvider: bool | None = None


class ServerCapabilities(BaseModel, extra="allow"):
    positionEncoding: str | None = None
    codeLensProvider: CodeLensOptions | None = None

    def _has_capability(self, name: str) -> bool:
        """Check if a capability exists. Handles True, non-empty dict, or non-None values."""
        val = getattr(self, name, None)
        if val is None:
            return False
        # Empty options object still means supported
        if isinstance(val, (dict, BaseModel)):
            return True
        return bool(val)

    def supports_code_lens(self) -> bool:
        return self._has_capability("codeLensProvider")

    def code_lens_resolve_provider(self) -> bool:
        if self.codeLensProvider is None:
            return False
        return bool(self.codeLensProvider.resolveProvider)

    def supports_execute_command(self) -> bool:
        return self._has_capability("executeCommandProvider")


class ServerInfo(BaseModel):
    name: str
    version: str | None = None


class InitializeResult(BaseModel, extra="allow"):
    capabilities: ServerCapabilities
    serverInfo: ServerInfo | None = None
    # clangd announces its encoding here instead of in capabilities
    offsetEncoding: str | None = None


# =============================================================================
# LSP Request Params
# =============================================================================


class WorkspaceFolder(BaseModel):
    uri: str
    name: str


class ClientCapabilities(BaseModel, extra="allow"):
    pass


class InitializeParams(BaseModel):
    processId: int | None
    rootUri: str | None
    rootPath: str | None = None
    capabilities: ClientCapabilities
    workspaceFolders: list[WorkspaceFolder] | None = None
    initializationOptions: Any | None = None
    trace: str | None = None


class CodeLensParams(BaseModel):
    textDocument: TextDocumentIdentifier
    workDoneToken: int | str | None = None
    partialResultToken: int | str | None = None


class ExecuteCommandParams(BaseModel):
    command: str
    arguments: list[Any] | None = None


class DidOpenTextDocumentParams(BaseModel):
    textDocument: TextDocumentItem


class TextDocumentContentChangeEvent(BaseModel):
    text: str


class DidChangeTextDocumentParams(BaseModel):
    textDocument: VersionedTextDocumentIdentifier
    contentChanges: list[TextDocumentContentChangeEvent]


class DidCloseTextDocumentParams(BaseModel):
    textDocument: TextDocumentIdentifier


class PublishDiagnosticsParams(BaseModel):
    uri: str
    version: int | None = None
    diagnostics: list[Diagnostic]


# =============================================================================
# LSP Response Type Aliases
# =============================================================================

CodeLensResponse = list[CodeLens] | None
