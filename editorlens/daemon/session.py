import asyncio
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from .editor import EditorChannel, show_error_command
from .rpc import EditorMeta
from ..lsp.client import LSPClient
from ..lsp.protocol import LanguageServerNotFound, LanguageServerStartupError
from ..lsp.types import (
    CodeLens,
    Diagnostic,
    DidChangeTextDocumentParams,
    DidCloseTextDocumentParams,
    DidOpenTextDocumentParams,
    ServerCapabilities,
    TextDocumentContentChangeEvent,
    TextDocumentIdentifier,
    TextDocumentItem,
    VersionedTextDocumentIdentifier,
)
from ..utils.config import get_log_dir, get_preferred_encodings
from ..utils.uri import path_to_uri, uri_to_path

logger = logging.getLogger(__name__)


@dataclass
class Document:
    uri: str
    version: int
    text: str
    language_id: str


@dataclass
class Session:
    editor: EditorChannel
    config: dict = field(default_factory=dict)
    client: LSPClient | None = None
    root: Path | None = None
    # buffile -> open document, as last reported by the editor
    documents: dict[str, Document] = field(default_factory=dict)
    # buffile -> lenses of the last codeLens response, by start line
    code_lenses: dict[str, list[CodeLens]] = field(default_factory=dict)
    diagnostics: dict[str, list[Diagnostic]] = field(default_factory=dict)

    @property
    def server_name(self) -> str:
        return self.config.get("server", {}).get("name", "language server")

    @property
    def capabilities(self) -> ServerCapabilities | None:
        if self.client is None:
            return None
        return self.client.capabilities

    @property
    def offset_encoding(self) -> str:
        if self.client is None:
            return "utf-16"
        return self.client.position_encoding

    async def start_server(self, root: Path) -> LSPClient:
        if self.client is not None:
            return self.client

        server_config = self.config.get("server", {})
        command = server_config.get("command") or []
        if not command:
            raise LanguageServerNotFound(self.server_name)

        logger.info(f"Starting {self.server_name} for {root}")

        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(root),
                env=os.environ.copy(),
            )
        except FileNotFoundError:
            raise LanguageServerNotFound(self.server_name)

        server_log_file = get_log_dir() / f"{self.server_name}.log"
        client = LSPClient(
            process,
            path_to_uri(root),
            server_config.get("initialization_options") or None,
            server_name=self.server_name,
            log_file=server_log_file,
            position_encodings=get_preferred_encodings(self.config),
            request_timeout=self.config.get("daemon", {}).get("request_timeout"),
        )

        try:
            await client.start()
        except Exception as e:
            server_log_tail = None
            if server_log_file.exists():
                try:
                    lines = server_log_file.read_text().strip().splitlines()
                    server_log_tail = "\n".join(lines[-30:])
                except OSError:
                    pass

            raise LanguageServerStartupError(
                self.server_name,
                str(root),
                e,
                server_log=server_log_tail,
                log_path=str(server_log_file),
            )

        self.client = client
        self.root = root
        logger.info(f"Server {self.server_name} initialized")
        return client

    async def stop_server(self) -> None:
        if self.client is None:
            return

        logger.info(f"Stopping {self.server_name}")
        await self.client.stop()
        self.client = None
        self.documents.clear()
        self.code_lenses.clear()
        self.diagnostics.clear()

    async def close_all(self) -> None:
        await self.stop_server()
        await self.editor.close()

    async def open_document(
        self, buffile: str, text: str, version: int, language_id: str
    ) -> Document:
        doc = Document(
            uri=path_to_uri(buffile), version=version, text=text, language_id=language_id
        )
        self.documents[buffile] = doc

        assert self.client is not None
        await self.client.send_notification(
            "textDocument/didOpen",
            DidOpenTextDocumentParams(
                textDocument=TextDocumentItem(
                    uri=doc.uri, languageId=language_id, version=version, text=text
                )
            ),
        )
        return doc

    async def change_document(self, buffile: str, text: str, version: int) -> Document | None:
        doc = self.documents.get(buffile)
        if doc is None:
            return None
        if version < doc.version:
            logger.debug(f"Ignoring out of date change for {buffile}: {version} < {doc.version}")
            return doc

        doc.version = version
        doc.text = text

        assert self.client is not None
        await self.client.send_notification(
            "textDocument/didChange",
            DidChangeTextDocumentParams(
                textDocument=VersionedTextDocumentIdentifier(uri=doc.uri, version=version),
                contentChanges=[TextDocumentContentChangeEvent(text=text)],
            ),
        )
        return doc

    async def close_document(self, buffile: str) -> None:
        doc = self.documents.pop(buffile, None)
        self.code_lenses.pop(buffile, None)
        self.diagnostics.pop(buffile, None)
        if doc is None or self.client is None:
            return

        await self.client.send_notification(
            "textDocument/didClose",
            DidCloseTextDocumentParams(textDocument=TextDocumentIdentifier(uri=doc.uri)),
        )

    def buffile_for_uri(self, uri: str) -> str | None:
        for buffile, doc in self.documents.items():
            if doc.uri == uri:
                return buffile

        # servers are free to percent-encode differently from path_to_uri
        try:
            path = uri_to_path(uri)
        except ValueError:
            return None
        for buffile in self.documents:
            if Path(buffile) == path:
                return buffile
        return None

    def meta_for_buffer_version(
        self, meta: EditorMeta, buffile: str, version: int
    ) -> EditorMeta:
        return meta.model_copy(update={"buffile": buffile, "version": version})

    def is_stale(self, meta: EditorMeta) -> bool:
        if meta.version is None:
            return False
        doc = self.documents.get(meta.buffile)
        return doc is None or doc.version != meta.version

    def exec(self, meta: EditorMeta, command: str) -> bool:
        if self.is_stale(meta):
            logger.debug(
                f"Dropping command for {meta.buffile}: buffer moved past version {meta.version}"
            )
            return False
        self.editor.exec(meta, command)
        return True

    def show_error(self, meta: EditorMeta, message: str) -> None:
        logger.info(f"Editor error for {meta.buffile}: {message}")
        self.editor.exec(meta, show_error_command(message))

