"""RPC request and response models for editor <-> daemon communication."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class EditorMeta(BaseModel):
    """Identifies the editor session, client and buffer a request came from.

    Commands emitted with a ``version`` are dropped if the buffer has moved
    past that version by the time they are sent.
    """
    session: str
    client: str | None = None
    buffile: str
    filetype: str | None = None
    version: int | None = None


# Base models for RPC
class RpcRequest(BaseModel):
    """Base RPC request wrapper."""
    meta: EditorMeta
    method: str
    params: dict = Field(default_factory=dict)


# === Shutdown ===
class ShutdownParams(BaseModel):
    pass


class ShutdownResult(BaseModel):
    status: Literal["shutting_down"]


# === Describe Session ===
class DescribeSessionParams(BaseModel):
    pass


class DocumentInfo(BaseModel):
    buffile: str
    version: int
    code_lenses: int | None = None
    diagnostics: int = 0


class DescribeSessionResult(BaseModel):
    daemon_pid: int
    server: str | None = None
    server_running: bool
    offset_encoding: str
    supports_code_lens: bool
    documents: list[DocumentInfo]


# === Documents ===
class DidOpenParams(BaseModel):
    text: str
    version: int
    language_id: str | None = None


class DidChangeParams(BaseModel):
    text: str
    version: int


class DidCloseParams(BaseModel):
    pass


class DocumentResult(BaseModel):
    buffile: str
    version: int | None = None


# === Code lens ===
class CodeLensParams(BaseModel):
    pass


class CodeLensResult(BaseModel):
    status: Literal["requested"]


class ApplyCodeLensParams(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    selection_desc: str = Field(alias="selectionDesc")


class ApplyCodeLensResult(BaseModel):
    command: str | None = None
    matches: int = 0


# === Execute command ===
class ExecuteCommandParams(BaseModel):
    command: str
    arguments: str = '"[]"'


class ExecuteCommandResult(BaseModel):
    command: str
    result: Any | None = None
