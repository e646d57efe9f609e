"""Commands sent back to the editor and the quoting they travel through."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .rpc import EditorMeta

logger = logging.getLogger(__name__)


def editor_quote(text: str) -> str:
    """Quote a string as a single editor command argument."""
    return "'" + text.replace("'", "''") + "'"


def editor_unquote(quoted: str) -> str:
    if len(quoted) < 2 or quoted[0] != "'" or quoted[-1] != "'":
        raise ValueError(f"Not an editor-quoted string: {quoted!r}")
    return quoted[1:-1].replace("''", "'")


def encode_command_arguments(arguments: list[Any] | None) -> str:
    """Encode server command arguments for a round trip through the editor.

    The arguments come back as a command-line argument of
    ``lsp-execute-command``; they are serialized to JSON and that JSON string
    serialized again, so the editor only ever sees one JSON string literal and
    never parses the structure inside it.
    """
    inner = json.dumps(arguments or [], separators=(",", ":"))
    return json.dumps(inner)


def decode_command_arguments(payload: str) -> list[Any]:
    inner = json.loads(payload)
    if not isinstance(inner, str):
        raise ValueError("Command arguments must be a JSON-encoded string")
    arguments = json.loads(inner)
    if not isinstance(arguments, list):
        raise ValueError("Command arguments must decode to a list")
    return arguments


def show_error_command(message: str) -> str:
    # Multi-line errors would be split into several editor commands
    return f"lsp-show-error {editor_quote(' '.join(message.splitlines()))}"


class EditorChannel:
    """Outbound channel that delivers commands to an editor session."""

    def exec(self, meta: EditorMeta, command: str) -> None:
        raise NotImplementedError

    async def close(self) -> None:
        pass


class SubprocessChannel(EditorChannel):
    """Pipes each command into the editor's remote-command process.

    Commands are delivered one at a time, in the order they were issued.
    """

    command_template: list[str]
    _queue: asyncio.Queue[tuple[EditorMeta, str]]
    _worker: asyncio.Task[None] | None

    def __init__(self, command_template: list[str]):
        self.command_template = command_template
        self._queue = asyncio.Queue()
        self._worker = None

    def exec(self, meta: EditorMeta, command: str) -> None:
        self._queue.put_nowait((meta, command))
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._run())

    async def _run(self) -> None:
        while not self._queue.empty():
            meta, command = await self._queue.get()
            try:
                await self._deliver(meta, command)
            except OSError as e:
                logger.error(f"Failed to deliver command to editor session {meta.session}: {e}")
            finally:
                self._queue.task_done()

    async def _deliver(self, meta: EditorMeta, command: str) -> None:
        if meta.client:
            command = f"evaluate-commands -client {meta.client} {editor_quote(command)}"
        argv = [part.format(session=meta.session) for part in self.command_template]
        logger.debug(f"EDITOR [{meta.session}] {command}")

        process = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
        _, stderr = await process.communicate(command.encode("utf-8"))
        if process.returncode != 0:
            logger.error(
                f"Editor command exited with {process.returncode}: "
                f"{stderr.decode(errors='replace').strip()}"
            )

    async def close(self) -> None:
        if self._worker is not None and not self._worker.done():
            await self._queue.join()


class EditorError(Exception):
    """Error reported to the user in the editor."""


class NoCodeLensInSelection(EditorError):
    def __init__(self) -> None:
        super().__init__("no code lens in selection")


class CodeLensWithoutCommand(EditorError):
    line: int

    def __init__(self, line: int):
        self.line = line
        super().__init__(f"code lens on line {line + 1} has no command")
