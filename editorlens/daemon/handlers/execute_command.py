"""Handler for execute-command, the way back for code lens invocations."""

import logging

from ..editor import decode_command_arguments
from ..rpc import EditorMeta, ExecuteCommandParams as RPCExecuteCommandParams, ExecuteCommandResult
from ...lsp.protocol import LSPMethodNotSupported, LSPResponseError
from ...lsp.types import ExecuteCommandParams
from .base import HandlerContext

logger = logging.getLogger(__name__)


async def handle_execute_command(
    ctx: HandlerContext, meta: EditorMeta, params: RPCExecuteCommandParams
) -> ExecuteCommandResult:
    client = await ctx.ensure_client(meta)

    if not client.capabilities.supports_execute_command():
        raise LSPMethodNotSupported("workspace/executeCommand", ctx.session.server_name)

    arguments = decode_command_arguments(params.arguments)
    logger.info(f"Executing {params.command} with {len(arguments)} arguments")

    try:
        result = await client.send_request(
            "workspace/executeCommand",
            ExecuteCommandParams(command=params.command, arguments=arguments),
        )
    except LSPResponseError as e:
        if e.is_method_not_found():
            raise LSPMethodNotSupported("workspace/executeCommand", ctx.session.server_name)
        raise

    return ExecuteCommandResult(command=params.command, result=result)
