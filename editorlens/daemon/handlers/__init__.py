"""Request handlers for the daemon server."""

from .base import HandlerContext
from .code_lens import handle_code_lens, handle_apply_code_lens, editor_code_lens
from .documents import handle_did_open, handle_did_change, handle_did_close
from .execute_command import handle_execute_command
from .session import handle_shutdown, handle_describe_session

__all__ = [
    "HandlerContext",
    "handle_code_lens",
    "handle_apply_code_lens",
    "editor_code_lens",
    "handle_did_open",
    "handle_did_change",
    "handle_did_close",
    "handle_execute_command",
    "handle_shutdown",
    "handle_describe_session",
]
