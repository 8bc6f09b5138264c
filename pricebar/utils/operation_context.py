"""Operation ids for correlating the log lines of one fetch operation."""

import contextvars
import uuid
from typing import Optional

# Each asyncio task runs in a copy of the context, so concurrent fetches
# keep their own id.
_operation_id: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "operation_id", default=None
)


def begin_operation() -> contextvars.Token:
    """
    Assign a fresh UUID4 operation id to the current context.

    Returns:
        Token to pass to ``end_operation``
    """
    return _operation_id.set(str(uuid.uuid4()))


def current_operation() -> Optional[str]:
    """Return the id of the operation running in this context, if any."""
    return _operation_id.get()


def end_operation(token: contextvars.Token) -> None:
    """Restore whatever operation id was current before ``begin_operation``."""
    _operation_id.reset(token)
