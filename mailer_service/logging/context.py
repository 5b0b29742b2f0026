"""Context propagation for structured logging.

Every dispatch and tracking operation runs inside a logging scope carrying the
identifiers a reader needs to follow one delivery attempt across log lines
(tracking_id, event_kind, recipient). Context lives in a ContextVar so it is
isolated per thread and per asyncio task.
"""

from contextvars import ContextVar, Token
from typing import Any, Dict, Optional


LogContextVar: ContextVar[Dict[str, Any]] = ContextVar("log_context", default={})


def get_log_context() -> Dict[str, Any]:
    """Return a copy of the current logging context."""
    return LogContextVar.get().copy()


def push_log_context(**kwargs) -> Token:
    """Merge fields into the logging context.

    None values are dropped so optional identifiers (a tracking id that has not
    been assigned yet, for instance) never show up as "null" noise.

    Args:
        **kwargs: Key-value pairs to add to the logging context

    Returns:
        Token that restores the previous context via pop_log_context()

    Example:
        >>> token = push_log_context(event_kind="inventory.low", recipient="ops@acme.io")
        >>> # ... every log line now carries event_kind and recipient ...
        >>> pop_log_context(token)
    """
    fields = {key: value for key, value in kwargs.items() if value is not None}
    return LogContextVar.set({**LogContextVar.get(), **fields})


def pop_log_context(token: Token) -> None:
    """Restore the logging context captured by push_log_context()."""
    LogContextVar.reset(token)


def clear_log_context() -> None:
    """Drop every context field (used by tests)."""
    LogContextVar.set({})


class log_context:
    """Context manager for scoped logging context.

    Example:
        >>> with log_context(tracking_id="0b6c...", event_kind="user.verify"):
        ...     logger.info("Sending email")
    """

    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.token: Optional[Token] = None

    def __enter__(self):
        self.token = push_log_context(**self.kwargs)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.token is not None:
            pop_log_context(self.token)
            self.token = None
        return False
