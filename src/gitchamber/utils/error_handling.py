"""Best-effort steps: failures are logged and never fail the git operation they follow."""

import logging
from typing import Awaitable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def log_and_ignore(
    error: Exception,
    message: str,
    *,
    logger_instance: Optional[logging.Logger] = None,
    level: int = logging.WARNING,
) -> None:
    """Log ``<message>: <error>`` and carry on."""
    (logger_instance or logger).log(level, f"{message}: {error}")


async def safe_await(
    awaitable: Awaitable[T],
    *,
    default: Optional[T] = None,
    error_message: str = "Best-effort lookup failed",
    logger_instance: Optional[logging.Logger] = None,
) -> Optional[T]:
    """Await a lookup whose failure degrades to default instead of raising."""
    try:
        return await awaitable
    except Exception as e:
        log_and_ignore(e, error_message, logger_instance=logger_instance)
        return default


class ErrorContext:
    """
    ``with`` block around a side effect such as a project record sync.

    Any exception inside is logged as ``Failed to <operation>: <error>``. With
    raise_on_error off it is then suppressed and kept on ``error``.

    Usage:
        with ErrorContext("sync project sandbox metadata (add)", raise_on_error=False):
            await store.add_sandbox(...)
    """

    def __init__(
        self,
        operation: str,
        *,
        raise_on_error: bool = True,
        logger_instance: Optional[logging.Logger] = None,
        log_level: int = logging.ERROR,
    ):
        self.operation = operation
        self.raise_on_error = raise_on_error
        self.logger = logger_instance or logger
        self.log_level = log_level
        self.error: Optional[Exception] = None

    @property
    def failed(self) -> bool:
        return self.error is not None

    def __enter__(self) -> "ErrorContext":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_type is None or not issubclass(exc_type, Exception):
            return False
        self.error = exc_val
        self.logger.log(self.log_level, f"Failed to {self.operation}: {exc_val}")
        return not self.raise_on_error
