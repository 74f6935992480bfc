"""Common utility functions for the project."""

import logging
from enum import Enum
from typing import (
    Any,
    Callable,
    Optional,
)

logger = logging.getLogger(__name__)


class AnsiColors(Enum):
    """
    ANSI color codes for terminal output.
    """

    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[33m"
    BLUE = "\033[94m"
    GREY = "\033[90m"


def colored_print(text: str, color: AnsiColors, *args: Any, **kwargs: Any) -> None:
    """
    Print text in color.

    Args:
        text: The text to print
        color: The color to use (AnsiColors enum)
        args: Additional positional arguments for print
        kwargs: Additional keyword arguments for print
    """
    print(f"{color.value}{text}\033[0m", *args, **kwargs)  # ANSI reset at the end


def call_hook(hook: Optional[Callable[..., Any]], *args: Any) -> None:
    """
    Invoke an observer callback, if one is set.

    Observers are presentation only: whatever they raise is logged and dropped, and their return
    value is ignored.
    """
    if hook is None:
        return
    try:
        hook(*args)
    except Exception:  # pylint: disable=broad-except
        logger.exception("Observer hook %r raised", getattr(hook, "__name__", hook))
