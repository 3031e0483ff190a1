# SPDX-License-Identifier: MIT
"""Marker for code reached only in ways a tracer cannot see."""

from collections.abc import Callable
from typing import Any, TypeVar


F = TypeVar("F", bound=Callable[..., Any])


def code_is_used(func: F) -> F:
    """Mark a function/method as used to exclude it from dead code detection.

    No-op at runtime. Use it for exception constructors only reached through
    ``super().__init__()``, pydantic validators, and callbacks handed to the
    event loop (``call_later``, ``add_done_callback``).

    Example:
        @code_is_used
        def _on_done(self, task: asyncio.Task[None]) -> None:
            ...

    Args:
        func: The function to mark as used

    Returns:
        The unmodified function
    """
    return func
