from __future__ import annotations

from collections.abc import Callable, Coroutine
from functools import wraps
from typing import Any, TypeVar

T = TypeVar("T")


def status_tuple(
    fn: Callable[..., Coroutine[Any, Any, T]],
) -> Callable[..., Coroutine[Any, Any, tuple[bool, T | str]]]:
    """Turn an async adapter read into ``(True, result)`` / ``(False, error)``.

    Failures are logged on the adapter's bound logger.
    """

    @wraps(fn)
    async def wrapper(self: Any, *args: Any, **kwargs: Any) -> tuple[bool, T | str]:
        try:
            return True, await fn(self, *args, **kwargs)
        except Exception as exc:
            self.logger.error(f"{fn.__name__} failed: {exc}")
            return False, str(exc)

    return wrapper  # type: ignore[return-value]


def none_on_error(
    fn: Callable[..., Coroutine[Any, Any, T]],
) -> Callable[..., Coroutine[Any, Any, T | None]]:
    """Turn a failed async read into ``None``.

    Used for oracle reads, where "no answer" is an expected result the caller
    already handles (e.g. a pool without enough observation history).
    """

    @wraps(fn)
    async def wrapper(self: Any, *args: Any, **kwargs: Any) -> T | None:
        try:
            return await fn(self, *args, **kwargs)
        except Exception as exc:
            self.logger.warning(f"{fn.__name__} unavailable: {exc}")
            return None

    return wrapper  # type: ignore[return-value]
