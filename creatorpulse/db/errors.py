import functools
from collections.abc import Awaitable, Callable
from typing import ParamSpec, TypeVar

from sqlalchemy.exc import SQLAlchemyError

from creatorpulse.core.exceptions import StoreError

P = ParamSpec("P")
T = TypeVar("T")


def store_operation(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
    """Re-raise SQLAlchemy failures as StoreError, keeping the driver message."""

    @functools.wraps(func)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
        try:
            return await func(*args, **kwargs)
        except SQLAlchemyError as exc:
            orig = getattr(exc, "orig", None)
            raise StoreError(str(orig) if orig is not None else str(exc)) from exc

    return wrapper
