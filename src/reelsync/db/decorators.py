"""Database operation decorators for consistent error handling."""

from collections.abc import Awaitable, Callable
from functools import wraps
import inspect
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from ..exceptions import DatabaseOperationError


def _resolve_path(bound_args: inspect.BoundArguments, path: str) -> str | None:
    """Follow a dotted path such as ``record.id`` through the bound call arguments.

    Args:
        bound_args: The bound arguments of the decorated call.
        path: Parameter name optionally followed by attribute names.

    Returns:
        The value found, or None when any step is missing.
    """
    base, *attrs = path.split(".")
    value: Any = bound_args.arguments.get(base)
    for attr in attrs:
        if value is None:
            return None
        value = getattr(value, attr, None)
    return None if value is None else str(value)


def _base_db_error_handler[**P, T](
    operation: str,
    record_id_from: str | None = None,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Wrap an async store method so SQLAlchemy failures become DatabaseOperationError.

    Args:
        operation: Description of the operation for error messages.
        record_id_from: Dotted path to the record id among the method's
            parameters (e.g. ``"record_id"`` or ``"record.id"``). Checked when
            the decorator is applied.

    Returns:
        A decorator.
    """

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        sig = inspect.signature(func)
        if record_id_from is not None:
            base = record_id_from.split(".")[0]
            if base not in sig.parameters:
                raise TypeError(
                    f"Decorator on '{func.__name__}' reads '{record_id_from}', "
                    f"but the function has no parameter named '{base}'."
                )

        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            try:
                return await func(*args, **kwargs)
            except SQLAlchemyError as e:
                record_id: str | None = None
                if record_id_from is not None:
                    bound_args = sig.bind(*args, **kwargs)
                    bound_args.apply_defaults()
                    record_id = _resolve_path(bound_args, record_id_from)
                raise DatabaseOperationError(
                    f"Failed to {operation}", record_id=record_id
                ) from e

        return wrapper

    return decorator


def handle_db_errors[**P, T](
    operation: str,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Decorator for store operations that do not concern a single record."""
    return _base_db_error_handler(operation=operation)


def handle_asset_db_errors[**P, T](
    operation: str,
    record_id_from: str = "record_id",
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Decorator for store operations on one asset record.

    The record id found at ``record_id_from`` is attached to the raised
    DatabaseOperationError.
    """
    return _base_db_error_handler(operation=operation, record_id_from=record_id_from)
