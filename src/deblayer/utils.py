import asyncio
import datetime
import logging
from collections.abc import Coroutine, Iterable
from typing import Any, TypeVar

from dateutil.parser import parse as parse_date

logger = logging.getLogger(__name__)

T = TypeVar("T")


def try_parse_date(date_str: str | None) -> datetime.datetime | None:
    """Try to parse a date string into a timestamp.

    Args:
        date_str: The date string to parse (e.g., from a Release file's Date field)

    Returns:
        The parsed timestamp, or None if parsing failed or date_str is None
    """

    try:
        return parse_date(date_str) if date_str else None
    except (ValueError, OverflowError) as e:
        logger.debug(f"Failed to parse date '{date_str}': {e}")
        return None


async def run_concurrently(coros: Iterable[Coroutine[Any, Any, T]]) -> list[T]:
    """Run coroutines in a TaskGroup and return their results in order.

    The first failure cancels the rest and is re-raised on its own rather than
    wrapped in an ExceptionGroup, so callers can catch the usual error types.
    """
    try:
        async with asyncio.TaskGroup() as tg:
            tasks = [tg.create_task(coro) for coro in coros]
    except ExceptionGroup as eg:
        error: BaseException = eg
        while isinstance(error, BaseExceptionGroup):
            error = error.exceptions[0]
        raise error
    return [task.result() for task in tasks]
