import asyncio
from typing import Awaitable, Callable, Optional, Type, TypeVar, Tuple

T = TypeVar("T")


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    *,
    retries: int = 3,
    backoff_seconds: float = 0.5,
    retry_on: Optional[Tuple[Type[BaseException], ...]] = (Exception,),
) -> T:
    """Await fn() with retries and exponential backoff. If retry_on is None, defaults to (Exception,).
    Why available: Used by the analysis provider and embedding calls to ride out transient API failures without failing the item."""
    exc_types: Tuple[Type[BaseException], ...] = retry_on or (Exception,)

    last_err: Optional[BaseException] = None

    for attempt in range(retries + 1):
        try:
            return await fn()
        except exc_types as e:
            last_err = e
            if attempt >= retries:
                raise
            sleep_s = backoff_seconds * (2 ** attempt)
            await asyncio.sleep(sleep_s)

    # Should be unreachable, but keeps type-checkers happy.
    assert last_err is not None
    raise last_err


async def with_timeout(awaitable: Awaitable[T], seconds: float, what: str) -> T:
    """Await with a deadline. Raises TimeoutError naming the call so the failing item records something readable.
    Why available: Every external call in the item pipeline is bounded; a timed-out call fails its item only."""
    try:
        return await asyncio.wait_for(awaitable, timeout=seconds)
    except asyncio.TimeoutError as e:
        raise TimeoutError(f"{what} timed out after {seconds:g}s") from e
