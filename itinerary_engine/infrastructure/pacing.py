"""
Pacing helpers for outbound provider calls.

Every external lookup goes through call_with_fallback: it is bounded by a
timeout, can be cancelled, and resolves to a fallback value instead of
raising. gather_paced runs many such calls in small concurrent batches with
a pause between batches so providers do not throttle us.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Optional, Sequence, TypeVar

from itinerary_engine.domain.errors import ExternalServiceUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancellationToken:
    """Cooperative cancellation flag shared by a group of provider calls."""

    def __init__(self):
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


async def call_with_fallback(
    factory: Callable[[], Awaitable[T]],
    fallback: Callable[[], T],
    timeout_seconds: float,
    token: Optional[CancellationToken] = None,
    label: str = "provider call",
) -> T:
    """
    Await a provider call, returning fallback() on timeout, failure or cancellation.

    Args:
        factory: Zero-argument callable producing the awaitable
        fallback: Builds the value used when the call does not succeed
        timeout_seconds: Upper bound for the call
        token: Optional cancellation token
        label: Name used in log messages
    """
    if token is not None and token.cancelled:
        logger.debug(f"{label}: cancelled before start")
        return fallback()

    call = asyncio.ensure_future(factory())
    waiters = {call}
    cancel_waiter = None
    if token is not None:
        cancel_waiter = asyncio.ensure_future(token.wait())
        waiters.add(cancel_waiter)

    try:
        done, _ = await asyncio.wait(waiters, timeout=timeout_seconds, return_when=asyncio.FIRST_COMPLETED)
    finally:
        if cancel_waiter is not None:
            cancel_waiter.cancel()
        if not call.done():
            call.cancel()

    if call not in done:
        if token is not None and token.cancelled:
            logger.debug(f"{label}: cancelled")
        else:
            logger.warning(f"{label}: timed out after {timeout_seconds}s, using fallback")
        return fallback()

    try:
        return call.result()
    except ExternalServiceUnavailable as e:
        logger.warning(f"{label}: {e}, using fallback")
    except asyncio.CancelledError:
        logger.debug(f"{label}: cancelled")
    except Exception as e:
        logger.warning(f"{label}: {type(e).__name__}: {e}, using fallback")
    return fallback()


async def gather_paced(
    factories: Sequence[Callable[[], Awaitable[T]]],
    batch_size: int,
    delay_seconds: float,
    token: Optional[CancellationToken] = None,
) -> list[T]:
    """
    Run awaitable factories in batches of batch_size, pausing between batches.

    Results keep the input order. Factories are expected not to raise
    (wrap them with call_with_fallback).
    """
    results: list[T] = []
    batch_size = max(1, batch_size)
    for start in range(0, len(factories), batch_size):
        batch = factories[start:start + batch_size]
        results.extend(await asyncio.gather(*(factory() for factory in batch)))
        is_last = start + batch_size >= len(factories)
        if not is_last and delay_seconds > 0 and not (token and token.cancelled):
            await asyncio.sleep(delay_seconds)
    return results
