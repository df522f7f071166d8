import asyncio
import logging
import threading
from typing import Callable, Iterable, List, Optional, Sequence, Tuple, TypeVar

from retirement_calculator.core.exceptions import (
    CalculationCancelledError,
    CalculationTimeoutError,
    ComputationError,
    InvalidDurationError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancellationToken:
    """
    Cooperative cancellation signal shared by every sweep of one request.

    Sweeps run in worker threads, so the token wraps a threading.Event rather
    than relying on asyncio task cancellation reaching into the thread.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self):
        if self._event.is_set():
            raise CalculationCancelledError("Calculation was cancelled")


def check_cancelled(cancel_token: Optional[CancellationToken]):
    if cancel_token is not None:
        cancel_token.raise_if_cancelled()


# Failures that only knock out the sweep they happen in.
SWEEP_FAILURES = (ComputationError, InvalidDurationError)


async def run_sweeps(
    sweeps: Iterable[Tuple[str, Callable[[], T]]],
    cancel_token: CancellationToken,
    max_concurrency: int,
    timeout: Optional[float] = None,
) -> List[Optional[T]]:
    """
    Fans independent sweeps out to worker threads and gathers their results.

    Each sweep is a (label, callable) pair. Results come back in input order;
    a sweep that raises one of SWEEP_FAILURES is logged and yields None so its
    siblings still complete. Cancelling the awaiting task or exceeding
    `timeout` sets `cancel_token`, which the sweeps poll between rolling
    windows. Any other exception also sets the token before propagating.
    """
    semaphore = asyncio.Semaphore(max_concurrency)

    async def run_one(label: str, fn: Callable[[], T]) -> Optional[T]:
        async with semaphore:
            cancel_token.raise_if_cancelled()
            try:
                return await asyncio.to_thread(fn)
            except SWEEP_FAILURES as e:
                logger.warning(f"Sweep '{label}' failed and was omitted: {e}")
                return None

    labelled: Sequence[Tuple[str, Callable[[], T]]] = list(sweeps)
    gathered = asyncio.gather(*(run_one(label, fn) for label, fn in labelled))

    try:
        if timeout is not None:
            return list(await asyncio.wait_for(gathered, timeout=timeout))
        return list(await gathered)
    except asyncio.TimeoutError as e:
        cancel_token.cancel()
        raise CalculationTimeoutError(f"Calculation exceeded {timeout} seconds") from e
    except (asyncio.CancelledError, Exception):
        # Stop sibling sweeps still running in their threads
        cancel_token.cancel()
        raise
