"""
Concurrent per-item execution for bulk operations (re-anchoring, schedule
generation). Each item runs on a worker thread; transient failures are retried,
and whatever still fails is reported as a PartialBatchFailure. Items that went
through are never rolled back.
"""
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import anyio

try:
    from backend import config
except ModuleNotFoundError:
    import config

from .errors import NotFound, PartialBatchFailure, ValidationError

logger = logging.getLogger(__name__)

BatchItem = Tuple[str, Callable[[], Any]]


async def _run_round(items: Sequence[BatchItem], limiter: anyio.CapacityLimiter) -> Tuple[Dict[str, Any], Dict[str, Exception]]:
    results: Dict[str, Any] = {}
    errors: Dict[str, Exception] = {}

    async def run_one(key: str, call: Callable[[], Any]) -> None:
        try:
            results[key] = await anyio.to_thread.run_sync(call, limiter=limiter)
        except Exception as e:
            errors[key] = e

    async with anyio.create_task_group() as tg:
        for key, call in items:
            tg.start_soon(run_one, key, call)
    return results, errors


async def run_batch(action: str, items: Sequence[BatchItem], retries: Optional[int] = None,
                    concurrency: Optional[int] = None) -> List[Any]:
    """Run every (key, call) pair concurrently and return the results in input order.

    Raises PartialBatchFailure naming the keys that failed after ``retries``
    extra attempts.
    """
    retries = config.BULK_RETRIES if retries is None else retries
    limiter = anyio.CapacityLimiter(concurrency or config.BULK_CONCURRENCY)

    results, errors = await _run_round(items, limiter)
    # Bad input and vanished rows fail the same way on every attempt
    permanent = {k: e for k, e in errors.items() if isinstance(e, (ValidationError, NotFound))}
    transient = {k: e for k, e in errors.items() if k not in permanent}
    attempt = 0
    while transient and attempt < retries:
        attempt += 1
        logger.warning("%s: retrying %d failed item(s) (attempt %d)", action, len(transient), attempt)
        pending = [(key, call) for key, call in items if key in transient]
        retried, transient = await _run_round(pending, limiter)
        results.update(retried)
    errors = {**permanent, **transient}

    succeeded = [key for key, _ in items if key in results]
    if errors:
        logger.warning("%s: %d of %d item(s) failed", action, len(errors), len(items))
        raise PartialBatchFailure(action, {k: str(e) for k, e in errors.items()}, succeeded)
    logger.info("%s: %d item(s) done", action, len(items))
    return [results[key] for key, _ in items]
