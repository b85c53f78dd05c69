"""
Concurrent fan-out of upstream fetches.

Every job runs as its own task. A failing job only empties its own slot and
never cancels its siblings. An optional deadline cancels whatever is still
pending, and the caller works with what has arrived.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from nhdiscovery.services.models import ProgressEvent

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressEvent], None]


@dataclass
class FetchJob:
    """One upstream fetch: a label for logs and a coroutine factory."""
    label: str
    fetch: Callable[[], Awaitable[list[dict]]]


@dataclass
class FetchResult:
    label: str
    records: list[dict] = field(default_factory=list)
    error: Optional[BaseException] = None
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and not self.timed_out


def emit_progress(on_progress: Optional[ProgressCallback], event: ProgressEvent) -> None:
    """Deliver a progress event; callback failures never affect the result."""
    if on_progress is None:
        return
    try:
        on_progress(event)
    except Exception as e:
        logger.warning(f"Progress callback failed for {event.stage}: {e}")


async def fan_out(
    jobs: list[FetchJob],
    *,
    stage: str,
    on_progress: Optional[ProgressCallback] = None,
    timeout: Optional[float] = None,
) -> list[FetchResult]:
    """
    Run jobs concurrently and return one FetchResult per job, in job order.

    Args:
        jobs: Fetches to run
        stage: Name used in progress events and logs
        on_progress: Called after each job finishes
        timeout: Seconds to wait before cancelling pending jobs

    Returns:
        Results aligned with jobs; failed or cancelled jobs have no records
    """
    if not jobs:
        return []

    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout if timeout is not None else None
    tasks = [asyncio.create_task(job.fetch()) for job in jobs]
    pending: set[asyncio.Task] = set(tasks)
    completed = 0

    try:
        while pending:
            remaining = None if deadline is None else deadline - loop.time()
            if remaining is not None and remaining <= 0:
                break
            done, pending = await asyncio.wait(
                pending, timeout=remaining, return_when=asyncio.FIRST_COMPLETED
            )
            for _ in done:
                completed += 1
                emit_progress(on_progress, ProgressEvent(
                    stage=stage,
                    completed=completed,
                    total=len(jobs),
                    message=f"Fetched {completed} of {len(jobs)} ({stage})",
                ))
    finally:
        if pending:
            logger.warning(
                f"[{stage}] Deadline reached, cancelling {len(pending)} of {len(jobs)} fetches"
            )
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

    results = []
    for job, task in zip(jobs, tasks):
        if task.cancelled():
            results.append(FetchResult(job.label, timed_out=True))
            continue
        error = task.exception()
        if error is not None:
            logger.warning(f"[{stage}] Fetch failed for {job.label}: {error}")
            results.append(FetchResult(job.label, error=error))
        else:
            results.append(FetchResult(job.label, records=list(task.result() or [])))
    return results


def all_failed(results: list[FetchResult]) -> bool:
    """True when there was at least one fetch and every one raised."""
    return bool(results) and all(r.error is not None for r in results)
