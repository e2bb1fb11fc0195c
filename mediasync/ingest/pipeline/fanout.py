"""
Fan-out / fan-in execution for pipeline stages.

Every item of a stage gets its own task. Each task writes its result into
the slot at its item's index, so stage output keeps input order no matter
which task finishes first. The stage returns only after every task has
finished (barrier). The first failure cancels the remaining tasks and is
re-raised as a StageFailedError.
"""

import asyncio
import logging
from typing import AbstractSet, Awaitable, Callable, Collection, List, Optional, Sequence, TypeVar, cast

from ..core.exceptions import StageFailedError
from ..core.types import PipelineStage

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


async def fan_out(
    stage: PipelineStage,
    items: Sequence[T],
    worker: Callable[[int, T], Awaitable[R]],
) -> List[R]:
    """
    Run ``worker(index, item)`` concurrently for every item.

    Args:
        stage: Stage being executed (used for task names and errors)
        items: Stage input
        worker: Coroutine function producing one result per item

    Returns:
        Results in input order

    Raises:
        StageFailedError: If any worker raises or is cancelled. In-flight
            siblings are cancelled and awaited before this is raised.
    """
    if not items:
        return []

    slots: List[Optional[R]] = [None] * len(items)

    async def _run(index: int, item: T) -> None:
        slots[index] = await worker(index, item)

    tasks = [asyncio.create_task(_run(index, item), name=f"{stage.value}-{index}") for index, item in enumerate(items)]

    try:
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
    except asyncio.CancelledError:
        # The whole request was cancelled; take the stage down with it
        await _cancel_and_wait(tasks)
        raise

    failed_index = _first_failure(tasks, done)
    if failed_index is None:
        return cast(List[R], slots)

    await _cancel_and_wait(pending)
    failed_task = tasks[failed_index]
    cause: BaseException = (
        asyncio.CancelledError() if failed_task.cancelled() else cast(BaseException, failed_task.exception())
    )

    logger.error(
        f"{stage.value} stage failed for item {failed_index}, cancelled {len(pending)} sibling task(s)",
        extra={"stage": stage.value, "source_index": failed_index, "cancelled": len(pending)},
    )
    raise StageFailedError(stage, failed_index, cause, partial_results=list(slots)) from cause


def _first_failure(tasks: List["asyncio.Task[None]"], done: AbstractSet["asyncio.Task[None]"]) -> Optional[int]:
    for index, task in enumerate(tasks):
        if task not in done:
            continue
        if task.cancelled() or task.exception() is not None:
            return index
    return None


async def _cancel_and_wait(tasks: Collection["asyncio.Task[None]"]) -> None:
    for task in tasks:
        if not task.done():
            task.cancel()
    if tasks:
        await asyncio.gather(*tasks, return_exceptions=True)
