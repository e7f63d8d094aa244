"""
Core utilities shared by the hub and probing layers
"""

import asyncio
from typing import Awaitable, Optional, Set


def create_tracked_task(tasks: Set[asyncio.Task], coro: Awaitable, name: str = "") -> asyncio.Task:
    """Create a task that removes itself from ``tasks`` when done."""
    task = asyncio.create_task(coro, name=name or None)
    tasks.add(task)
    task.add_done_callback(tasks.discard)
    return task


async def cancel_tracked_tasks(tasks: Set[asyncio.Task], timeout: float = 5.0) -> int:
    """Cancel every pending task in ``tasks`` and wait (bounded) for them to finish."""
    current = asyncio.current_task()
    pending = [task for task in tasks if not task.done() and task is not current]
    for task in pending:
        task.cancel()

    if pending:
        # Tasks still running after the timeout are left to finish on their own
        await asyncio.wait(pending, timeout=timeout)

    tasks.difference_update(pending)
    return len(pending)


async def wait_any_event(*events: Optional[asyncio.Event], timeout: float) -> bool:
    """
    Wait until one of ``events`` is set or ``timeout`` elapses.

    Returns True if an event fired, False on timeout.
    """
    watched = [event for event in events if event is not None]
    if any(event.is_set() for event in watched):
        return True

    waiters = [asyncio.ensure_future(event.wait()) for event in watched]
    if not waiters:
        await asyncio.sleep(timeout)
        return False
    try:
        done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        return bool(done)
    finally:
        for waiter in waiters:
            if not waiter.done():
                waiter.cancel()
