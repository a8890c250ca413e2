"""Status convergence for resources the control plane changes in the background.

``wait_for_status`` polls one resource until it reaches an expected status,
hits an error sentinel, disappears, or runs out of time. Elapsed time is
counted in poll intervals rather than measured, so a wait with timeout ``t``
and interval ``i`` fetches at most ``ceil(t / i) + 1`` times.

``wait_for_all_status`` applies a per-member wait to every resource of a
collection, one member after the other.
"""

import asyncio
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

from loguru import logger

from cloud_api_client.models import WaitOutcome, WaitPolicy, WaitState

R = TypeVar("R")
M = TypeVar("M")

Sleep = Callable[[float], Awaitable[Any]]


def _classify(status: Any, policy: WaitPolicy, elapsed: float) -> WaitState:
    if status is None:
        return WaitState.vanished
    if status == policy.expected:
        return WaitState.converged
    if status in policy.error_statuses:
        return WaitState.errored
    if elapsed >= policy.timeout:
        return WaitState.timed_out
    return WaitState.awaiting


def _display(status: Any) -> Any:
    return getattr(status, "value", status)


async def wait_for_status(
    fetch: Callable[[], Awaitable[Optional[R]]],
    get_status: Callable[[R], Any],
    policy: WaitPolicy,
    *,
    sleep: Optional[Sleep] = None,
    description: str = "Resource",
) -> WaitOutcome[R]:
    sleep = sleep or asyncio.sleep
    elapsed = 0.0

    current = await fetch()
    polls = 1
    status = get_status(current) if current is not None else None
    state = _classify(status, policy, elapsed)

    while state is WaitState.awaiting:
        logger.debug(
            f"Waiting for {description} status '{_display(status)}' to become "
            f"'{_display(policy.expected)}' ({elapsed:g}/{policy.timeout:g})"
        )
        await sleep(policy.interval)
        elapsed += policy.interval

        snapshot = await fetch()
        polls += 1
        snapshot_status = get_status(snapshot) if snapshot is not None else None
        if snapshot_status is None:
            # Keep the last snapshot we saw before it went away
            state = WaitState.vanished
            break

        current, status = snapshot, snapshot_status
        state = _classify(status, policy, elapsed)

    logger.debug(
        f"{description} ended up as '{_display(status)}' status "
        f"after {elapsed:g}/{policy.timeout:g} ({state.value})"
    )
    return WaitOutcome(
        state=state,
        resource=current,
        status=status,
        elapsed=elapsed,
        timeout=policy.timeout,
        polls=polls,
    )


async def wait_for_all_status(
    list_resources: Callable[[], Awaitable[List[M]]],
    wait_one: Callable[[M], Awaitable[R]],
) -> List[R]:
    """Waits for every listed resource in turn, keeping the listing order.

    The first member whose wait raises aborts the batch and the remaining
    members are never polled.
    """
    members = await list_resources()
    results: List[R] = []
    for member in members:
        results.append(await wait_one(member))
    return results
