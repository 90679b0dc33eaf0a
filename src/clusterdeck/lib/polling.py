"""Readiness polling primitives.

Two kinds of waits are used while provisioning:

- provider-native waiters (``boto3`` ``get_waiter``), which are bounded and
  carry their own backoff, wrapped by :func:`wait_for`;
- a fixed-interval poll loop, :func:`poll_until`, for conditions the
  provider has no waiter for (ECS container-instance registration).
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any

from botocore.exceptions import ClientError, WaiterError

from clusterdeck.lib.errors import DeploymentError
from clusterdeck.lib.logging_config import get_logger

logger = get_logger(__name__)


def wait_for(
    client: Any,
    waiter_name: str,
    description: str,
    **kwargs: Any,
) -> None:
    """Block on a provider waiter until the resource reaches the wanted state.

    Args:
        client: boto3 client exposing ``get_waiter``
        waiter_name: Waiter name, e.g. ``subnet_available``
        description: Human readable target used in errors
        **kwargs: Arguments forwarded to ``Waiter.wait``

    Raises:
        DeploymentError: If the waiter gives up or the request fails
    """
    logger.debug("Waiting on %s (%s)", waiter_name, description)
    try:
        client.get_waiter(waiter_name).wait(**kwargs)
    except (WaiterError, ClientError) as exc:
        raise DeploymentError(
            operation="wait",
            message=f"Unable to wait until {description}: {exc}",
        ) from exc


def poll_until(
    check: Callable[[], bool],
    *,
    interval: float,
    timeout: float | None,
    description: str,
) -> int:
    """Call ``check`` every ``interval`` seconds until it returns True.

    Exceptions raised by ``check`` propagate immediately.

    Args:
        check: Zero-argument predicate
        interval: Seconds to sleep between attempts
        timeout: Give up after this many seconds; None polls forever
        description: Human readable condition used in errors

    Returns:
        Number of attempts made

    Raises:
        DeploymentError: If ``timeout`` elapses first
    """
    deadline = None if timeout is None else time.monotonic() + timeout
    attempts = 0
    while True:
        attempts += 1
        if check():
            return attempts
        if deadline is not None and time.monotonic() + interval > deadline:
            raise DeploymentError(
                operation="wait",
                message=(
                    f"Timed out after {timeout:g}s waiting until {description} "
                    f"({attempts} attempts)"
                ),
            )
        time.sleep(interval)
