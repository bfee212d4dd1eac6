"""Notification channel for credential delivery.

The identity platform's direct-message channel is an external collaborator.
KeyGate only needs ``send(identity_id, message)``; delivery is best-effort
and its outcome is observed for logging only.

Usage at call sites (non-negotiable):
    dispatch_notification(notifier, identity_id, message)  # fire-and-forget
    # NEVER: await notifier.send(...) inside a credential mutation

dispatch_notification() never waits for the send:
  - on a running event loop it schedules an asyncio task
  - without one it starts a daemon thread that runs its own loop
drain_notifications() waits (bounded) for whatever is still in flight and
is called at application shutdown.
"""

from __future__ import annotations

import asyncio
import threading
import time
from typing import Protocol, Union, runtime_checkable

from keygate.utils.logger import get_logger

logger = get_logger(__name__)

# Upper bound on how long shutdown waits for in-flight deliveries.
DRAIN_TIMEOUT_S: float = 5.0


@runtime_checkable
class Notifier(Protocol):
    """Pluggable notification interface."""

    async def send(self, identity_id: str, message: str) -> None:
        """Deliver ``message`` to ``identity_id``. May raise on delivery failure."""
        ...


class NullNotifier:
    """Discards every message. Default when no channel is wired in."""

    async def send(self, identity_id: str, message: str) -> None:
        logger.debug("Notification discarded (no channel configured)", identity_id=identity_id)


async def _deliver(notifier: Notifier, identity_id: str, message: str) -> None:
    try:
        await notifier.send(identity_id, message)
    except Exception as exc:
        logger.warning(
            "Notification delivery failed",
            identity_id=identity_id,
            error=str(exc),
        )
        return
    logger.debug("Notification delivered", identity_id=identity_id)


def _deliver_in_thread(notifier: Notifier, identity_id: str, message: str) -> None:
    try:
        asyncio.run(_deliver(notifier, identity_id, message))
    finally:
        _threads.discard(threading.current_thread())


def dispatch_notification(
    notifier: Notifier,
    identity_id: str,
    message: str,
) -> Union[asyncio.Task[None], threading.Thread]:
    """Fire-and-forget delivery. Returns immediately.

    Returns:
        The scheduled asyncio.Task when called on a running event loop,
        otherwise the started daemon thread. Callers may await / join it;
        the credential mutation that triggered the send never does.
    """
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        loop = None

    if loop is None:
        thread = threading.Thread(
            target=_deliver_in_thread,
            args=(notifier, identity_id, message),
            name="keygate-notify",
            daemon=True,
        )
        _threads.add(thread)
        thread.start()
        return thread

    task = loop.create_task(_deliver(notifier, identity_id, message))
    # The loop only keeps weak references to tasks.
    _pending.add(task)
    task.add_done_callback(_pending.discard)
    return task


def flush_notifications(timeout: float = DRAIN_TIMEOUT_S) -> None:
    """Join thread deliveries still in flight, waiting at most ``timeout`` seconds."""
    deadline = time.monotonic() + timeout
    for thread in list(_threads):
        thread.join(max(deadline - time.monotonic(), 0.0))


async def drain_notifications(timeout: float = DRAIN_TIMEOUT_S) -> None:
    """Wait (bounded) for task and thread deliveries still in flight."""
    if _pending:
        _, still_running = await asyncio.wait(set(_pending), timeout=timeout)
        if still_running:
            logger.warning("Notifications still pending at shutdown", pending=len(still_running))
    if _threads:
        await asyncio.to_thread(flush_notifications, timeout)


_pending: set[asyncio.Task[None]] = set()
_threads: set[threading.Thread] = set()
