"""
Poll scheduling on the control loop.

Two independent timed activities share one interval:
- network poll: repeating, alive while at least one network directory is watched
- partial reconciliation: one-shot, re-armed by the tracker while partial files remain

Each activity owns at most one asyncio.TimerHandle through a TimerSlot.
Cancelling a slot drops its handle, so no handle outlives its activity.
"""

import asyncio
import logging
from typing import Callable, Optional

from .settings import DEFAULT_POLL_INTERVAL

logger = logging.getLogger(__name__)


class TimerSlot:
    """Holds at most one pending timer callback on an event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop, name: str):
        self._loop = loop
        self.name = name
        self._handle: Optional[asyncio.TimerHandle] = None

    @property
    def active(self) -> bool:
        return self._handle is not None

    def arm(self, delay: float, callback: Callable[[], None]) -> None:
        """Schedule callback after delay, replacing any pending one."""
        self.cancel()
        self._handle = self._loop.call_later(delay, self._fire, callback)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self, callback: Callable[[], None]) -> None:
        # The handle is spent once it fires; callback may re-arm the slot.
        self._handle = None
        callback()


class PollScheduler:
    """
    Owns the network poll timer and the partial reconciliation timer.

    All methods must be called from the control loop thread.
    """

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        interval: float = DEFAULT_POLL_INTERVAL,
    ):
        self.loop = loop
        self.interval = interval
        self._network = TimerSlot(loop, "network-poll")
        self._reconcile = TimerSlot(loop, "partial-reconcile")
        self._network_callback: Optional[Callable[[], None]] = None

    # -------------------------------------------------------------------------
    # Network poll (repeating)
    # -------------------------------------------------------------------------

    @property
    def network_poll_active(self) -> bool:
        return self._network_callback is not None

    def start_network_poll(self, callback: Callable[[], None]) -> None:
        """Start the repeating network poll. No-op if already running."""
        if self.network_poll_active:
            return
        self._network_callback = callback
        self._network.arm(self.interval, self._network_tick)
        logger.debug(f"Network poll started ({self.interval}s interval)")

    def stop_network_poll(self) -> None:
        if not self.network_poll_active:
            return
        self._network.cancel()
        self._network_callback = None
        logger.debug("Network poll stopped")

    def _network_tick(self) -> None:
        callback = self._network_callback
        if callback is None:
            return
        # Re-arm first so a failing scan does not end the poll.
        self._network.arm(self.interval, self._network_tick)
        callback()

    # -------------------------------------------------------------------------
    # Partial reconciliation (one-shot, re-armed while work remains)
    # -------------------------------------------------------------------------

    @property
    def reconcile_armed(self) -> bool:
        return self._reconcile.active

    def arm_reconcile(self, callback: Callable[[], None]) -> None:
        """Arm the reconciliation timer unless it is already pending."""
        if self._reconcile.active:
            return
        self._reconcile.arm(self.interval, callback)
        logger.debug(f"Partial reconciliation scheduled in {self.interval}s")

    def rearm_reconcile(self, callback: Callable[[], None]) -> None:
        self._reconcile.arm(self.interval, callback)

    def cancel_reconcile(self) -> None:
        self._reconcile.cancel()

    def close(self) -> None:
        """Cancel both activities."""
        self.stop_network_poll()
        self.cancel_reconcile()
