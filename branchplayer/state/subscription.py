from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional

log = logging.getLogger("store.subscription")


class Subscription:
    """
    Handle for one live push subscription.

    `cancel()` is synchronous: once it returns, `active` is False and the
    owner of the listener must not deliver another callback.
    """

    def __init__(
        self,
        name: str,
        *,
        task: Optional[asyncio.Task] = None,
        on_cancel: Optional[Callable[[], None]] = None,
    ) -> None:
        self.name = name
        self.active = True
        self._task = task
        self._on_cancel = on_cancel

    def attach(self, task: asyncio.Task) -> None:
        self._task = task

    def cancel(self) -> None:
        if not self.active:
            return
        self.active = False
        if self._task and not self._task.done():
            self._task.cancel()
        if self._on_cancel:
            self._on_cancel()
        log.debug("subscription_cancelled", extra={"subscription": self.name})


class SubscriptionGroup(Subscription):
    """Several feeds torn down together (branch songs + legacy songs)."""

    def __init__(self, name: str, members: List[Subscription]) -> None:
        super().__init__(name)
        self.members = list(members)

    def cancel(self) -> None:
        if not self.active:
            return
        self.active = False
        for sub in self.members:
            sub.cancel()


class SubscriptionSlot:
    """
    Holds at most one live subscription for a logical feed.

    Replacing always cancels the previous handle first.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._current: Optional[Subscription] = None

    @property
    def current(self) -> Optional[Subscription]:
        return self._current

    @property
    def active(self) -> bool:
        return self._current is not None and self._current.active

    def cancel(self) -> None:
        if self._current is not None:
            self._current.cancel()
            self._current = None

    def replace(self, factory: Callable[[], Subscription]) -> Subscription:
        self.cancel()
        self._current = factory()
        return self._current
