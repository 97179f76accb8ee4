from __future__ import annotations

import asyncio
import logging
from typing import Optional

from branchplayer.models.device import BRANCHES
from branchplayer.models.song import SongRef
from branchplayer.models.status import StatusSnapshot
from branchplayer.services.context import DeviceContext
from branchplayer.state.doc_paths import status_doc
from branchplayer.state.document_store import SERVER_TIMESTAMP, DocumentStoreError
from branchplayer.state.subscription import SubscriptionGroup, SubscriptionSlot

log = logging.getLogger("status.mirror")


class StatusMirror:
    """
    Publishes this device's now-playing snapshot (fixed devices) and
    mirrors every branch's snapshot for the admin view.
    """

    def __init__(self, ctx: DeviceContext) -> None:
        self.ctx = ctx
        self._monitoring = SubscriptionSlot("monitoring")
        # status writes and clears run one at a time, in call order
        self._write_lock = asyncio.Lock()

    # =========================
    # PUBLISHER
    # =========================

    def build_snapshot(self) -> StatusSnapshot:
        pb = self.ctx.playback
        return StatusSnapshot(
            isPlaying=pb.is_playing,
            isShuffle=pb.is_shuffle,
            repeatMode=pb.repeat_mode,
            currentSong=SongRef.of(pb.current_song) if pb.current_song else None,
        )

    def publish(self) -> None:
        """Fire-and-forget write of the current snapshot."""
        branch = self.ctx.fixed_branch
        if branch is None:
            return
        data = self.build_snapshot().model_dump()
        data["updatedAt"] = SERVER_TIMESTAMP
        self.ctx.runner.spawn(self._write(branch, data), name=f"status:{branch}")

    async def _write(self, branch: str, data: dict) -> None:
        async with self._write_lock:
            # a reset may have happened since this write was scheduled
            if self.ctx.fixed_branch != branch:
                return
            try:
                await self.ctx.store.set(status_doc(branch), data)
            except DocumentStoreError:
                log.exception("status_publish_failed", extra={"branch": branch})

    async def clear(self, branch: str) -> bool:
        """Delete the branch's snapshot after any write already in flight."""
        async with self._write_lock:
            try:
                await self.ctx.store.delete(status_doc(branch))
            except DocumentStoreError:
                log.warning("status_clear_failed", extra={"branch": branch})
                return False
        log.info("status_cleared", extra={"branch": branch})
        return True

    # =========================
    # MONITOR (admin)
    # =========================

    @property
    def monitoring_active(self) -> bool:
        return self._monitoring.active

    def start_monitoring(self) -> None:
        def factory() -> SubscriptionGroup:
            subs = [
                self.ctx.store.watch_doc(status_doc(b), self._on_status(b))
                for b in BRANCHES
            ]
            return SubscriptionGroup("monitoring", subs)

        self._monitoring.replace(factory)
        log.info("monitoring_started")

    def stop_monitoring(self) -> None:
        if not self._monitoring.active:
            return
        self._monitoring.cancel()
        self.ctx.monitoring = {b: None for b in BRANCHES}
        log.info("monitoring_stopped")

    def _on_status(self, branch: str):
        async def on_snapshot(data: Optional[dict]) -> None:
            # absent document means the device is not connected
            self.ctx.monitoring[branch] = (
                StatusSnapshot.model_validate(data).model_dump() if data else None
            )
            self.ctx.emit("monitoring", {"branch": branch, "status": self.ctx.monitoring[branch]})

        return on_snapshot
