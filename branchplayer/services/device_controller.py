from __future__ import annotations

import asyncio
import logging
import sqlite3
from typing import Optional

from branchplayer.models.device import AuthUser, fixed_branch
from branchplayer.services.audio_cache import AudioCacheManager
from branchplayer.services.command_channel import RemoteCommandChannel
from branchplayer.services.context import DeviceContext
from branchplayer.services.library_sync import LibrarySyncEngine
from branchplayer.services.playback_queue import PlaybackQueueEngine
from branchplayer.services.status_mirror import StatusMirror
from branchplayer.state.local_store import LocalStore

log = logging.getLogger("device.mode")

DEVICE_MODE_KEY = "device_mode"
PERSISTED_MODES = ("general", "branch1", "branch2")


class DeviceModeController:
    """
    Top-level device state machine: unset / general / fixed to a branch.

    Wires library sync, command reception and status publishing according
    to the persisted mode.
    """

    def __init__(
        self,
        ctx: DeviceContext,
        local: LocalStore,
        cache: AudioCacheManager,
        queue: PlaybackQueueEngine,
        library: LibrarySyncEngine,
        commands: RemoteCommandChannel,
        mirror: StatusMirror,
    ) -> None:
        self.ctx = ctx
        self.local = local
        self.cache = cache
        self.queue = queue
        self.library = library
        self.commands = commands
        self.mirror = mirror

    # =========================
    # LIFECYCLE
    # =========================

    async def start(self) -> None:
        await self.cache.sync_cached_ids()

        saved = await self._load_mode()
        if saved in PERSISTED_MODES:
            log.info("device_mode_restored", extra={"mode": saved})
            await self.set_mode(saved, persist=False)
        else:
            self.ctx.mode = "unset"
            self.ctx.set_message("Device setup required")

    async def teardown(self) -> None:
        """Shutdown hook: a fixed device must not stay 'connected' in the admin view."""
        if self.ctx.fixed_branch is not None:
            await self.reset_mode(forget=False)
            return
        self.library.unsubscribe()
        self.commands.stop()
        self.mirror.stop_monitoring()
        self.queue.release_handle()

    # =========================
    # MODE
    # =========================

    async def set_mode(self, mode: str, *, persist: bool = True) -> None:
        if mode not in PERSISTED_MODES:
            raise ValueError(f"invalid device mode: {mode!r}")

        previous = self.ctx.fixed_branch
        self.ctx.mode = mode
        if persist:
            await self._save_mode(mode)

        branch = fixed_branch(mode)
        if previous is not None and previous != branch:
            # no longer this branch's player: drop it from the admin view
            await self.mirror.clear(previous)

        if branch is not None:
            log.info("device_mode_fixed", extra={"branch": branch})
            # even when already on this branch, so the feeds are (re)established
            self.library.switch_branch(branch, force=True)
            self.commands.start(branch)
        else:
            log.info("device_mode_general")
            self.commands.stop()
            if self.ctx.branch is None:
                self.library.switch_branch(self.ctx.settings.default_branch)

        self.ctx.refresh_label()
        self.ctx.emit("state", self.ctx.snapshot())

    async def reset_mode(self, *, forget: bool = True) -> None:
        branch = self.ctx.fixed_branch
        self.ctx.mode = "unset"

        if branch is not None:
            # best-effort; a failure only leaves a stale entry in the admin view
            await self.mirror.clear(branch)

        self.library.unsubscribe()
        self.commands.stop()
        self.mirror.stop_monitoring()

        self.queue.reset()
        self.ctx.songs = []
        self.ctx.editing = None
        self.ctx.branch = None

        if forget:
            await self._delete_mode()

        log.info("device_mode_reset", extra={"branch": branch, "forget": forget})
        self.ctx.set_message("Device configuration reset")

    def switch_branch(self, branch_id: str) -> bool:
        return self.library.switch_branch(branch_id)

    # =========================
    # AUTH
    # =========================

    def set_user(self, user: Optional[AuthUser]) -> None:
        self.ctx.user = user

        if self.ctx.is_admin:
            if not self.mirror.monitoring_active:
                self.mirror.start_monitoring()
        else:
            self.ctx.editing = None
            self.mirror.stop_monitoring()

        self.ctx.refresh_label()
        self.ctx.emit("state", self.ctx.snapshot())

    # =========================
    # PERSISTENCE
    # =========================

    async def _load_mode(self) -> Optional[str]:
        try:
            return await asyncio.to_thread(self.local.get_config, DEVICE_MODE_KEY)
        except sqlite3.Error:
            log.exception("device_mode_read_failed")
            return None

    async def _save_mode(self, mode: str) -> None:
        try:
            await asyncio.to_thread(self.local.set_config, DEVICE_MODE_KEY, mode)
        except sqlite3.Error:
            log.exception("device_mode_write_failed", extra={"mode": mode})

    async def _delete_mode(self) -> None:
        try:
            await asyncio.to_thread(self.local.delete_config, DEVICE_MODE_KEY)
        except sqlite3.Error:
            log.exception("device_mode_delete_failed")
