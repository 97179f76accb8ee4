from __future__ import annotations

import logging
from typing import Any, Optional

from pydantic import ValidationError

from branchplayer.models.command import Command
from branchplayer.models.device import BRANCHES
from branchplayer.models.song import Song, index_of
from branchplayer.services.context import DeviceContext
from branchplayer.services.playback_queue import PlaybackQueueEngine
from branchplayer.state.doc_paths import command_doc
from branchplayer.state.document_store import DocumentStoreError, now_ms
from branchplayer.state.subscription import SubscriptionSlot

log = logging.getLogger("command.channel")


class RemoteCommandChannel:
    """
    Latest-command-wins channel between the admin and a branch device.

    One command document per branch is overwritten on every send. The
    receiver applies a command only when its timestamp is strictly newer
    than the last one it applied; that is the only duplicate filter.
    """

    def __init__(self, ctx: DeviceContext, queue: PlaybackQueueEngine) -> None:
        self.ctx = ctx
        self.queue = queue

        self._feed = SubscriptionSlot("commands")
        self._branch: Optional[str] = None
        self.last_applied_ts: Optional[float] = None

    @property
    def listening(self) -> bool:
        return self._feed.active

    # =========================
    # SENDER (admin)
    # =========================

    async def send(self, target_branch: str, command_type: str, payload: Any = None) -> bool:
        if not self.ctx.is_admin:
            log.warning("command_send_refused_not_admin", extra={"branch": target_branch})
            self.ctx.emit("notice", {"level": "error", "message": "Admin only"})
            return False
        if target_branch not in BRANCHES:
            raise ValueError(f"unknown branch: {target_branch!r}")

        cmd = Command(type=command_type, payload=payload, timestamp=now_ms())
        try:
            await self.ctx.store.set(command_doc(target_branch), cmd.model_dump())
        except DocumentStoreError:
            log.exception("command_send_failed", extra={"branch": target_branch, "type": command_type})
            self.ctx.emit("notice", {"level": "error", "message": "Failed to send command"})
            return False

        log.info("command_sent", extra={"branch": target_branch, "type": command_type})
        self.ctx.emit("notice", {"level": "info", "message": f"Sent {command_type} to {target_branch}"})
        return True

    # =========================
    # RECEIVER (fixed device)
    # =========================

    def start(self, branch_id: str) -> None:
        if branch_id != self._branch:
            # a different document: forget what was applied on the old one
            self._branch = branch_id
            self.last_applied_ts = None

        self._feed.replace(
            lambda: self.ctx.store.watch_doc(command_doc(branch_id), self._on_command_doc)
        )
        log.info("command_reception_started", extra={"branch": branch_id})

    def stop(self) -> None:
        if self._feed.active:
            log.info("command_reception_stopped", extra={"branch": self._branch})
        self._feed.cancel()

    async def _on_command_doc(self, data: Optional[dict]) -> None:
        # the first snapshot counts too: a device that was offline still
        # gets the latest command
        if data is None:
            return
        try:
            cmd = Command.model_validate(data)
        except ValidationError:
            log.warning("command_malformed", extra={"branch": self._branch})
            return
        await self.receive(cmd)

    async def receive(self, cmd: Command) -> bool:
        if self.last_applied_ts is not None and cmd.timestamp <= self.last_applied_ts:
            return False
        self.last_applied_ts = cmd.timestamp
        await self.apply(cmd)
        return True

    async def apply(self, cmd: Command) -> None:
        try:
            if cmd.type == "next":
                await self.queue.play_next()
            elif cmd.type == "prev":
                await self.queue.play_previous()
            elif cmd.type == "toggleShuffle":
                self.queue.toggle_shuffle()
            elif cmd.type == "setRepeat":
                self.queue.set_repeat_mode(cmd.payload)
            elif cmd.type == "playSong":
                await self._play_payload(cmd.payload)
        except ValueError:
            # pydantic ValidationError is a ValueError too
            log.warning("command_apply_failed", extra={"type": cmd.type, "payload": cmd.payload})

        self.ctx.last_command = cmd
        # emitted even when the resulting state did not change (setRepeat)
        self.ctx.emit("command", cmd.model_dump())
        log.info("command_applied", extra={"type": cmd.type, "branch": self._branch})

    async def _play_payload(self, payload: Any) -> None:
        # the sender's copy of the song, no fresh lookup and no queue rebuild
        song = Song.model_validate(payload)
        pb = self.ctx.playback
        pb.current_queue_index = index_of(pb.play_queue, song.id)
        pb.current_list_index = index_of(self.ctx.songs, song.id)
        await self.queue.load_and_play(song)
