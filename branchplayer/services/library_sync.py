from __future__ import annotations

import logging
from typing import List

from branchplayer.models.device import BRANCHES
from branchplayer.models.song import Song, merge_songs
from branchplayer.services.context import DeviceContext
from branchplayer.services.playback_queue import PlaybackQueueEngine
from branchplayer.state.doc_paths import LEGACY_SONGS_COLLECTION, songs_collection
from branchplayer.state.document_store import CollectionSnapshot
from branchplayer.state.subscription import SubscriptionGroup, SubscriptionSlot

log = logging.getLogger("library.sync")

BRANCH_NAMES = {"branch1": "branch 1", "branch2": "branch 2"}


class LibrarySyncEngine:
    """
    Keeps `ctx.songs` equal to the merged, order-sorted library of the
    current branch.

    Each source snapshot replaces that source's list wholesale; the merged
    list is always rebuilt from both lists, never patched.
    """

    def __init__(self, ctx: DeviceContext, queue: PlaybackQueueEngine) -> None:
        self.ctx = ctx
        self.queue = queue

        self._feed = SubscriptionSlot("library")
        # callbacks carry the epoch they were created under
        self._epoch = 0

        self._branch_songs: List[Song] = []
        self._legacy_songs: List[Song] = []

    @property
    def subscribed(self) -> bool:
        return self._feed.active

    def legacy_enabled_for(self, branch_id: str) -> bool:
        s = self.ctx.settings
        return s.legacy_merge_enabled and branch_id == s.legacy_branch

    # =========================
    # SUBSCRIPTIONS
    # =========================

    def subscribe_to_branch(self, branch_id: str) -> None:
        self._epoch += 1
        epoch = self._epoch
        # the old feed is gone before the new one exists
        self._feed.cancel()

        self._branch_songs = []
        self._legacy_songs = []

        store = self.ctx.store
        with_legacy = self.legacy_enabled_for(branch_id)

        def factory() -> SubscriptionGroup:
            subs = [
                store.watch_collection(
                    songs_collection(branch_id),
                    self._on_branch_snapshot(epoch),
                    order_by="order",
                    on_error=self._on_error(epoch, branch_id),
                )
            ]
            if with_legacy:
                subs.append(
                    store.watch_collection(
                        LEGACY_SONGS_COLLECTION,
                        self._on_legacy_snapshot(epoch),
                        order_by="order",
                        on_error=self._on_error(epoch, branch_id),
                    )
                )
            return SubscriptionGroup(f"library:{branch_id}", subs)

        self.ctx.set_message(f"Loading {BRANCH_NAMES.get(branch_id, branch_id)} library...")
        self._feed.replace(factory)
        log.info("library_subscribed", extra={"branch": branch_id, "legacy": with_legacy})

    def unsubscribe(self) -> None:
        self._epoch += 1
        self._feed.cancel()
        self._branch_songs = []
        self._legacy_songs = []

    def _on_branch_snapshot(self, epoch: int):
        async def on_snapshot(items: CollectionSnapshot) -> None:
            if epoch != self._epoch:
                return
            self._branch_songs = [Song.from_doc(i, d) for i, d in items]
            self.update_merged_list()

        return on_snapshot

    def _on_legacy_snapshot(self, epoch: int):
        async def on_snapshot(items: CollectionSnapshot) -> None:
            if epoch != self._epoch:
                return
            self._legacy_songs = [Song.from_doc(i, d, is_old=True) for i, d in items]
            self.update_merged_list()

        return on_snapshot

    def _on_error(self, epoch: int, branch_id: str):
        def on_error(exc: Exception) -> None:
            if epoch != self._epoch:
                return
            log.error("library_feed_failed", extra={"branch": branch_id, "error": str(exc)})
            self.ctx.set_message("Failed to load library")

        return on_error

    # =========================
    # MERGE
    # =========================

    def update_merged_list(self) -> None:
        self.ctx.songs = merge_songs(self._branch_songs, self._legacy_songs)

        # the row being edited may have moved or vanished
        self.ctx.editing = None

        self.queue.reconcile_queue()
        self.ctx.refresh_label()

        self.ctx.emit("library", {"songs": [s.model_dump() for s in self.ctx.songs]})
        self.ctx.emit("state", self.ctx.snapshot())

    # =========================
    # BRANCH
    # =========================

    def switch_branch(self, branch_id: str, *, force: bool = False) -> bool:
        if branch_id not in BRANCHES:
            raise ValueError(f"unknown branch: {branch_id!r}")

        fixed = self.ctx.fixed_branch
        if fixed is not None and fixed != branch_id:
            log.warning(
                "branch_switch_refused_fixed_device",
                extra={"fixed": fixed, "requested": branch_id},
            )
            return False

        if (
            not force
            and branch_id == self.ctx.branch
            and not self.ctx.is_loading
            and len(self.ctx.songs) > 0
        ):
            return False

        self.ctx.branch = branch_id
        self.queue.reset()
        self.ctx.songs = []
        self.subscribe_to_branch(branch_id)
        return True
