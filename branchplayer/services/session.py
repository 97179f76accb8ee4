from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Optional

import httpx

from branchplayer.core.config import Settings
from branchplayer.services.audio_cache import AudioCacheManager
from branchplayer.services.blob_storage import LocalBlobStorage
from branchplayer.services.command_channel import RemoteCommandChannel
from branchplayer.services.context import DeviceContext, EventSink
from branchplayer.services.device_controller import DeviceModeController
from branchplayer.services.library_editor import LibraryEditor
from branchplayer.services.library_sync import LibrarySyncEngine
from branchplayer.services.playback_queue import PlaybackQueueEngine
from branchplayer.services.status_mirror import StatusMirror
from branchplayer.state.document_store import DocumentStore
from branchplayer.state.local_store import LocalStore
from branchplayer.workers.background import BackgroundRunner


@dataclass
class DeviceSession:
    ctx: DeviceContext
    cache: AudioCacheManager
    mirror: StatusMirror
    queue: PlaybackQueueEngine
    library: LibrarySyncEngine
    commands: RemoteCommandChannel
    editor: LibraryEditor
    controller: DeviceModeController


def create_session(
    settings: Settings,
    store: DocumentStore,
    local: LocalStore,
    *,
    blobs: Optional[LocalBlobStorage] = None,
    http: Optional[httpx.AsyncClient] = None,
    sink: Optional[EventSink] = None,
    rng: Optional[random.Random] = None,
    runner: Optional[BackgroundRunner] = None,
) -> DeviceSession:
    ctx = DeviceContext(settings, store, runner=runner, sink=sink)
    cache = AudioCacheManager(
        local,
        ctx.runner,
        http=http,
        timeout_s=settings.download_timeout_s,
        public_base_url=settings.public_base_url,
    )
    mirror = StatusMirror(ctx)
    queue = PlaybackQueueEngine(ctx, cache, mirror, rng=rng)
    library = LibrarySyncEngine(ctx, queue)
    commands = RemoteCommandChannel(ctx, queue)
    editor = LibraryEditor(
        ctx,
        queue,
        cache,
        blobs or LocalBlobStorage(settings.media_dir, settings.public_base_url),
    )
    controller = DeviceModeController(ctx, local, cache, queue, library, commands, mirror)
    return DeviceSession(
        ctx=ctx,
        cache=cache,
        mirror=mirror,
        queue=queue,
        library=library,
        commands=commands,
        editor=editor,
        controller=controller,
    )
