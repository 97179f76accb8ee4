from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

from branchplayer.core.config import Settings
from branchplayer.models.command import Command
from branchplayer.models.device import AuthUser, fixed_branch, is_admin, status_label
from branchplayer.models.playback import EditState, PlaybackState
from branchplayer.models.song import Song
from branchplayer.state.document_store import DocumentStore
from branchplayer.workers.background import BackgroundRunner

log = logging.getLogger("device.context")

EventSink = Callable[[str, Dict[str, Any]], None]


class DeviceContext:
    """
    Everything one device session owns.

    Built once per session and handed to every component; nothing in the
    engine reaches for a module-level instance.
    """

    def __init__(
        self,
        settings: Settings,
        store: DocumentStore,
        *,
        runner: Optional[BackgroundRunner] = None,
        sink: Optional[EventSink] = None,
    ) -> None:
        self.settings = settings
        self.store = store
        self.runner = runner or BackgroundRunner()
        self.sink = sink

        # device
        self.mode: str = "unset"
        self.branch: Optional[str] = None
        self.user: Optional[AuthUser] = None

        # library
        self.songs: List[Song] = []

        # playback
        self.playback = PlaybackState()

        # admin edit / long-running admin operation
        self.editing: Optional[EditState] = None
        self.is_loading: bool = False

        # monitoring (admin)
        self.monitoring: Dict[str, Optional[dict]] = {"branch1": None, "branch2": None}

        # last command applied on this device
        self.last_command: Optional[Command] = None

        self.status_message: str = "Initializing..."

    # =========================
    # DERIVED
    # =========================

    @property
    def is_admin(self) -> bool:
        return is_admin(self.user, self.settings.admin_email)

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    @property
    def fixed_branch(self) -> Optional[str]:
        return fixed_branch(self.mode)

    def refresh_label(self) -> None:
        self.status_message = status_label(self.mode, self.is_admin, self.is_authenticated)

    def set_message(self, message: str) -> None:
        self.status_message = message
        self.emit("state", self.snapshot())

    # =========================
    # EVENTS
    # =========================

    def emit(self, event_type: str, data: Dict[str, Any]) -> None:
        if self.sink is None:
            return
        try:
            self.sink(event_type, data)
        except Exception:
            log.exception("event_sink_failed", extra={"type": event_type})

    def snapshot(self) -> Dict[str, Any]:
        return {
            "mode": self.mode,
            "branch": self.branch,
            "isAdmin": self.is_admin,
            "user": self.user.model_dump() if self.user else None,
            "statusMessage": self.status_message,
            "isLoading": self.is_loading,
            "editingSongId": self.editing.song_id if self.editing else None,
            "songCount": len(self.songs),
            "playback": self.playback.to_dict(),
        }
