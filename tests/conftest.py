"""Shared fixtures: an in-memory document store and ready-made device sessions."""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import httpx
import pytest

from branchplayer.core.config import Settings
from branchplayer.models.device import AuthUser
from branchplayer.models.song import Song
from branchplayer.services.session import DeviceSession, create_session
from branchplayer.state.doc_paths import LEGACY_SONGS_COLLECTION, song_doc
from branchplayer.state.document_store import (
    DocumentStore,
    DocumentStoreError,
    resolve_server_values,
    sort_snapshot,
)
from branchplayer.state.local_store import LocalStore
from branchplayer.state.subscription import Subscription

ADMIN_EMAIL = "admin@example.com"
AUDIO_BYTES = b"ID3\x03\x00fake-mp3-payload"


@dataclass
class _Watch:
    sub: Subscription
    kind: str
    path: str
    callback: Callable[[Any], Awaitable[None]]
    order_by: Optional[str] = None


class MemoryDocumentStore(DocumentStore):
    """
    Document store double.

    Watches and writes queue deliveries; nothing is delivered until
    `flush()`, which reads the snapshot at delivery time like the Redis
    store does.
    """

    def __init__(self) -> None:
        self.docs: dict[str, dict] = {}
        self.fail_writes = False
        self.writes: list[tuple[str, str]] = []
        self._watches: list[_Watch] = []
        self.pending: list[_Watch] = []
        self._next_id = 0

    def seed(self, path: str, data: dict) -> None:
        self.docs[path] = dict(data)

    async def get(self, path):
        data = self.docs.get(path)
        return dict(data) if data is not None else None

    async def list(self, collection, *, order_by=None):
        items = [
            (p.rsplit("/", 1)[1], dict(d))
            for p, d in self.docs.items()
            if p.rsplit("/", 1)[0] == collection
        ]
        return sort_snapshot(items, order_by)

    def _check(self) -> None:
        if self.fail_writes:
            raise DocumentStoreError("store offline")

    async def set(self, path, data):
        self._check()
        self.docs[path] = resolve_server_values(data)
        self.writes.append(("set", path))
        self._changed(path)

    async def update(self, path, patch):
        self._check()
        if path not in self.docs:
            raise DocumentStoreError(f"document not found: {path}")
        self.docs[path].update(resolve_server_values(patch))
        self.writes.append(("update", path))
        self._changed(path)

    async def add(self, collection, data):
        self._next_id += 1
        doc_id = f"doc{self._next_id}"
        await self.set(f"{collection}/{doc_id}", data)
        return doc_id

    async def delete(self, path):
        self._check()
        self.docs.pop(path, None)
        self.writes.append(("delete", path))
        self._changed(path)

    def _changed(self, path: str) -> None:
        collection = path.rsplit("/", 1)[0]
        for w in self._watches:
            if w.sub.active and w.path in (path, collection):
                self.pending.append(w)

    def _watch(self, kind, path, callback, order_by=None) -> Subscription:
        sub = Subscription(f"{kind}:{path}")
        w = _Watch(sub, kind, path, callback, order_by)
        self._watches.append(w)
        self.pending.append(w)
        return sub

    def watch_doc(self, path, callback, *, on_error=None):
        return self._watch("doc", path, callback)

    def watch_collection(self, collection, callback, *, order_by=None, on_error=None):
        return self._watch("col", collection, callback, order_by)

    def active_watches(self) -> list[str]:
        return [w.path for w in self._watches if w.sub.active]

    async def flush(self) -> None:
        while self.pending:
            w = self.pending.pop(0)
            if not w.sub.active:
                continue
            if w.kind == "doc":
                await w.callback(await self.get(w.path))
            else:
                await w.callback(await self.list(w.path, order_by=w.order_by))


async def settle(session: DeviceSession) -> None:
    """Deliver every queued snapshot and finish every background job."""
    store = session.ctx.store
    for _ in range(20):
        await store.flush()
        await session.ctx.runner.drain()
        if not store.pending and not session.ctx.runner.pending:
            return


def make_song(song_id: str, order: float, **fields) -> Song:
    data = {
        "title": f"Title {song_id}",
        "artist": f"Artist {song_id}",
        "src": f"https://cdn.example.com/{song_id}.mp3",
    }
    data.update(fields)
    return Song.from_doc(song_id, {**data, "order": order}, is_old=fields.get("isOld", False))


def seed_songs(store: MemoryDocumentStore, branch: str, songs: dict[str, float]) -> None:
    for song_id, order in songs.items():
        store.seed(
            song_doc(branch, song_id),
            {
                "title": f"Title {song_id}",
                "artist": f"Artist {song_id}",
                "src": f"https://cdn.example.com/{song_id}.mp3",
                "order": order,
            },
        )


def seed_legacy(store: MemoryDocumentStore, songs: dict[str, float]) -> None:
    for song_id, order in songs.items():
        store.seed(
            f"{LEGACY_SONGS_COLLECTION}/{song_id}",
            {"title": f"Old {song_id}", "artist": "Old", "src": f"https://cdn.example.com/old-{song_id}.mp3", "order": order},
        )


def _download_handler(request: httpx.Request) -> httpx.Response:
    if "missing" in request.url.path:
        return httpx.Response(404)
    if "offline" in request.url.path:
        raise httpx.ConnectError("network unreachable", request=request)
    return httpx.Response(200, content=AUDIO_BYTES)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        admin_email=ADMIN_EMAIL,
        local_db_path=str(tmp_path / "local.sqlite"),
        media_dir=str(tmp_path / "media"),
        public_base_url="http://device.local",
        legacy_merge_enabled=True,
        legacy_branch="branch2",
        default_branch="branch2",
    )


@pytest.fixture
def store() -> MemoryDocumentStore:
    return MemoryDocumentStore()


@pytest.fixture
def local(settings) -> LocalStore:
    return LocalStore(settings.local_db_path)


@pytest.fixture
def http() -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(_download_handler))


@pytest.fixture
def events() -> list:
    return []


@pytest.fixture
def session(settings, store, local, http, events) -> DeviceSession:
    return create_session(
        settings,
        store,
        local,
        http=http,
        sink=lambda t, d: events.append((t, d)),
        rng=random.Random(7),
    )


@pytest.fixture
def admin_session(settings, store, tmp_path, http) -> DeviceSession:
    """A second device on the same store, signed in as the admin."""
    s = create_session(
        settings,
        store,
        LocalStore(tmp_path / "admin.sqlite"),
        http=http,
        rng=random.Random(11),
    )
    s.controller.set_user(AuthUser(uid="admin", email=ADMIN_EMAIL))
    return s
