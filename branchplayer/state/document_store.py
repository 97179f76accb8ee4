# branchplayer/state/document_store.py

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from redis.exceptions import ConnectionError, TimeoutError

from branchplayer.state.doc_paths import (
    changes_channel,
    collection_key,
    doc_key,
    split_doc_path,
)
from branchplayer.state.redis_state import RedisState, RedisUnavailable
from branchplayer.state.subscription import Subscription

log = logging.getLogger("store.documents")

DocSnapshot = Optional[Dict[str, Any]]
CollectionSnapshot = List[Tuple[str, Dict[str, Any]]]

DocCallback = Callable[[DocSnapshot], Awaitable[None]]
CollectionCallback = Callable[[CollectionSnapshot], Awaitable[None]]
ErrorCallback = Callable[[Exception], None]


class _ServerTimestamp:
    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


# Placeholder resolved to the store's clock at write time
SERVER_TIMESTAMP = _ServerTimestamp()


class DocumentStoreError(Exception):
    pass


def now_ms() -> float:
    return time.time() * 1000


def resolve_server_values(data: Dict[str, Any]) -> Dict[str, Any]:
    stamp = now_ms()
    return {k: (stamp if v is SERVER_TIMESTAMP else v) for k, v in data.items()}


def sort_snapshot(items: CollectionSnapshot, order_by: Optional[str]) -> CollectionSnapshot:
    if not order_by:
        return items
    return sorted(items, key=lambda item: item[1].get(order_by) or 0)


class DocumentStore:
    """
    Remote document store seen by a device.

    Documents live at slash-separated paths; a document path is its
    collection path plus the document id. Watches deliver a full snapshot
    first and again after every change, in delivery order.
    """

    async def get(self, path: str) -> DocSnapshot:
        raise NotImplementedError

    async def list(self, collection: str, *, order_by: Optional[str] = None) -> CollectionSnapshot:
        raise NotImplementedError

    async def set(self, path: str, data: Dict[str, Any]) -> None:
        raise NotImplementedError

    async def update(self, path: str, patch: Dict[str, Any]) -> None:
        raise NotImplementedError

    async def add(self, collection: str, data: Dict[str, Any]) -> str:
        raise NotImplementedError

    async def delete(self, path: str) -> None:
        raise NotImplementedError

    def watch_doc(
        self,
        path: str,
        callback: DocCallback,
        *,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        raise NotImplementedError

    def watch_collection(
        self,
        collection: str,
        callback: CollectionCallback,
        *,
        order_by: Optional[str] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        raise NotImplementedError


class RedisDocumentStore(DocumentStore):
    """
    Documents as JSON under `doc:{path}`, collection membership in the set
    `col:{collection}`, change notifications on `changes:{path}` for the
    document and for its collection.
    """

    def __init__(
        self,
        state: RedisState,
        *,
        reconnect_delay_s: float = 0.5,
        reconnect_max_s: float = 10.0,
    ) -> None:
        self.state = state
        self.reconnect_delay_s = reconnect_delay_s
        self.reconnect_max_s = reconnect_max_s

    # =========================
    # READS
    # =========================

    async def get(self, path: str) -> DocSnapshot:
        data = await self.state.get_json(doc_key(path))
        if not isinstance(data, dict):
            return None
        return data

    async def list(self, collection: str, *, order_by: Optional[str] = None) -> CollectionSnapshot:
        ids = await self.state.members(collection_key(collection))
        docs = await self.state.get_many_json([doc_key(f"{collection}/{i}") for i in ids])
        items = [(i, d) for i, d in zip(ids, docs) if isinstance(d, dict)]
        return sort_snapshot(items, order_by)

    # =========================
    # WRITES
    # =========================

    async def set(self, path: str, data: Dict[str, Any]) -> None:
        collection, doc_id = split_doc_path(path)
        try:
            await self.state.set_json(doc_key(path), resolve_server_values(data))
            await self.state.add_member(collection_key(collection), doc_id)
        except RedisUnavailable as e:
            raise DocumentStoreError(f"set failed: {path}") from e
        await self._notify(path, "set")

    async def update(self, path: str, patch: Dict[str, Any]) -> None:
        current = await self.get(path)
        if current is None:
            raise DocumentStoreError(f"document not found: {path}")
        current.update(resolve_server_values(patch))
        try:
            await self.state.set_json(doc_key(path), current)
        except RedisUnavailable as e:
            raise DocumentStoreError(f"update failed: {path}") from e
        await self._notify(path, "update")

    async def add(self, collection: str, data: Dict[str, Any]) -> str:
        doc_id = uuid.uuid4().hex
        await self.set(f"{collection}/{doc_id}", data)
        return doc_id

    async def delete(self, path: str) -> None:
        collection, doc_id = split_doc_path(path)
        try:
            await self.state.delete(doc_key(path))
            await self.state.remove_member(collection_key(collection), doc_id)
        except RedisUnavailable as e:
            raise DocumentStoreError(f"delete failed: {path}") from e
        await self._notify(path, "delete")

    async def _notify(self, path: str, op: str) -> None:
        collection, _ = split_doc_path(path)
        payload = {"path": path, "op": op}
        await self.state.publish_event(changes_channel(path), payload)
        await self.state.publish_event(changes_channel(collection), payload)

    # =========================
    # WATCHES
    # =========================

    def watch_doc(
        self,
        path: str,
        callback: DocCallback,
        *,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        sub = Subscription(f"doc:{path}")

        async def deliver() -> None:
            data = await self.get(path)
            if sub.active:
                await callback(data)

        sub.attach(asyncio.create_task(self._listen(sub, changes_channel(path), deliver, on_error)))
        return sub

    def watch_collection(
        self,
        collection: str,
        callback: CollectionCallback,
        *,
        order_by: Optional[str] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        sub = Subscription(f"col:{collection}")

        async def deliver() -> None:
            items = await self.list(collection, order_by=order_by)
            if sub.active:
                await callback(items)

        sub.attach(
            asyncio.create_task(self._listen(sub, changes_channel(collection), deliver, on_error))
        )
        return sub

    async def _listen(
        self,
        sub: Subscription,
        channel: str,
        deliver: Callable[[], Awaitable[None]],
        on_error: Optional[ErrorCallback],
    ) -> None:
        delay = self.reconnect_delay_s
        while sub.active:
            pubsub = self.state.pubsub()
            try:
                # subscribe before the first read so no change falls in between
                await pubsub.subscribe(channel)
                # a fresh snapshot after every (re)subscribe covers changes missed while down
                await self._deliver_safe(sub, deliver)
                delay = self.reconnect_delay_s
                while sub.active:
                    msg = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
                    if not msg:
                        continue
                    await self._deliver_safe(sub, deliver)
            except (ConnectionError, TimeoutError) as e:
                log.warning(
                    "watch_connection_error",
                    extra={"channel": channel, "retryIn": delay, "error": str(e)},
                )
                if on_error and sub.active:
                    on_error(e)
            finally:
                try:
                    await pubsub.unsubscribe(channel)
                    await pubsub.close()
                except Exception:
                    pass

            if sub.active:
                await asyncio.sleep(delay)
                delay = min(delay * 2, self.reconnect_max_s)

    async def _deliver_safe(self, sub: Subscription, deliver: Callable[[], Awaitable[None]]) -> None:
        if not sub.active:
            return
        try:
            await deliver()
        except asyncio.CancelledError:
            raise
        except Exception:
            log.exception("watch_callback_failed", extra={"subscription": sub.name})
