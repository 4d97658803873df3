"""
Live snapshot fan-out over WebSockets, one channel per collection.

After every write the whole visible snapshot is pushed to each subscriber
of that collection. There is no ordering across collections and no
read-after-write promise: a client renders whichever snapshot arrives.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from fastapi import WebSocket
from fastapi.encoders import jsonable_encoder
from starlette.concurrency import run_in_threadpool

from database import get_documents
from moderation import MODERATED_COLLECTIONS, PUBLIC_FILTER
from proximity import NearbyShelters

logger = logging.getLogger(__name__)


def load_snapshot(collection_name: str, admin: bool = False) -> List[Dict[str, Any]]:
    if collection_name in MODERATED_COLLECTIONS and not admin:
        return get_documents(collection_name, dict(PUBLIC_FILTER))
    return get_documents(collection_name)


@dataclass(eq=False)
class Subscriber:
    ws: WebSocket
    admin: bool = False
    nearby: Optional[NearbyShelters] = None

    def render(self, docs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        if self.nearby is None:
            return docs
        self.nearby.update_records(docs)
        return self.nearby.results


@dataclass
class SnapshotHub:
    channels: Dict[str, Set[Subscriber]] = field(default_factory=dict)

    def subscribe(self, collection_name: str, sub: Subscriber) -> None:
        self.channels.setdefault(collection_name, set()).add(sub)

    def unsubscribe(self, collection_name: str, sub: Subscriber) -> None:
        self.channels.get(collection_name, set()).discard(sub)

    def count(self, collection_name: str) -> int:
        return len(self.channels.get(collection_name, ()))

    async def send(self, collection_name: str, sub: Subscriber, docs: List[Dict[str, Any]]) -> None:
        await sub.ws.send_json({
            "type": "snapshot",
            "collection": collection_name,
            "items": jsonable(sub.render(docs)),
        })

    async def publish(self, collection_name: str) -> None:
        subs = self.channels.get(collection_name)
        if not subs:
            return
        snapshots: Dict[bool, List[Dict[str, Any]]] = {}
        dead: Set[Subscriber] = set()
        for sub in list(subs):
            if sub.admin not in snapshots:
                snapshots[sub.admin] = await run_in_threadpool(load_snapshot, collection_name, admin=sub.admin)
            try:
                await self.send(collection_name, sub, snapshots[sub.admin])
            except Exception as e:
                logger.debug("Dropping subscriber on %s: %s", collection_name, e)
                dead.add(sub)
        subs -= dead


def jsonable(items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return jsonable_encoder(items)


hub = SnapshotHub()
