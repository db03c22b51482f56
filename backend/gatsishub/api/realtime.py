import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from sqlmodel import SQLModel

from gatsishub import config
from gatsishub.realtime.feed import feed

logger = logging.getLogger(__name__)
router = APIRouter()


class Outbox:
    """Bounded buffer between the change feed and one websocket.

    When the client falls behind, ``overflowed`` is set instead of the
    buffer growing; the socket is then closed.
    """

    def __init__(self, maxsize: int, label: str = ""):
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.overflowed = asyncio.Event()
        self.label = label

    def offer(self, row) -> bool:
        if self.overflowed.is_set():
            return False
        try:
            self.queue.put_nowait(row)
            return True
        except asyncio.QueueFull:
            logger.warning("Realtime subscriber %s fell behind; closing", self.label)
            self.overflowed.set()
            return False


@router.websocket("/{table}")
async def stream(websocket: WebSocket, table: str, key: Optional[str] = None):
    """Push change events for ``table`` (only rows owned by ``key`` when given)."""
    if table not in SQLModel.metadata.tables:
        await websocket.close(code=1008)
        return

    loop = asyncio.get_running_loop()
    outbox = Outbox(config.REALTIME_QUEUE_SIZE, label=f"{table}:{key or '*'}")

    def forward(evt):
        # publishers run on whichever thread committed the change
        loop.call_soon_threadsafe(outbox.offer, evt.as_dict())

    sub = feed.subscribe(table, key, forward)
    logger.info("Realtime subscriber joined table=%s key=%s", table, key)
    try:
        await websocket.accept()
        await websocket.send_json({"status": "SUBSCRIBED", "table": table, "key": key})

        async def drain_client():
            # only used to notice the disconnect
            while True:
                await websocket.receive_text()

        async def push_events():
            while True:
                await websocket.send_json(await outbox.queue.get())

        async def close_when_behind():
            # the client reconnects and reloads over REST
            await outbox.overflowed.wait()
            await websocket.close(code=1013)

        tasks = [
            asyncio.ensure_future(drain_client()),
            asyncio.ensure_future(push_events()),
            asyncio.ensure_future(close_when_behind()),
        ]
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        for task in done:
            exc = task.exception()
            if exc is not None and not isinstance(exc, WebSocketDisconnect):
                raise exc
    except WebSocketDisconnect:
        pass
    finally:
        sub.unsubscribe()
        logger.info("Realtime subscriber left table=%s key=%s", table, key)
