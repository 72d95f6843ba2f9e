from fastapi import WebSocket, WebSocketDisconnect
import asyncio
import json
import uuid
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Dict

from backend import RedisBackend
from logging_config import get_logger

logger = get_logger(__name__)


class ChannelRelay:
    """Forwards Redis pub/sub channels to the WebSocket connections of this instance.

    Each instance tracks only its own connections and runs one listener task
    per channel that has local subscribers. Redis distributes published events
    to every instance, and each instance relays them locally.
    """

    def __init__(self, backend: RedisBackend):
        self.backend = backend
        # Format: {channel: {connection_id: websocket}}
        self.connections: Dict[str, Dict[str, WebSocket]] = {}
        # Format: {channel: task}
        self.tasks: Dict[str, asyncio.Task] = {}

    async def _listen(self, channel: str):
        """Background task reading one Redis channel and broadcasting to local connections.

        Every call on the pub/sub connection goes through one single-worker
        executor, so the close in ``finally`` queues behind a read that is still
        blocked when the task is cancelled.
        """
        logger.info(f"Starting Redis pub/sub listener for channel: {channel}")
        pubsub = None
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"relay-{channel}")
        try:
            pubsub = self.backend.subscribe(channel)
            loop = asyncio.get_running_loop()

            while self.connections.get(channel):
                # blocking read, 1s timeout so we notice when the channel empties
                message = await loop.run_in_executor(
                    executor, lambda: pubsub.get_message(timeout=1.0, ignore_subscribe_messages=True)
                )
                if message is None or message.get('type') != 'message':
                    continue

                try:
                    payload = json.loads(message['data'])
                except json.JSONDecodeError as e:
                    logger.error(f"Error parsing message from Redis on {channel}: {e}")
                    continue
                await self.broadcast(channel, payload)

            logger.info(f"No more connections on {channel}, stopping listener")
        except asyncio.CancelledError:
            logger.info(f"Redis listener task cancelled for channel: {channel}")
        except Exception as e:
            logger.error(f"Error in Redis listener for channel {channel}: {e}", exc_info=True)
        finally:
            if pubsub:
                closing = executor.submit(pubsub.close)
                try:
                    await asyncio.wrap_future(closing)
                except asyncio.CancelledError:
                    # the close still runs on the executor after the pending read
                    pass
                except Exception as e:
                    logger.error(f"Error closing pub/sub for channel {channel}: {e}")
            executor.shutdown(wait=False)
            if self.tasks.get(channel) is asyncio.current_task():
                del self.tasks[channel]

    async def broadcast(self, channel: str, payload: dict) -> int:
        local = dict(self.connections.get(channel, {}))
        if not local:
            return 0
        text = json.dumps(payload)
        results = await asyncio.gather(*(ws.send_text(text) for ws in local.values()), return_exceptions=True)
        for conn_id, result in zip(local.keys(), results):
            if isinstance(result, Exception):
                logger.warning(f"Error sending to connection {conn_id} on {channel}: {result}")
                self.connections.get(channel, {}).pop(conn_id, None)
        logger.debug(f"Broadcasted event to {len(local)} local connections on {channel}")
        return len(local)

    def _ensure_listener(self, channel: str):
        task = self.tasks.get(channel)
        if task is None or task.done():
            self.tasks[channel] = asyncio.create_task(self._listen(channel))

    async def _release(self, channel: str, connection_id: str):
        channel_connections = self.connections.get(channel)
        if channel_connections is not None:
            channel_connections.pop(connection_id, None)
            if not channel_connections:
                del self.connections[channel]
                task = self.tasks.pop(channel, None)
                if task is not None and not task.done():
                    task.cancel()
                    try:
                        await task
                    except asyncio.CancelledError:
                        pass
                logger.debug(f"Released listener for channel {channel}")

    async def serve(self, websocket: WebSocket, channel: str):
        """Accept ``websocket`` and relay ``channel`` to it until the client disconnects."""
        connection_id = str(uuid.uuid4())
        await websocket.accept()
        self.connections.setdefault(channel, {})[connection_id] = websocket
        self._ensure_listener(channel)
        logger.info(f"Connection {connection_id} subscribed to {channel} (local connections: {len(self.connections[channel])})")

        try:
            await websocket.send_text(json.dumps({
                "type": "system",
                "message": "Subscribed",
                "channel": channel,
                "connection_id": connection_id,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }))
            # the stream is server to client only; inbound frames are read to detect disconnects
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            logger.info(f"WebSocket disconnected normally for connection {connection_id} on {channel}")
        except Exception as e:
            logger.error(f"WebSocket error for connection {connection_id} on {channel}: {e}", exc_info=True)
        finally:
            await self._release(channel, connection_id)
            try:
                await websocket.close()
            except RuntimeError:
                # already closed
                pass

    async def shutdown(self):
        tasks = list(self.tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self.tasks.clear()
        self.connections.clear()
