"""
Lifecycle of one streaming telemetry connection.

    CONNECTING -> OPEN -> CLOSING -> CLOSED

Per frame the pipeline is strictly sequential: read, decode, append to the
in-memory buffer, persist, acknowledge, then read again. Malformed frames
are dropped without a reply. A failed database write is logged and the
in-memory append stands, so the buffer may hold events the database does
not. Any transport failure ends the connection; the client reconnects.
"""

import enum
import logging
from typing import Union

from fastapi import WebSocket, WebSocketDisconnect
from starlette.concurrency import run_in_threadpool

from prothomuse.errors import DecodeError, StorageError, TransportError, UpgradeError
from prothomuse.schemas import Acknowledgement, TelemetryRecord
from prothomuse.store import EventStore
from prothomuse.telemetry import TelemetryBuffer, decode_frame

logger = logging.getLogger(__name__)


class ConnectionState(str, enum.Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class IngestionConnection:
    def __init__(
        self,
        channel: WebSocket,
        buffer: TelemetryBuffer,
        event_store: EventStore,
    ):
        self.channel = channel
        self.buffer = buffer
        self.event_store = event_store
        self.state = ConnectionState.CONNECTING
        self.peer = _describe_peer(channel)

        self.received = 0
        self.dropped = 0
        self.persist_failures = 0
        self._peer_closed = False

    async def run(self) -> None:
        """Drive the connection until the peer goes away or the transport fails."""
        try:
            await self._open()
        except UpgradeError as exc:
            logger.error("WebSocket upgrade failed for %s: %s", self.peer, exc.message)
            self.state = ConnectionState.CLOSED
            return

        try:
            while self.state is ConnectionState.OPEN:
                raw = await self._read_frame()
                await self._handle_frame(raw)
        except TransportError as exc:
            logger.info("Connection from %s ended: %s", self.peer, exc.message)
        finally:
            await self._close()

    async def _open(self) -> None:
        try:
            await self.channel.accept()
        except (RuntimeError, OSError, WebSocketDisconnect) as exc:
            raise UpgradeError(str(exc)) from exc
        self.state = ConnectionState.OPEN
        logger.info("Middleware connected from %s", self.peer)

    async def _read_frame(self) -> Union[str, bytes]:
        try:
            message = await self.channel.receive()
        except (RuntimeError, OSError) as exc:
            raise TransportError(f"read failed: {exc}") from exc

        if message["type"] == "websocket.disconnect":
            self._peer_closed = True
            raise TransportError(f"peer disconnected (code {message.get('code')})")

        if message.get("text") is not None:
            return message["text"]
        if message.get("bytes") is not None:
            return message["bytes"]
        return ""

    async def _handle_frame(self, raw: Union[str, bytes]) -> None:
        try:
            record = decode_frame(raw)
        except DecodeError as exc:
            self.dropped += 1
            logger.warning("Dropped frame from %s: %s", self.peer, exc.message)
            return

        self.received += 1
        self.buffer.append(record)
        saved = await self._persist(record)

        logger.info(
            "[%s] %s %s -> %d (%dms)",
            record.project_id,
            record.method,
            record.route,
            record.status_code,
            record.response_time,
        )

        message = "Metric saved successfully" if saved else "Metric received but not saved"
        await self._send(Acknowledgement(message=message))

    async def _persist(self, record: TelemetryRecord) -> bool:
        try:
            await run_in_threadpool(self.event_store.save, record)
        except StorageError as exc:
            self.persist_failures += 1
            logger.error("Failed to persist metric for project %s: %s", record.project_id, exc.message)
            return False
        return True

    async def _send(self, ack: Acknowledgement) -> None:
        try:
            await self.channel.send_text(ack.model_dump_json())
        except (RuntimeError, OSError, WebSocketDisconnect) as exc:
            raise TransportError(f"write failed: {exc}") from exc

    async def _close(self) -> None:
        self.state = ConnectionState.CLOSING
        if not self._peer_closed:
            try:
                await self.channel.close()
            except (RuntimeError, OSError) as exc:
                logger.debug("Close after transport failure did not complete: %s", exc)
        self.state = ConnectionState.CLOSED
        logger.info(
            "Connection from %s closed (received=%d dropped=%d persist_failures=%d)",
            self.peer,
            self.received,
            self.dropped,
            self.persist_failures,
        )


def _describe_peer(channel: WebSocket) -> str:
    client = getattr(channel, "client", None)
    if client is None:
        return "unknown"
    return f"{client.host}:{client.port}"
