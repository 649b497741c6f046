"""WebSocket handlers."""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass

from aiohttp import WSMsgType, web

from leaderboard.core import protocol
from leaderboard.core.errors import InvalidInput, StoreUnavailable

log = logging.getLogger(__name__)


@dataclass(eq=False)
class Connection:
    conn_id: str
    ws: web.WebSocketResponse
    created_at: float
    remote: str | None = None

    @property
    def closed(self) -> bool:
        return self.ws.closed

    async def send_str(self, text: str) -> None:
        await self.ws.send_str(text)

    def __repr__(self) -> str:
        return f"Connection({self.conn_id[:8]}, remote={self.remote})"


class WsHub:
    def __init__(self, svc):
        self.svc = svc
        self._conns: dict[str, Connection] = {}

    @property
    def connection_count(self) -> int:
        return len(self._conns)

    def _origin_allowed(self, origin: str | None) -> bool:
        cfg = self.svc.config
        if cfg.cors_allow_all:
            return True
        if not origin:
            return False
        return origin in cfg.cors_allowed_origins

    async def handle(self, request: web.Request) -> web.StreamResponse:
        if not self._origin_allowed(request.headers.get("Origin")):
            raise web.HTTPForbidden(text="origin not allowed")

        ws = web.WebSocketResponse(heartbeat=10.0, max_msg_size=64_000)
        await ws.prepare(request)

        conn = Connection(conn_id=uuid.uuid4().hex, ws=ws, created_at=time.time(), remote=request.remote)
        self._conns[conn.conn_id] = conn
        self.svc.broadcaster.subscribe(conn)
        log.info("client connected: %r", conn)

        try:
            if self.svc.config.snapshot_on_connect:
                await self._send_snapshot(conn)
            async for msg in ws:
                if msg.type == WSMsgType.TEXT:
                    await self._on_text(conn, msg.data)
                elif msg.type == WSMsgType.ERROR:
                    break
        finally:
            await self._disconnect(conn)
        return ws

    async def _send_snapshot(self, conn: Connection, count: int | None = None) -> None:
        try:
            entries = await self.svc.board.top_n(count)
        except StoreUnavailable as e:
            await conn.send_str(protocol.dumps("error", message=str(e)))
            return
        await conn.send_str(protocol.update_message(entries))

    async def _on_text(self, conn: Connection, text: str) -> None:
        try:
            msg_type, data = protocol.loads(text)
        except protocol.ProtocolError as e:
            await conn.send_str(protocol.dumps("error", message=str(e)))
            return

        if msg_type not in protocol.VALID_C2S:
            await conn.send_str(protocol.dumps("error", message="invalid type"))
            return

        if msg_type == "ping":
            await conn.send_str(protocol.dumps("pong", t=data.get("t"), serverTime=time.time()))
            return

        if msg_type == "leaderboard":
            try:
                await self._send_snapshot(conn, data.get("count"))
            except InvalidInput as e:
                await conn.send_str(protocol.dumps("error", message=str(e)))
            return

    async def _disconnect(self, conn: Connection) -> None:
        # Idempotent.
        if conn.conn_id not in self._conns:
            return
        self._conns.pop(conn.conn_id, None)
        self.svc.broadcaster.unsubscribe(conn)
        log.info("client disconnected: %r", conn)
        try:
            await conn.ws.close()
        except Exception:
            log.debug("close failed for %r", conn, exc_info=True)

    async def close_all(self) -> None:
        for c in list(self._conns.values()):
            await self._disconnect(c)
