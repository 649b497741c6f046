"""HTTP + WebSocket entrypoint.

This server does NOT serve the web client. Host the viewer separately.
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any

from aiohttp import web

from leaderboard.core import protocol
from leaderboard.core.config import ServerConfig
from leaderboard.core.errors import InvalidInput, StoreUnavailable
from leaderboard.core.ranking import RankedLeaderboard
from leaderboard.core.simulation import TrafficSimulator
from leaderboard.net.broadcast import UpdateBroadcaster
from leaderboard.net.ws import WsHub
from leaderboard.storage.base import ScoreStore, create_store

log = logging.getLogger(__name__)


class LeaderboardService:
    def __init__(self, config: ServerConfig, store: ScoreStore | None = None):
        self.config = config
        self.server_id = str(uuid.uuid4())
        self.start_time = time.time()

        self.store = store if store is not None else create_store(config)
        self.board = RankedLeaderboard(self.store, default_top_n=config.default_top_n)
        self.broadcaster = UpdateBroadcaster(
            self.board,
            interval_sec=config.broadcast_interval_sec,
            send_timeout_sec=config.send_timeout_sec,
        )
        self.hub = WsHub(self)
        self.simulator = None
        if config.simulation_enabled:
            self.simulator = TrafficSimulator(
                self.board,
                config.simulation_players,
                interval_sec=config.simulation_interval_sec,
                max_delta=config.simulation_max_delta,
                initial_score=config.seed_score,
            )

    async def start(self) -> None:
        await self.store.open()
        try:
            if self.config.seed_players:
                seeded = await self.board.initialize_many(self.config.seed_players, self.config.seed_score)
                log.info("seeded %d players at %d", len(seeded), self.config.seed_score)
            self.broadcaster.attach()
            await self.broadcaster.start()
            if self.simulator:
                await self.simulator.start()
        except Exception:
            log.error("leaderboard service failed to start; closing store")
            self.broadcaster.detach()
            await self.broadcaster.stop()
            await self.store.close()
            raise
        log.info("leaderboard service started (store=%s)", self.config.store_backend)

    async def stop(self) -> None:
        try:
            if self.simulator:
                await self.simulator.stop()
            self.broadcaster.detach()
            await self.broadcaster.stop()
            await self.hub.close_all()
        finally:
            await self.store.close()
        log.info("leaderboard service stopped")

    def version_payload(self) -> dict[str, Any]:
        return {
            "serverId": self.server_id,
            "serverVersion": self.config.server_version,
            "store": self.config.store_backend,
            "broadcastIntervalSec": self.config.broadcast_interval_sec,
        }


def _cors_headers(config: ServerConfig, origin: str | None) -> dict[str, str]:
    if not origin:
        return {}
    if config.cors_allow_all:
        return {"Access-Control-Allow-Origin": origin, "Vary": "Origin"}
    if origin in config.cors_allowed_origins:
        return {"Access-Control-Allow-Origin": origin, "Vary": "Origin"}
    return {}


@web.middleware
async def cors_middleware(request: web.Request, handler):
    if request.method == "OPTIONS":
        origin = request.headers.get("Origin")
        headers = {
            **_cors_headers(request.app["config"], origin),
            "Access-Control-Allow-Methods": "GET,POST,OPTIONS",
            "Access-Control-Allow-Headers": "Content-Type",
            "Access-Control-Max-Age": "86400",
        }
        return web.Response(status=204, headers=headers)

    resp = await handler(request)

    # aiohttp finalizes WS headers during `prepare()`.
    if isinstance(resp, web.WebSocketResponse):
        return resp

    origin = request.headers.get("Origin")
    for k, v in _cors_headers(request.app["config"], origin).items():
        resp.headers[k] = v
    return resp


@web.middleware
async def error_middleware(request: web.Request, handler):
    try:
        return await handler(request)
    except InvalidInput as e:
        return web.json_response({"error": str(e)}, status=400)
    except StoreUnavailable as e:
        log.error("%s %s: %s", request.method, request.path, e)
        return web.json_response({"error": "store unavailable"}, status=503)


async def _read_json(request: web.Request) -> Any:
    try:
        return await request.json()
    except ValueError:
        raise InvalidInput("invalid json body")


def create_app(config: ServerConfig, store: ScoreStore | None = None) -> web.Application:
    app = web.Application(middlewares=[cors_middleware, error_middleware])
    svc = LeaderboardService(config, store=store)

    app["config"] = config
    app["svc"] = svc

    async def on_startup(_: web.Application):
        await svc.start()

    async def on_cleanup(_: web.Application):
        await svc.stop()

    app.on_startup.append(on_startup)
    app.on_cleanup.append(on_cleanup)

    async def health(_: web.Request):
        return web.json_response(
            {
                "ok": True,
                "uptimeSec": time.time() - svc.start_time,
                "players": await svc.board.player_count(),
                "subscribers": svc.broadcaster.subscriber_count,
                "broadcasts": svc.broadcaster.broadcasts,
                "deliveryFailures": svc.broadcaster.delivery_failures,
                **svc.version_payload(),
            }
        )

    async def root(request: web.Request):
        # The viewer connects to the bare origin.
        if request.headers.get("Upgrade", "").lower() == "websocket":
            return await svc.hub.handle(request)
        return web.json_response(
            {
                "ok": True,
                "service": "leaderboard-server",
                **svc.version_payload(),
                "endpoints": {
                    "health": "/health",
                    "leaderboard": "/leaderboard",
                    "score": "/score",
                    "increase": "/score/increase",
                    "decrease": "/score/decrease",
                    "change": "/score/change",
                    "init": "/players/init",
                    "player": "/players/{player}",
                    "ws": "/ws",
                },
            }
        )

    async def set_score(request: web.Request):
        req = protocol.SetScore.parse(await _read_json(request))
        score = await svc.board.set_score(req.player, req.score)
        return web.json_response({"message": "Score added successfully", "player": req.player, "score": score})

    async def increase(request: web.Request):
        req = protocol.AdjustScore.parse(await _read_json(request))
        score = await svc.board.increase_score(req.player, req.amount)
        return web.json_response({"player": req.player, "score": score})

    async def decrease(request: web.Request):
        req = protocol.AdjustScore.parse(await _read_json(request))
        score = await svc.board.decrease_score(req.player, req.amount)
        return web.json_response({"player": req.player, "score": score})

    async def change(request: web.Request):
        req = protocol.ChangeScore.parse(await _read_json(request))
        score = await svc.board.apply_delta(req.player, req.delta)
        return web.json_response({"player": req.player, "score": score})

    async def init_players(request: web.Request):
        req = protocol.InitPlayers.parse(await _read_json(request), default_score=config.seed_score)
        seeded = await svc.board.initialize_many(req.players, req.initial_score)
        return web.json_response({"seeded": seeded, "initialScore": req.initial_score})

    async def leaderboard(request: web.Request):
        count = protocol.parse_count(request.query.get("count"), config.default_top_n)
        entries = await svc.board.top_n(count)
        return web.json_response([e.as_dict() for e in entries])

    async def player(request: web.Request):
        name = request.match_info["player"]
        return web.json_response({"player": name, "score": await svc.board.score_of(name)})

    async def ws_handler(request: web.Request):
        return await svc.hub.handle(request)

    app.router.add_get("/", root)
    app.router.add_get("/health", health)
    app.router.add_post("/score", set_score)
    app.router.add_post("/score/increase", increase)
    app.router.add_post("/score/decrease", decrease)
    app.router.add_post("/score/change", change)
    app.router.add_post("/players/init", init_players)
    app.router.add_get("/leaderboard", leaderboard)
    app.router.add_get("/players/{player}", player)
    app.router.add_get("/ws", ws_handler)

    return app


def main() -> None:
    config = ServerConfig.from_env()
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    app = create_app(config)
    web.run_app(app, host=config.host, port=config.port)


if __name__ == "__main__":
    main()
