import asyncio
import contextlib
import logging
import random
from typing import Optional

from .config import ProxyConfig
from .relay import ConnectionRelay
from .scheduler import Direction

log = logging.getLogger("latency_proxy")
conn_log = logging.getLogger("latency_proxy.connections")


def _format_peer(peername) -> str:
    if isinstance(peername, tuple) and len(peername) >= 2:
        host, port = peername[:2]
        return f"[{host}]:{port}" if ":" in host else f"{host}:{port}"
    return str(peername)


class Acceptor:
    """Accepts inbound connections and runs one delayed relay per connection."""

    def __init__(self, config: ProxyConfig):
        self.config = config
        self._seeds = random.Random(config.seed)
        self._server: Optional[asyncio.AbstractServer] = None

    def _log(self, level: int, msg: str, *args):
        if not self.config.quiet:
            conn_log.log(level, msg, *args)

    @property
    def port(self) -> int:
        return self._server.sockets[0].getsockname()[1]

    async def start(self) -> asyncio.AbstractServer:
        # OSError here (address in use, permission denied) is fatal to the caller.
        self._server = await asyncio.start_server(
            self._handle, self.config.listen_host, self.config.listen_port
        )
        cfg = self.config
        log.info("[listen %s:%d] → target %s:%d  one-way delay %d-%dms",
                 cfg.listen_host, self.port, cfg.target_host, cfg.target_port,
                 cfg.latency, cfg.latency + cfg.jitter)
        return self._server

    async def serve_forever(self):
        if self._server is None:
            await self.start()
        async with self._server:
            await self._server.serve_forever()

    async def close(self):
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        cfg = self.config
        peer = _format_peer(writer.get_extra_info("peername"))
        self._log(logging.INFO, "%s - connected", peer)
        rng = random.Random(self._seeds.getrandbits(64))
        try:
            target = await asyncio.open_connection(cfg.target_host, cfg.target_port)
        except OSError as e:
            self._log(logging.WARNING, "%s - error (%s)", peer, e)
            writer.close()
            with contextlib.suppress(ConnectionError):
                await writer.wait_closed()
            return

        relay = ConnectionRelay((reader, writer), target, latency=cfg.latency,
                                jitter=cfg.jitter, rng=rng, read_chunk=cfg.read_chunk)
        try:
            await relay.run()
        except OSError as e:
            self._log(logging.WARNING, "%s - error (%s)", peer, e)
        else:
            self._log(logging.INFO, "%s - disconnected", peer)
        self._log(
            logging.DEBUG,
            "%s - %d segments / %d bytes downstream, %d segments / %d bytes upstream, %d widened",
            peer,
            relay.segments[Direction.TO_DOWNSTREAM], relay.forwarded[Direction.TO_DOWNSTREAM],
            relay.segments[Direction.TO_UPSTREAM], relay.forwarded[Direction.TO_UPSTREAM],
            relay.widened,
        )
