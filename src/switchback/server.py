"""
Process lifecycle: bind, serve in the background, and shut down gracefully.

``Server.serve()`` binds the configured address, runs uvicorn on a background
task and then waits on a single-slot completion channel. An interrupt (or a
direct call to ``shutdown()``) closes the broker so open subscriptions end,
asks uvicorn to stop accepting connections and drain in-flight calls, and
the completion channel releases ``serve()`` once uvicorn has stopped.
"""
import asyncio
import logging
import signal
import socket
import time
from typing import Optional, Tuple

import uvicorn

from . import __version__
from .broker import Broker
from .core.config import Settings, settings as default_settings
from .core.logging import configure_logging
from .main import create_app, create_broker

logger = logging.getLogger(__name__)

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class ServerError(Exception):
    """Raised when the server cannot start or stops unexpectedly."""
    pass


class _UvicornServer(uvicorn.Server):
    """uvicorn server whose signal handling goes through ``Server.shutdown``."""

    def __init__(self, config: uvicorn.Config, lifecycle: "Server"):
        super().__init__(config)
        self.lifecycle = lifecycle

    def handle_exit(self, sig, frame) -> None:
        # uvicorn forces exit when should_exit is already set, so it must see
        # the first interrupt before shutdown() flips the flag
        super().handle_exit(sig, frame)
        self.lifecycle.shutdown()


class Server:
    """
    Owns one broker, its application and the uvicorn server serving it.

    Usage:
        server = Server(Settings(bind_addr="127.0.0.1:7773"))
        asyncio.run(server.serve())
    """

    def __init__(self, settings: Optional[Settings] = None, broker: Optional[Broker] = None):
        self.settings = settings or default_settings
        configure_logging(self.settings.log_level_value)

        self.broker = broker or create_broker(self.settings)
        self.app = create_app(self.settings, self.broker)

        self.address: Optional[Tuple[str, int]] = None
        self._server: Optional[_UvicornServer] = None
        self._task: Optional[asyncio.Task] = None
        self._done: Optional[asyncio.Queue] = None
        self._stopping = False

    @property
    def started(self) -> bool:
        """Whether uvicorn has finished starting up and is accepting calls."""
        return self._server is not None and self._server.started

    @property
    def stopping(self) -> bool:
        return self._stopping

    async def serve(self) -> None:
        """
        Serve until shut down.

        Raises:
            ServerError: If the address cannot be bound or serving fails
        """
        if self._server is not None:
            raise ServerError("server has already been started")

        if self._stopping:
            raise ServerError("server has been shut down")

        if self.settings.maintenance:
            logger.warning("Starting server in maintenance mode")

        sock = self._listen()
        self.address = sock.getsockname()[:2]

        config = uvicorn.Config(
            self.app,
            log_config=None,
            log_level=self.settings.log_level,
            timeout_graceful_shutdown=self.settings.shutdown_timeout,
        )
        self._server = _UvicornServer(config, self)
        self._done = asyncio.Queue(maxsize=1)

        self._task = asyncio.create_task(self._run(sock))
        self.app.state.started = time.monotonic()
        logger.info(f"Switchback server {__version__} started, listening on {self.settings.bind_addr}")

        loop = asyncio.get_running_loop()
        self._install_signal_handlers(loop)
        try:
            err = await self._done.get()
        finally:
            self._remove_signal_handlers(loop)

        if err is not None:
            raise err

    def _install_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        # uvicorn captures signals while serving and hands them back to these
        # handlers afterwards, so a re-raised signal lands on shutdown() again
        for sig in SHUTDOWN_SIGNALS:
            try:
                loop.add_signal_handler(sig, self.shutdown)
            except (NotImplementedError, RuntimeError):
                logger.debug(f"Cannot install handler for {sig.name} on this platform or thread")

    def _remove_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        for sig in SHUTDOWN_SIGNALS:
            try:
                loop.remove_signal_handler(sig)
            except (NotImplementedError, RuntimeError):
                pass

    async def _run(self, sock: socket.socket) -> None:
        try:
            await self._server.serve(sockets=[sock])
        except Exception as e:
            logger.error(f"Server failed: {e}")
            self._complete(ServerError(f"server failed: {e}"))
            return
        finally:
            sock.close()

        if self._stopping:
            self._complete(None)
        else:
            self._complete(ServerError("server stopped unexpectedly"))

    def _complete(self, err: Optional[BaseException]) -> None:
        if self._done is not None and self._done.empty():
            self._done.put_nowait(err)

    def _listen(self) -> socket.socket:
        host, port = self.settings.bind_host, self.settings.bind_port
        family = socket.AF_INET6 if ":" in host else socket.AF_INET

        sock = socket.socket(family, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((host, port))
        except OSError as e:
            sock.close()
            raise ServerError(f"could not listen on {self.settings.bind_addr!r}: {e}") from e
        return sock

    def shutdown(self) -> None:
        """
        Begin a graceful stop. Only the first call has an effect.

        Safe to call from a signal handler: it only flips flags and closes
        mailboxes, the draining itself happens on the serving task.
        """
        if self._stopping:
            logger.debug("Shutdown already in progress")
            return

        self._stopping = True
        logger.info("Gracefully shutting down")

        self.broker.close()
        if self._server is not None:
            self._server.should_exit = True

    async def wait_closed(self) -> None:
        """Wait for the serving task to finish after ``shutdown()``."""
        if self._task is not None:
            await self._task
