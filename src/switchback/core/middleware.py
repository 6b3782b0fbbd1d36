"""Availability gate and request timing middleware."""

import logging
import time
from typing import Iterable, Optional

from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

logger = logging.getLogger(__name__)

MAINTENANCE_DETAIL = "the switchback server is currently in maintenance mode"


class AvailabilityGate:
    """
    Reject calls while the server is in maintenance mode and time every call.

    Unary calls are rejected unless their path is exempt (the status call).
    Streaming calls are rejected unconditionally: a long-lived stream is never
    allowed to open in maintenance mode. Rejections answer 503 before the
    wrapped application sees the request.

    This is a plain ASGI middleware rather than ``BaseHTTPMiddleware`` so the
    recorded duration of a stream covers the whole stream, not just the time
    until its headers were sent.
    """

    def __init__(
        self,
        app: ASGIApp,
        maintenance: bool = False,
        exempt_paths: Iterable[str] = (),
        streaming_paths: Iterable[str] = (),
    ):
        self.app = app
        self.maintenance = maintenance
        self.exempt_paths = frozenset(exempt_paths)
        self.streaming_paths = frozenset(streaming_paths)

    def is_streaming(self, path: str) -> bool:
        return path in self.streaming_paths

    def allowed(self, path: str) -> bool:
        """Whether a call to ``path`` may proceed."""
        if not self.maintenance:
            return True
        if self.is_streaming(path):
            return False
        return path in self.exempt_paths

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        start = time.perf_counter()
        path = scope["path"]
        kind = "stream" if self.is_streaming(path) else "unary"
        status_code: Optional[int] = None
        error: Optional[BaseException] = None

        async def send_wrapper(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
            await send(message)

        try:
            if not self.allowed(path):
                response = JSONResponse({"detail": MAINTENANCE_DETAIL}, status_code=503)
                await response(scope, receive, send_wrapper)
                return

            await self.app(scope, receive, send_wrapper)
        except BaseException as e:
            error = e
            raise
        finally:
            logger.debug(
                f"http {kind} request method={scope['method']} path={path} "
                f"status={status_code} latency={time.perf_counter() - start:.6f}s "
                f"error={error!r}"
            )
