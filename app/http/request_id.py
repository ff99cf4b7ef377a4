"""Request ID middleware.

Reuses an inbound X-Request-Id or assigns a new one, echoes it on the
response and logs one line per completed request.
"""

from __future__ import annotations

import logging
import time
import uuid

logger = logging.getLogger(__name__)


class RequestIdMiddleware:
    def __init__(self, app, header_name: str = "X-Request-Id") -> None:  # type: ignore[no-untyped-def]
        self.app = app
        self.header_name = header_name
        self._header_key = header_name.lower().encode("latin-1")

    def _inbound_id(self, scope) -> str:  # type: ignore[no-untyped-def]
        for key, value in scope.get("headers") or []:
            if key.lower() == self._header_key and value:
                return value.decode("latin-1")[:128]
        return str(uuid.uuid4())

    async def __call__(self, scope, receive, send):  # type: ignore[no-untyped-def]
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        request_id = self._inbound_id(scope)
        scope.setdefault("state", {})["request_id"] = request_id
        started = time.perf_counter()
        status_holder = {"status": 500}

        async def send_wrapper(message):  # type: ignore[no-untyped-def]
            if message.get("type") == "http.response.start":
                status_holder["status"] = int(message.get("status", 500))
                headers = [(k, v) for k, v in (message.get("headers") or []) if k.lower() != self._header_key]
                headers.append((self.header_name.encode("latin-1"), request_id.encode("latin-1")))
                message = {**message, "headers": headers}
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            logger.info(
                "request_completed request_id=%s method=%s path=%s status=%s duration_ms=%.1f",
                request_id,
                scope.get("method"),
                scope.get("path"),
                status_holder["status"],
                (time.perf_counter() - started) * 1000,
            )


__all__ = ["RequestIdMiddleware"]
