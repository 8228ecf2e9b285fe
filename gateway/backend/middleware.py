from __future__ import annotations

import time
import uuid

from starlette.datastructures import Headers, MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from gateway.backend.logging_config import bind_request_id, unbind_request_id


class RequestContextMiddleware:
	"""Tags every HTTP exchange with a request id and time-to-first-byte.

	Plain ASGI rather than ``BaseHTTPMiddleware`` so streamed bodies pass
	through record by record.
	"""

	def __init__(self, app: ASGIApp) -> None:
		self.app = app

	async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
		if scope["type"] != "http":
			await self.app(scope, receive, send)
			return

		request_id = Headers(scope=scope).get("X-Request-ID") or uuid.uuid4().hex
		scope.setdefault("state", {})["request_id"] = request_id
		start = time.perf_counter()

		async def send_with_context(message: Message) -> None:
			if message["type"] == "http.response.start":
				headers = MutableHeaders(scope=message)
				headers["X-Request-ID"] = request_id
				headers["X-Process-Time"] = f"{time.perf_counter() - start:.6f}"
			await send(message)

		token = bind_request_id(request_id)
		try:
			await self.app(scope, receive, send_with_context)
		finally:
			unbind_request_id(token)
