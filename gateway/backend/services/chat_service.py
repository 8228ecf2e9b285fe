from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Optional

import anyio
from pydantic import ValidationError

from gateway.backend import constants, settings
from gateway.backend.adapters.base import UPSTREAM_UNAVAILABLE, UpstreamAdapter
from gateway.backend.adapters.batch_adapter import BatchAdapter
from gateway.backend.adapters.chunking import Pacer
from gateway.backend.adapters.stream_adapter import StreamingAdapter
from gateway.backend.errors import UpstreamUnavailable, ValidationFailed, evidence_from
from gateway.backend.schemas import ChatRequest
from gateway.backend.services import registry_service
from gateway.backend.services.registry_service import RequestRegistry
from gateway.protocol.events import ErrorEvent, NormalizedEvent, is_terminal
from gateway.protocol.framing import frame

logger = logging.getLogger(__name__)

_INVALID_MESSAGES = "Invalid or too many messages"
_CONTENT_TOO_LARGE = "Total content size exceeds limit"


def client_id_from(forwarded_for: Optional[str], peer_host: Optional[str]) -> str:
	if forwarded_for:
		first = forwarded_for.split(",")[0].strip()
		if first:
			return first
	return peer_host or "unknown"


def validate_request(raw: Any) -> ChatRequest:
	if not isinstance(raw, dict):
		raise ValidationFailed(_INVALID_MESSAGES, evidence=["body: expected a JSON object"])
	try:
		payload = ChatRequest.model_validate(raw)
	except ValidationError as exc:
		raise ValidationFailed(_INVALID_MESSAGES, evidence=evidence_from(exc.errors())) from exc

	limit = settings.max_messages()
	if len(payload.messages) > limit:
		raise ValidationFailed(_INVALID_MESSAGES, evidence=[f"messages: at most {limit} items allowed"])
	total = sum(len(message.content) for message in payload.messages)
	content_limit = settings.max_content_chars()
	if total > content_limit:
		raise ValidationFailed(
			_CONTENT_TOO_LARGE,
			evidence=[f"messages: {total} characters exceeds {content_limit}"],
		)
	return payload


def build_adapter() -> UpstreamAdapter:
	if settings.upstream_mode() == "batch":
		return BatchAdapter(
			model=settings.batch_model(),
			api_key=settings.batch_api_key(),
			base_url=settings.batch_base_url(),
			timeout_s=settings.batch_timeout(),
			pacer=Pacer(enabled=settings.batch_pacing_enabled(), seed=settings.pacing_seed()),
		)
	return StreamingAdapter(
		url=settings.stream_url(),
		model=settings.stream_model(),
		chunk_timeout=settings.chunk_timeout(),
	)


class ChatStream:
	"""One admitted request: its registry entry, its event source and the first event already pulled."""

	def __init__(
		self,
		*,
		request_id: str,
		first: Optional[NormalizedEvent],
		events: AsyncIterator[NormalizedEvent],
		registry: RequestRegistry,
	) -> None:
		self.request_id = request_id
		self._first = first
		self._events = events
		self._registry = registry
		self._closed = False

	async def _iter_events(self) -> AsyncIterator[NormalizedEvent]:
		if self._first is not None:
			yield self._first
			if is_terminal(self._first):
				return
		async for event in self._events:
			yield event
			if is_terminal(event):
				return

	async def frames(self) -> AsyncIterator[bytes]:
		try:
			async for event in self._iter_events():
				yield frame(event)
		except Exception:
			logger.exception("Gateway stream %s failed", self.request_id)
			yield frame(ErrorEvent(message="Stream error"))
		finally:
			await self.aclose()

	async def aclose(self) -> None:
		if self._closed:
			return
		self._closed = True
		self._registry.complete(self.request_id)
		with anyio.CancelScope(shield=True):
			await self._events.aclose()


async def open_stream(
	payload: ChatRequest,
	*,
	adapter: Optional[UpstreamAdapter] = None,
	registry: Optional[RequestRegistry] = None,
) -> ChatStream:
	"""Register the request and start the upstream exchange.

	The first event is pulled eagerly so a backend that cannot be reached at all
	surfaces as ``UpstreamUnavailable`` instead of an already-started stream.
	"""
	if registry is None:
		registry = registry_service.registry()
	if adapter is None:
		adapter = build_adapter()
	messages = [message.model_dump() for message in payload.messages]

	request_id, token = registry.register()
	events = adapter.produce(messages, payload.model_params, token)
	try:
		first: Optional[NormalizedEvent] = await events.__anext__()
	except StopAsyncIteration:
		first = None
	except BaseException:
		registry.complete(request_id)
		with anyio.CancelScope(shield=True):
			await events.aclose()
		raise

	if isinstance(first, ErrorEvent) and first.code == UPSTREAM_UNAVAILABLE:
		registry.complete(request_id)
		await events.aclose()
		raise UpstreamUnavailable(first.message, advice=constants.UPSTREAM_ADVICE)
	return ChatStream(request_id=request_id, first=first, events=events, registry=registry)
