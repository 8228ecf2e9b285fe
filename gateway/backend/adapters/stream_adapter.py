"""Streaming upstream: newline-delimited JSON records read under a per-chunk deadline."""

from __future__ import annotations

import json
import logging
from contextlib import AsyncExitStack
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

import httpx

from gateway.backend import constants
from gateway.backend.adapters.base import CHUNK_TIMEOUT, UPSTREAM_ERROR, UPSTREAM_UNAVAILABLE, race
from gateway.backend.errors import ChunkTimeout, ConsumerDisconnect
from gateway.backend.schemas import ModelParams
from gateway.backend.services.registry_service import CancellationToken
from gateway.protocol.events import END, ContentDelta, ErrorEvent, NormalizedEvent, ReasoningDelta

logger = logging.getLogger(__name__)

ClientFactory = Callable[[], httpx.AsyncClient]


def _default_client() -> httpx.AsyncClient:
	# Header wait and chunk reads are bounded by the adapter. This is a backstop.
	return httpx.AsyncClient(timeout=httpx.Timeout(30.0, read=constants.DEFAULT_HEADER_TIMEOUT_S))


def build_options(params: ModelParams) -> Dict[str, Any]:
	return {
		"temperature": params.temperature,
		"num_predict": params.max_tokens,
		"num_ctx": params.context_window,
		"top_k": params.top_k,
		"top_p": params.top_p,
		"repeat_penalty": params.repeat_penalty,
	}


def _error_detail(body: bytes) -> str:
	text = body.decode("utf-8", errors="replace").strip()
	try:
		payload = json.loads(text)
	except json.JSONDecodeError:
		return text
	if isinstance(payload, dict) and payload.get("error"):
		return str(payload["error"])
	return text


async def _read_next(chunks: AsyncIterator[bytes]) -> Optional[bytes]:
	try:
		return await chunks.__anext__()
	except StopAsyncIteration:
		return None


class UpstreamRecordError(Exception):
	"""The backend reported an error inside the record stream."""


def parse_upstream_record(line: bytes) -> List[NormalizedEvent]:
	"""Map one backend record to zero or more events.

	Raises ``json.JSONDecodeError`` / ``UnicodeDecodeError`` for malformed lines and
	``UpstreamRecordError`` when the record carries a backend error.
	"""
	text = line.decode("utf-8").strip()
	if not text:
		return []
	record = json.loads(text)
	if not isinstance(record, dict):
		return []
	if record.get("error"):
		raise UpstreamRecordError(str(record["error"]))
	message = record.get("message")
	if not isinstance(message, dict):
		return []
	events: List[NormalizedEvent] = []
	thinking = message.get("thinking")
	if isinstance(thinking, str) and thinking:
		events.append(ReasoningDelta(text=thinking))
	content = message.get("content")
	if isinstance(content, str) and content:
		events.append(ContentDelta(text=content))
	return events


class StreamingAdapter:
	def __init__(
		self,
		*,
		url: str,
		model: str,
		chunk_timeout: float = constants.DEFAULT_CHUNK_TIMEOUT_S,
		header_timeout: float = constants.DEFAULT_HEADER_TIMEOUT_S,
		client_factory: ClientFactory = _default_client,
	) -> None:
		self.url = url
		self.model = model
		self.chunk_timeout = chunk_timeout
		self.header_timeout = header_timeout
		self._client_factory = client_factory

	def _body(self, messages: List[Dict[str, str]], params: ModelParams) -> Dict[str, Any]:
		return {
			"model": self.model,
			"messages": messages,
			"stream": True,
			"options": build_options(params),
		}

	async def produce(
		self,
		messages: List[Dict[str, str]],
		params: ModelParams,
		token: CancellationToken,
	) -> AsyncIterator[NormalizedEvent]:
		started = False
		client = self._client_factory()
		try:
			async with AsyncExitStack() as stack:
				# Connect and the wait for response headers stay cancellable.
				response = await race(
					stack.enter_async_context(client.stream("POST", self.url, json=self._body(messages, params))),
					token,
					timeout=self.header_timeout,
				)
				if response.is_error:
					detail = _error_detail(await response.aread())
					logger.warning("Upstream returned %d: %s", response.status_code, detail)
					yield ErrorEvent(
						message=f"Upstream error: {detail or response.status_code}",
						code=UPSTREAM_UNAVAILABLE,
					)
					return
				started = True
				async for event in self._events(response, token):
					yield event
		except ConsumerDisconnect:
			logger.info("Streaming request cancelled; upstream connection closed")
		except ChunkTimeout:
			logger.warning("Upstream sent no response headers within %.1fs", self.header_timeout)
			yield ErrorEvent(
				message=f"Upstream did not respond within {self.header_timeout:g}s",
				code=UPSTREAM_UNAVAILABLE,
			)
		except httpx.HTTPError as exc:
			logger.warning("Upstream stream failed: %s", exc)
			yield ErrorEvent(
				message=str(exc) or exc.__class__.__name__,
				code=UPSTREAM_ERROR if started else UPSTREAM_UNAVAILABLE,
			)
		finally:
			await client.aclose()

	async def _events(
		self,
		response: httpx.Response,
		token: CancellationToken,
	) -> AsyncIterator[NormalizedEvent]:
		chunks = response.aiter_bytes()
		buffer = b""
		while True:
			try:
				chunk = await race(_read_next(chunks), token, timeout=self.chunk_timeout)
			except ChunkTimeout:
				logger.warning("No upstream data within %.1fs", self.chunk_timeout)
				yield ErrorEvent(message=constants.CHUNK_TIMEOUT_MESSAGE, code=CHUNK_TIMEOUT)
				return
			if chunk is None:
				break
			buffer += chunk
			*lines, buffer = buffer.split(b"\n")
			for line in lines:
				for event in self._parse(line):
					yield event
					if isinstance(event, ErrorEvent):
						return
		for event in self._parse(buffer):
			yield event
			if isinstance(event, ErrorEvent):
				return
		yield END

	def _parse(self, line: bytes) -> List[NormalizedEvent]:
		try:
			return parse_upstream_record(line)
		except UpstreamRecordError as exc:
			logger.warning("Upstream reported an error mid-stream: %s", exc)
			return [ErrorEvent(message=str(exc), code=UPSTREAM_ERROR)]
		except (json.JSONDecodeError, UnicodeDecodeError) as exc:
			logger.warning("Skipping malformed upstream record: %s", exc)
			return []
