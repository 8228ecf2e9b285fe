"""Single-shot upstream re-chunked into a paced synthetic stream."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx
import openai

from gateway.backend.adapters.base import UPSTREAM_UNAVAILABLE, race
from gateway.backend.adapters.chunking import Pacer, natural_chunks, split_reasoning
from gateway.backend.errors import ConsumerDisconnect
from gateway.backend.schemas import ModelParams
from gateway.backend.services.registry_service import CancellationToken
from gateway.protocol.events import END, ContentDelta, ErrorEvent, NormalizedEvent, ReasoningDelta

logger = logging.getLogger(__name__)


class EmptyCompletion(Exception):
	pass


def _build_openai_client(*, api_key: str, base_url: Optional[str], timeout_s: float) -> openai.AsyncOpenAI:
	return openai.AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout_s, max_retries=0)


def _extract_completion_text(response: Any) -> str:
	choices = getattr(response, "choices", None)
	if choices is None and isinstance(response, dict):
		choices = response.get("choices")
	if not choices:
		raise EmptyCompletion("Upstream returned no choices.")
	first = choices[0]
	message = getattr(first, "message", None)
	if message is None and isinstance(first, dict):
		message = first.get("message")
	content = getattr(message, "content", None)
	if content is None and isinstance(message, dict):
		content = message.get("content")
	if not isinstance(content, str):
		raise EmptyCompletion("Upstream returned no message content.")
	return content


class BatchAdapter:
	def __init__(
		self,
		*,
		model: str,
		api_key: str,
		base_url: Optional[str] = None,
		timeout_s: float = 300.0,
		pacer: Optional[Pacer] = None,
	) -> None:
		self.model = model
		self.api_key = api_key
		self.base_url = base_url
		self.timeout_s = timeout_s
		self.pacer = pacer or Pacer()

	async def _complete(self, messages: List[Dict[str, str]], params: ModelParams) -> str:
		client = _build_openai_client(api_key=self.api_key, base_url=self.base_url, timeout_s=self.timeout_s)
		try:
			response = await client.chat.completions.create(
				model=self.model,
				messages=messages,
				temperature=params.temperature,
				max_tokens=params.max_tokens,
				top_p=params.top_p,
			)
		finally:
			await client.close()
		return _extract_completion_text(response)

	async def produce(
		self,
		messages: List[Dict[str, str]],
		params: ModelParams,
		token: CancellationToken,
	) -> AsyncIterator[NormalizedEvent]:
		try:
			text = await race(self._complete(messages, params), token)
		except ConsumerDisconnect:
			logger.info("Batch request cancelled before the upstream call returned")
			return
		except (openai.OpenAIError, httpx.HTTPError, EmptyCompletion) as exc:
			logger.warning("Batch upstream call failed: %s", exc)
			yield ErrorEvent(message=str(exc) or exc.__class__.__name__, code=UPSTREAM_UNAVAILABLE)
			return

		reasoning, answer = split_reasoning(text)
		try:
			for chunk in natural_chunks(reasoning):
				yield ReasoningDelta(text=chunk)
				await self._pause(self.pacer.reasoning_delay(chunk), token)
			for chunk in natural_chunks(answer):
				yield ContentDelta(text=chunk)
				await self._pause(self.pacer.answer_delay(chunk), token)
		except ConsumerDisconnect:
			logger.info("Batch request cancelled mid-stream")
			return
		yield END

	async def _pause(self, delay: float, token: CancellationToken) -> None:
		if token.cancelled:
			raise ConsumerDisconnect()
		if delay > 0:
			await race(asyncio.sleep(delay), token)
