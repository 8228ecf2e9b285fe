"""Client-side chat session: query history plus single-flight streaming against the gateway."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

import httpx

from gateway.client.consumer import aconsume
from gateway.client.research import ResearchError, build_research_messages
from gateway.client.section import Section
from gateway.protocol.framing import REQUEST_ID_HEADER

logger = logging.getLogger(__name__)

SearchFn = Callable[[str], Awaitable[Mapping[str, Any]]]

_CHAT_PATH = "/api/chat"


def _error_message(response: httpx.Response, body: bytes) -> str:
	try:
		payload = json.loads(body)
	except ValueError:
		payload = None
	if isinstance(payload, dict):
		error = payload.get("error")
		if isinstance(error, dict) and error.get("message"):
			return str(error["message"])
		if isinstance(error, str) and error:
			return error
	return f"Gateway returned HTTP {response.status_code}."


class ChatSession:
	"""Keeps every Section for history and runs at most one query at a time.

	Submitting while a query is in flight cancels that query first; its Section
	keeps whatever reasoning and content had already arrived.
	"""

	def __init__(
		self,
		client: httpx.AsyncClient,
		*,
		search: Optional[SearchFn] = None,
		model_params: Optional[Dict[str, Any]] = None,
	) -> None:
		self._client = client
		self._search = search
		self._model_params = model_params
		self.sections: List[Section] = []
		self._active: Optional[asyncio.Task] = None
		self._active_section: Optional[Section] = None
		self._replace_lock = asyncio.Lock()

	@property
	def busy(self) -> bool:
		return self._active is not None and not self._active.done()

	async def submit(self, query: str) -> Section:
		query = query.strip()
		if not query:
			raise ValueError("query must not be empty")
		# Cancel-then-start is one step, so overlapping submits queue up here.
		async with self._replace_lock:
			await self.cancel()
			section = Section(query=query)
			self.sections.append(section)
			task = asyncio.create_task(self._run(section))
			self._active = task
			self._active_section = section
		# A superseded run ends here quietly; its partial Section stays in history.
		await asyncio.wait({task})
		return section

	async def cancel(self) -> bool:
		task, section = self._active, self._active_section
		if task is None or section is None or task.done():
			return False
		task.cancel()
		await asyncio.wait({task})
		section.settle()
		if section.request_id:
			await self._cancel_remote(section.request_id)
		return True

	def toggle_reasoning(self, index: int) -> bool:
		return self.sections[index].toggle_reasoning()

	async def _cancel_remote(self, request_id: str) -> None:
		try:
			await self._client.delete(f"{_CHAT_PATH}/{request_id}")
		except httpx.HTTPError as exc:
			logger.info("Remote cancel of %s failed: %s", request_id, exc)

	async def _messages_for(self, section: Section) -> List[Dict[str, str]]:
		if self._search is None:
			section.sources_ready([])
			return [{"role": "user", "content": section.query}]
		payload = await self._search(section.query)
		sources, messages = build_research_messages(section.query, payload)
		section.sources_ready(sources)
		return messages

	async def _run(self, section: Section) -> None:
		try:
			messages = await self._messages_for(section)
			body: Dict[str, Any] = {"messages": messages}
			if self._model_params:
				body["modelParams"] = self._model_params
			async with self._client.stream("POST", _CHAT_PATH, json=body) as response:
				if response.status_code != 200:
					section.fail(_error_message(response, await response.aread()))
					return
				section.request_id = response.headers.get(REQUEST_ID_HEADER)
				await aconsume(section, response.aiter_bytes())
		except asyncio.CancelledError:
			logger.info("Query %r cancelled", section.query)
		except (ResearchError, httpx.HTTPError) as exc:
			section.fail(str(exc) or exc.__class__.__name__)
		except Exception as exc:
			logger.exception("Query %r failed", section.query)
			section.fail(str(exc) or exc.__class__.__name__)
		finally:
			section.settle()
