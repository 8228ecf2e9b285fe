"""Upstream adapter interface and the select-with-deadline primitive both variants share."""

from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator, Awaitable, Dict, List, Optional, Protocol, TypeVar, runtime_checkable

from gateway.backend.errors import ChunkTimeout, ConsumerDisconnect
from gateway.backend.schemas import ModelParams
from gateway.backend.services.registry_service import CancellationToken
from gateway.protocol.events import NormalizedEvent

T = TypeVar("T")

UPSTREAM_UNAVAILABLE = "upstream_unavailable"
UPSTREAM_ERROR = "upstream_error"
CHUNK_TIMEOUT = "chunk_timeout"


@runtime_checkable
class UpstreamAdapter(Protocol):
	"""Turns one upstream exchange into a lazy sequence of normalized events.

	Implementations end with exactly one terminal event (``End`` or ``Error``)
	unless the token is cancelled, in which case they stop without one.
	"""

	def produce(
		self,
		messages: List[Dict[str, str]],
		params: ModelParams,
		token: CancellationToken,
	) -> AsyncIterator[NormalizedEvent]:
		...


async def race(
	awaitable: Awaitable[T],
	token: CancellationToken,
	*,
	timeout: Optional[float] = None,
) -> T:
	"""Await ``awaitable`` unless the token fires or ``timeout`` elapses first.

	Raises ``ConsumerDisconnect`` on cancellation and ``ChunkTimeout`` on deadline.
	The losing operation is cancelled and awaited before returning.
	"""
	if token.cancelled:
		if asyncio.iscoroutine(awaitable):
			awaitable.close()
		raise ConsumerDisconnect()
	work: asyncio.Future[Any] = asyncio.ensure_future(awaitable)
	stop = asyncio.ensure_future(token.wait())
	try:
		done, _pending = await asyncio.wait(
			{work, stop},
			timeout=timeout,
			return_when=asyncio.FIRST_COMPLETED,
		)
	finally:
		stop.cancel()
		if not work.done():
			work.cancel()
			await asyncio.wait({work})
	if work in done:
		return work.result()
	if stop in done:
		raise ConsumerDisconnect()
	raise ChunkTimeout()
