"""Process-wide registry of in-flight requests and their cancellation tokens."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple

from gateway.backend.services.sharded_lock import ShardedLock

logger = logging.getLogger(__name__)


class CancellationToken:
	"""Idempotent cancellation signal shared by everything serving one request."""

	def __init__(self) -> None:
		self._event = asyncio.Event()

	@property
	def cancelled(self) -> bool:
		return self._event.is_set()

	def cancel(self) -> bool:
		"""Signal cancellation. Returns True only for the call that flipped the token."""
		if self._event.is_set():
			return False
		self._event.set()
		return True

	async def wait(self) -> None:
		await self._event.wait()


@dataclass
class InFlightRequest:
	request_id: str
	token: CancellationToken = field(default_factory=CancellationToken)
	created_at: float = field(default_factory=time.time)


class RequestRegistry:
	def __init__(self, locks: Optional[ShardedLock] = None) -> None:
		self._locks = locks or ShardedLock()
		self._entries: Dict[str, InFlightRequest] = {}

	def register(self) -> Tuple[str, CancellationToken]:
		request_id = uuid.uuid4().hex
		entry = InFlightRequest(request_id=request_id)
		with self._locks.for_key(request_id):
			self._entries[request_id] = entry
		return request_id, entry.token

	def _release(self, request_id: str) -> Optional[InFlightRequest]:
		with self._locks.for_key(request_id):
			return self._entries.pop(request_id, None)

	def complete(self, request_id: str) -> bool:
		"""Release an entry. Safe to call repeatedly; only the first call returns True."""
		return self._release(request_id) is not None

	def cancel(self, request_id: str) -> bool:
		entry = self._release(request_id)
		if entry is None:
			return False
		entry.token.cancel()
		logger.info("Cancelled in-flight request %s", request_id)
		return True

	def cancel_all(self) -> int:
		cancelled = 0
		for request_id in list(self._entries.keys()):
			if self.cancel(request_id):
				cancelled += 1
		return cancelled

	def get(self, request_id: str) -> Optional[InFlightRequest]:
		with self._locks.for_key(request_id):
			return self._entries.get(request_id)

	def active_ids(self) -> List[str]:
		return list(self._entries.keys())

	def __len__(self) -> int:
		return len(self._entries)

	@contextmanager
	def track(self) -> Iterator[Tuple[str, CancellationToken]]:
		"""Register on entry; release on every exit path."""
		request_id, token = self.register()
		try:
			yield request_id, token
		finally:
			self.complete(request_id)


_REGISTRY = RequestRegistry()


def registry() -> RequestRegistry:
	return _REGISTRY


def reset(instance: Optional[RequestRegistry] = None) -> None:
	global _REGISTRY
	_REGISTRY = instance if instance is not None else RequestRegistry()
