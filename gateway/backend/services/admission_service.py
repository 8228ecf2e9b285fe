"""Sliding-window admission control keyed by client identifier."""

from __future__ import annotations

import logging
import time
from collections import deque
from threading import Lock
from typing import Callable, Deque, Dict, Optional

from gateway.backend import settings
from gateway.backend.services.sharded_lock import ShardedLock

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class SlidingWindowLimiter:
	"""At most ``quota`` admitted requests per client inside a trailing ``window``.

	Expired timestamps are purged lazily on every ``allow`` call; ``sweep`` drops
	clients whose window has emptied so the map does not grow without bound.
	"""

	def __init__(
		self,
		*,
		quota: int,
		window: float,
		clock: Clock = time.monotonic,
		locks: Optional[ShardedLock] = None,
	) -> None:
		if quota < 1:
			raise ValueError("quota must be at least 1")
		if window <= 0:
			raise ValueError("window must be greater than zero")
		self.quota = quota
		self.window = window
		self._clock = clock
		self._locks = locks or ShardedLock()
		self._windows: Dict[str, Deque[float]] = {}

	def _purge_locked(self, timestamps: Deque[float], now: float) -> None:
		while timestamps and now - timestamps[0] >= self.window:
			timestamps.popleft()

	def allow(self, client_id: str) -> bool:
		with self._locks.for_key(client_id):
			now = self._clock()
			timestamps = self._windows.get(client_id)
			if timestamps is None:
				timestamps = deque()
				self._windows[client_id] = timestamps
			self._purge_locked(timestamps, now)
			if len(timestamps) >= self.quota:
				logger.info("Admission rejected for client %s", client_id, extra={"client_id": client_id})
				return False
			timestamps.append(now)
			return True

	def remaining(self, client_id: str) -> int:
		with self._locks.for_key(client_id):
			timestamps = self._windows.get(client_id)
			if timestamps is None:
				return self.quota
			self._purge_locked(timestamps, self._clock())
			return max(self.quota - len(timestamps), 0)

	def sweep(self) -> int:
		"""Drop clients with no timestamps left in the window. Returns how many were dropped."""
		dropped = 0
		for client_id in list(self._windows.keys()):
			with self._locks.for_key(client_id):
				timestamps = self._windows.get(client_id)
				if timestamps is None:
					continue
				self._purge_locked(timestamps, self._clock())
				if not timestamps:
					del self._windows[client_id]
					dropped += 1
		if dropped:
			logger.debug("Admission sweep dropped %d idle clients", dropped)
		return dropped

	def tracked_clients(self) -> int:
		return len(self._windows)


_LIMITER: Optional[SlidingWindowLimiter] = None
_LIMITER_LOCK = Lock()


def limiter() -> SlidingWindowLimiter:
	global _LIMITER
	with _LIMITER_LOCK:
		if _LIMITER is None:
			_LIMITER = SlidingWindowLimiter(quota=settings.rate_limit(), window=settings.rate_window())
		return _LIMITER


def reset(instance: Optional[SlidingWindowLimiter] = None) -> None:
	"""Replace the process-wide limiter (rebuilt from settings on next use when ``None``)."""
	global _LIMITER
	with _LIMITER_LOCK:
		_LIMITER = instance


def allow(client_id: str) -> bool:
	return limiter().allow(client_id)


def sweep() -> int:
	return limiter().sweep()
