from __future__ import annotations

import zlib
from threading import Lock
from typing import List

from gateway.backend import constants


class ShardedLock:
	"""Lock striping: one lock per key bucket so unrelated keys never contend."""

	def __init__(self, shards: int = constants.LOCK_SHARDS) -> None:
		if shards < 1:
			raise ValueError("shards must be at least 1")
		self._locks: List[Lock] = [Lock() for _ in range(shards)]

	def __len__(self) -> int:
		return len(self._locks)

	def for_key(self, key: str) -> Lock:
		# crc32 keeps the shard stable across processes, unlike hash().
		return self._locks[zlib.crc32(key.encode("utf-8")) % len(self._locks)]
