"""Reasoning/answer splitting, natural chunking and synthetic typing pacing."""

from __future__ import annotations

import random
import re
from typing import List, Optional, Tuple

from gateway.backend import constants

_SENTENCE_END = (".", "!", "?")
# One unit ends after sentence punctuation followed by whitespace, at a paragraph break, or at end of text.
_UNIT_RE = re.compile(r".+?(?:[.!?]+(?:\s+|$)|\n\s*\n\s*|$)", re.S)


def split_reasoning(
	text: str,
	start: str = constants.REASONING_START_MARKER,
	end: str = constants.REASONING_END_MARKER,
) -> Tuple[str, str]:
	"""Return ``(reasoning, answer)`` with the marker pair stripped from both."""
	block_re = re.compile(re.escape(start) + r"(.*?)" + re.escape(end), re.S)
	segments = [match.group(1).strip() for match in block_re.finditer(text)]
	answer = block_re.sub("", text)

	if start in answer:
		# Unterminated block: everything after the marker is reasoning.
		head, _, tail = answer.partition(start)
		segments.append(tail.strip())
		answer = head
	elif end in answer:
		# Some templates omit the opening marker and only close the block.
		head, _, tail = answer.partition(end)
		segments.insert(0, head.strip())
		answer = tail

	reasoning = "\n\n".join(segment for segment in segments if segment)
	return reasoning, answer.strip()


def _split_long(unit: str, soft_cap: int) -> List[str]:
	pieces: List[str] = []
	rest = unit
	while len(rest) > soft_cap:
		cut = rest.rfind(" ", 0, soft_cap + 1)
		if cut <= 0:
			cut = rest.find(" ", soft_cap)
			if cut == -1:
				break
		pieces.append(rest[: cut + 1])
		rest = rest[cut + 1 :]
	if rest:
		pieces.append(rest)
	return pieces


def natural_chunks(text: str, soft_cap: int = constants.NATURAL_CHUNK_SOFT_CAP) -> List[str]:
	"""Split at sentence or paragraph boundaries, merging units greedily up to ``soft_cap``.

	Joining the result reproduces ``text`` exactly. Units longer than the cap are
	broken at whitespace, never inside a word.
	"""
	if not text:
		return []
	chunks: List[str] = []
	current = ""
	for match in _UNIT_RE.finditer(text):
		for unit in _split_long(match.group(0), soft_cap):
			if current and len(current) + len(unit) > soft_cap:
				chunks.append(current)
				current = unit
			else:
				current += unit
	if current:
		chunks.append(current)
	return chunks


class Pacer:
	"""Delay generator for the synthetic typing effect. Seedable; disabled means zero delays."""

	def __init__(
		self,
		*,
		enabled: bool = True,
		seed: Optional[int] = None,
		reasoning_chars_per_second: Tuple[float, float] = (60.0, 120.0),
		answer_seconds_per_word: Tuple[float, float] = (0.02, 0.06),
		sentence_pause: float = 0.15,
	) -> None:
		self.enabled = enabled
		self._random = random.Random(seed)
		self._reasoning_cps = reasoning_chars_per_second
		self._answer_spw = answer_seconds_per_word
		self._sentence_pause = sentence_pause

	def reasoning_delay(self, chunk: str) -> float:
		if not self.enabled:
			return 0.0
		speed = self._random.uniform(*self._reasoning_cps)
		return len(chunk) / speed

	def answer_delay(self, chunk: str) -> float:
		if not self.enabled:
			return 0.0
		delay = len(chunk.split()) * self._random.uniform(*self._answer_spw)
		if chunk.rstrip().endswith(_SENTENCE_END):
			delay += self._sentence_pause
		return delay
