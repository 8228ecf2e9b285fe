from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from gateway.protocol.events import ContentDelta, EndEvent, ErrorEvent, NormalizedEvent, ReasoningDelta


@dataclass
class SourceImage:
	url: str
	description: Optional[str] = None


@dataclass
class Source:
	title: str
	url: str
	content: str
	snippet: Optional[str] = None
	score: Optional[float] = None
	image: Optional[SourceImage] = None


@dataclass
class Section:
	"""Everything shown for one submitted query.

	``reasoning`` and ``content`` only grow. ``sources_loading`` and
	``thinking_loading`` each switch off once and are never re-armed.
	"""

	query: str
	sources: List[Source] = field(default_factory=list)
	reasoning: str = ""
	content: str = ""
	error: Optional[str] = None
	request_id: Optional[str] = None
	sources_loading: bool = True
	thinking_loading: bool = False
	reasoning_collapsed: bool = False

	def sources_ready(self, sources: List[Source]) -> None:
		if not self.sources_loading:
			return
		self.sources = list(sources)
		self.sources_loading = False
		self.thinking_loading = True

	def apply(self, event: NormalizedEvent) -> bool:
		"""Fold one event into the section. Returns True when the event is terminal."""
		if isinstance(event, ReasoningDelta):
			self.reasoning += event.text
			self.thinking_loading = False
			return False
		if isinstance(event, ContentDelta):
			self.content += event.text
			return False
		if isinstance(event, ErrorEvent):
			self.fail(event.message)
			return True
		if isinstance(event, EndEvent):
			return True
		raise TypeError(f"Unsupported event type: {type(event).__name__}")

	def fail(self, message: str) -> None:
		self.error = message
		self.sources_loading = False
		self.thinking_loading = False

	def settle(self) -> None:
		"""Switch off loading flags once the exchange is over, whatever its outcome."""
		self.sources_loading = False
		self.thinking_loading = False

	def toggle_reasoning(self) -> bool:
		self.reasoning_collapsed = not self.reasoning_collapsed
		return self.reasoning_collapsed
