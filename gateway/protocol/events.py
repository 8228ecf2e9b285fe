from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union


@dataclass(frozen=True)
class ContentDelta:
	text: str


@dataclass(frozen=True)
class ReasoningDelta:
	text: str


@dataclass(frozen=True)
class ErrorEvent:
	message: str
	# Server-side classification only; not carried on the wire.
	code: Optional[str] = None


@dataclass(frozen=True)
class EndEvent:
	pass


END = EndEvent()

NormalizedEvent = Union[ContentDelta, ReasoningDelta, ErrorEvent, EndEvent]


def is_terminal(event: NormalizedEvent) -> bool:
	return isinstance(event, (ErrorEvent, EndEvent))
