"""Incremental consumer for the gateway's framed event stream."""

from __future__ import annotations

import logging
from typing import AsyncIterable, AsyncIterator, Iterable, Iterator, List, Optional

from gateway.client.section import Section
from gateway.protocol.events import NormalizedEvent, is_terminal
from gateway.protocol.framing import RecordParseError, parse_record

logger = logging.getLogger(__name__)


class StreamConsumer:
	"""Buffers raw bytes and emits events for every complete record.

	An incomplete trailing line is held until more bytes arrive, so the result
	does not depend on how the transport split the stream.
	"""

	def __init__(self) -> None:
		self._buffer = b""
		self.dropped = 0

	def feed(self, data: bytes) -> List[NormalizedEvent]:
		self._buffer += data
		*lines, self._buffer = self._buffer.split(b"\n")
		return self._parse_lines(lines)

	def flush(self) -> List[NormalizedEvent]:
		rest, self._buffer = self._buffer, b""
		return self._parse_lines([rest])

	def _parse_lines(self, lines: List[bytes]) -> List[NormalizedEvent]:
		events: List[NormalizedEvent] = []
		for raw in lines:
			try:
				event = parse_record(raw.decode("utf-8"))
			except (RecordParseError, UnicodeDecodeError) as exc:
				self.dropped += 1
				logger.warning("Dropping unparsable record: %s", exc)
				continue
			if event is not None:
				events.append(event)
		return events


def iter_events(chunks: Iterable[bytes]) -> Iterator[NormalizedEvent]:
	"""Lazily yield events from byte chunks, stopping after the first terminal event."""
	consumer = StreamConsumer()
	for chunk in chunks:
		for event in consumer.feed(chunk):
			yield event
			if is_terminal(event):
				return
	for event in consumer.flush():
		yield event
		if is_terminal(event):
			return


async def aiter_events(chunks: AsyncIterable[bytes]) -> AsyncIterator[NormalizedEvent]:
	consumer = StreamConsumer()
	async for chunk in chunks:
		for event in consumer.feed(chunk):
			yield event
			if is_terminal(event):
				return
	for event in consumer.flush():
		yield event
		if is_terminal(event):
			return


def consume(section: Section, chunks: Iterable[bytes]) -> Optional[NormalizedEvent]:
	"""Apply a whole byte stream to ``section``. Returns the terminal event, if one arrived."""
	for event in iter_events(chunks):
		if section.apply(event):
			return event
	return None


async def aconsume(section: Section, chunks: AsyncIterable[bytes]) -> Optional[NormalizedEvent]:
	async for event in aiter_events(chunks):
		if section.apply(event):
			return event
	return None
