"""SSE framing shared by the gateway (producer) and the stream consumer.

Every normalized event becomes one ``data: <json>\\n\\n`` record. The terminal
``End`` event is an empty content delta, identical for both upstream variants.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

from gateway.protocol.events import (
	END,
	ContentDelta,
	EndEvent,
	ErrorEvent,
	NormalizedEvent,
	ReasoningDelta,
)


DATA_PREFIX = "data:"
RECORD_SEPARATOR = b"\n\n"
REQUEST_ID_HEADER = "X-Gateway-Request-ID"
_ROLE = "assistant"


class RecordParseError(ValueError):
	"""A single record could not be decoded. Callers skip it and continue."""


def _delta_payload(**delta: str) -> Dict[str, Any]:
	return {"choices": [{"delta": {**delta, "role": _ROLE}}]}


def payload_for(event: NormalizedEvent) -> Dict[str, Any]:
	if isinstance(event, ContentDelta):
		return _delta_payload(content=event.text)
	if isinstance(event, ReasoningDelta):
		return _delta_payload(reasoning_content=event.text)
	if isinstance(event, ErrorEvent):
		return {"error": event.message}
	if isinstance(event, EndEvent):
		return _delta_payload(content="")
	raise TypeError(f"Unsupported event type: {type(event).__name__}")


def frame(event: NormalizedEvent) -> bytes:
	payload = json.dumps(payload_for(event), ensure_ascii=False)
	return f"{DATA_PREFIX} {payload}".encode("utf-8") + RECORD_SEPARATOR


def parse_record(line: str) -> Optional[NormalizedEvent]:
	"""Decode one record line.

	Returns ``None`` for lines that carry no event (blank lines, SSE comments,
	role-only deltas). Raises ``RecordParseError`` for anything malformed.
	"""
	text = line.strip()
	if not text or text.startswith(":"):
		return None
	if text.startswith(DATA_PREFIX):
		text = text[len(DATA_PREFIX) :].strip()
	try:
		payload = json.loads(text)
	except json.JSONDecodeError as exc:
		raise RecordParseError(f"Invalid JSON record: {exc.msg}") from exc
	if not isinstance(payload, dict):
		raise RecordParseError("Record payload must be a JSON object.")

	error = payload.get("error")
	if isinstance(error, str) and error:
		return ErrorEvent(message=error)
	if isinstance(error, dict) and error.get("message"):
		return ErrorEvent(message=str(error["message"]))

	choices = payload.get("choices")
	if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
		raise RecordParseError("Record has no choices.")
	delta = choices[0].get("delta")
	if not isinstance(delta, dict):
		raise RecordParseError("Record choice has no delta.")

	reasoning = delta.get("reasoning_content")
	if isinstance(reasoning, str) and reasoning:
		return ReasoningDelta(text=reasoning)
	content = delta.get("content")
	if isinstance(content, str):
		return ContentDelta(text=content) if content else END
	return None
