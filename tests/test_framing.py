import json
from unittest import TestCase

from gateway.protocol.events import END, ContentDelta, EndEvent, ErrorEvent, ReasoningDelta, is_terminal
from gateway.protocol.framing import RecordParseError, frame, parse_record


def _payload(record: bytes) -> dict:
	text = record.decode("utf-8")
	assert text.startswith("data: ") and text.endswith("\n\n")
	return json.loads(text[len("data: ") : -2])


class FrameTests(TestCase):
	def test_content_delta_payload(self) -> None:
		payload = _payload(frame(ContentDelta(text="Olá")))
		self.assertEqual(payload, {"choices": [{"delta": {"content": "Olá", "role": "assistant"}}]})

	def test_reasoning_delta_payload(self) -> None:
		payload = _payload(frame(ReasoningDelta(text="hmm")))
		self.assertEqual(payload["choices"][0]["delta"]["reasoning_content"], "hmm")
		self.assertNotIn("content", payload["choices"][0]["delta"])

	def test_error_payload_omits_internal_code(self) -> None:
		payload = _payload(frame(ErrorEvent(message="Chunk timeout", code="chunk_timeout")))
		self.assertEqual(payload, {"error": "Chunk timeout"})

	def test_end_is_an_empty_content_delta(self) -> None:
		payload = _payload(frame(END))
		self.assertEqual(payload["choices"][0]["delta"]["content"], "")

	def test_every_record_is_single_line(self) -> None:
		record = frame(ContentDelta(text="line one\nline two"))
		self.assertEqual(record.count(b"\n"), 2)
		self.assertTrue(record.endswith(b"\n\n"))


class ParseRecordTests(TestCase):
	def test_parses_each_event_kind(self) -> None:
		for event in (ContentDelta(text="a"), ReasoningDelta(text="b"), ErrorEvent(message="c"), END):
			line = frame(event).decode("utf-8").strip()
			parsed = parse_record(line)
			self.assertEqual(type(parsed), type(event))

	def test_accepts_bare_json_lines(self) -> None:
		parsed = parse_record('{"choices":[{"delta":{"content":"x"}}]}')
		self.assertEqual(parsed, ContentDelta(text="x"))

	def test_reasoning_wins_over_content_in_one_delta(self) -> None:
		parsed = parse_record('data: {"choices":[{"delta":{"reasoning_content":"r","content":"c"}}]}')
		self.assertEqual(parsed, ReasoningDelta(text="r"))

	def test_blank_comment_and_role_only_lines_carry_no_event(self) -> None:
		self.assertIsNone(parse_record(""))
		self.assertIsNone(parse_record(": keep-alive"))
		self.assertIsNone(parse_record('data: {"choices":[{"delta":{"role":"assistant"}}]}'))

	def test_malformed_records_raise(self) -> None:
		for line in ("data: {not json", "data: [1, 2]", 'data: {"choices": []}', 'data: {"choices":[{"x":1}]}'):
			with self.assertRaises(RecordParseError):
				parse_record(line)

	def test_terminal_classification(self) -> None:
		self.assertTrue(is_terminal(END))
		self.assertTrue(is_terminal(ErrorEvent(message="boom")))
		self.assertFalse(is_terminal(ContentDelta(text="")))
		self.assertIsInstance(parse_record(frame(END).decode("utf-8")), EndEvent)

	def test_null_or_empty_error_field_is_not_an_error(self) -> None:
		parsed = parse_record('data: {"error": null, "choices":[{"delta":{"content":"ok"}}]}')
		self.assertEqual(parsed, ContentDelta(text="ok"))
		for line in ('data: {"error": null}', 'data: {"error": ""}'):
			with self.assertRaises(RecordParseError):
				parse_record(line)

	def test_error_object_uses_its_message(self) -> None:
		parsed = parse_record('data: {"error": {"message": "overloaded", "type": "server_error"}}')
		self.assertEqual(parsed, ErrorEvent(message="overloaded"))
