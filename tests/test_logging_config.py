import json
import logging
from unittest import TestCase

from fastapi.testclient import TestClient

from gateway.backend.logging_config import (
	HANDLER_NAME,
	REDACTED,
	GatewayFormatter,
	RequestContextFilter,
	bind_request_id,
	current_request_id,
	setup_logging,
	unbind_request_id,
)
from gateway.backend.main import app
from gateway.backend.services import admission_service


def _record(msg: str, **extra) -> logging.LogRecord:
	record = logging.LogRecord("gateway.test", logging.INFO, __file__, 1, msg, (), None)
	for key, value in extra.items():
		setattr(record, key, value)
	return record


class _Capture(logging.Handler):
	def __init__(self) -> None:
		super().__init__(level=logging.DEBUG)
		self.records = []

	def emit(self, record: logging.LogRecord) -> None:
		self.records.append(record)


class GatewayFormatterTests(TestCase):
	def test_json_line_carries_client_id_extra(self) -> None:
		line = GatewayFormatter(use_json=True).format(_record("rejected", client_id="203.0.113.7"))
		payload = json.loads(line)
		self.assertEqual(payload["message"], "rejected")
		self.assertEqual(payload["level"], "INFO")
		self.assertEqual(payload["client_id"], "203.0.113.7")
		self.assertNotIn("request_id", payload)

	def test_bound_request_id_is_attached(self) -> None:
		token = bind_request_id("req-42")
		try:
			payload = json.loads(GatewayFormatter().format(_record("inside")))
		finally:
			unbind_request_id(token)
		self.assertEqual(payload["request_id"], "req-42")
		self.assertIsNone(current_request_id())

	def test_explicit_request_id_extra_wins(self) -> None:
		token = bind_request_id("outer")
		try:
			payload = json.loads(GatewayFormatter().format(_record("x", request_id="inner")))
		finally:
			unbind_request_id(token)
		self.assertEqual(payload["request_id"], "inner")

	def test_credentials_are_redacted_by_field_and_value(self) -> None:
		record = _record(
			"upstream",
			api_key="abc123",
			upstream={"authorization": "xyz", "url": "http://localhost:11434"},
			header="Bearer sk-123",
		)
		payload = json.loads(GatewayFormatter().format(record))
		self.assertEqual(payload["api_key"], REDACTED)
		self.assertEqual(payload["upstream"], {"authorization": REDACTED, "url": "http://localhost:11434"})
		self.assertEqual(payload["header"], REDACTED)

	def test_key_value_mode(self) -> None:
		line = GatewayFormatter(use_json=False).format(_record("plain", client_id="c1"))
		self.assertIn("message='plain'", line)
		self.assertIn("client_id='c1'", line)


class SetupLoggingTests(TestCase):
	def setUp(self) -> None:
		root = logging.getLogger()
		previous_level = root.level
		self.addCleanup(root.setLevel, previous_level)
		self.addCleanup(self._remove_gateway_handlers)

	def _remove_gateway_handlers(self) -> None:
		root = logging.getLogger()
		for handler in list(root.handlers):
			if handler.get_name() == HANDLER_NAME:
				root.removeHandler(handler)

	def test_repeated_setup_keeps_one_handler(self) -> None:
		setup_logging(level="warning", use_json=False)
		handler = setup_logging(level="debug", use_json=True)
		root = logging.getLogger()
		self.assertEqual(root.level, logging.DEBUG)
		named = [h for h in root.handlers if h.get_name() == HANDLER_NAME]
		self.assertEqual(named, [handler])
		self.assertIsInstance(handler.formatter, GatewayFormatter)
		self.assertTrue(any(isinstance(f, RequestContextFilter) for f in handler.filters))


class RequestScopedLoggingTests(TestCase):
	def setUp(self) -> None:
		self.capture = _Capture()
		self.capture.addFilter(RequestContextFilter())
		logger = logging.getLogger("gateway")
		previous_level = logger.level
		logger.setLevel(logging.INFO)
		logger.addHandler(self.capture)
		self.addCleanup(logger.removeHandler, self.capture)
		self.addCleanup(logger.setLevel, previous_level)
		admission_service.reset(admission_service.SlidingWindowLimiter(quota=1, window=60.0))
		self.addCleanup(admission_service.reset)

	def test_admission_rejection_is_logged_with_request_and_client(self) -> None:
		client = TestClient(app)
		body = {"messages": []}
		client.post("/api/chat", json=body, headers={"X-Forwarded-For": "198.51.100.9"})
		response = client.post(
			"/api/chat",
			json=body,
			headers={"X-Forwarded-For": "198.51.100.9", "X-Request-ID": "trace-7"},
		)
		self.assertEqual(response.status_code, 429)

		rejected = [r for r in self.capture.records if r.getMessage().startswith("Admission rejected")]
		self.assertEqual(len(rejected), 1)
		payload = json.loads(GatewayFormatter().format(rejected[0]))
		self.assertEqual(payload["client_id"], "198.51.100.9")
		self.assertEqual(payload["request_id"], "trace-7")
