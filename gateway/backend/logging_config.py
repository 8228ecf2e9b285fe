"""Log lines for the gateway.

Every line emitted while an HTTP exchange is being served carries that
exchange's ``request_id``, so the admission, adapter and stream lines of one
chat request can be grouped. ``client_id`` and other ``extra=`` fields are
appended as-is, except credentials.
"""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar, Token
from typing import Any, Dict, Optional

HANDLER_NAME = "gateway"
REDACTED = "[REDACTED]"

_current_request_id: ContextVar[Optional[str]] = ContextVar("gateway_request_id", default=None)

_RECORD_ATTRS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime", "taskName"}
_SECRET_FIELDS = ("api_key", "authorization", "password", "secret", "token")
_SECRET_VALUE_PREFIXES = ("bearer ", "sk-")


def bind_request_id(request_id: str) -> Token:
	return _current_request_id.set(request_id)


def unbind_request_id(token: Token) -> None:
	_current_request_id.reset(token)


def current_request_id() -> Optional[str]:
	return _current_request_id.get()


class RequestContextFilter(logging.Filter):
	"""Stamps the id of the exchange being served onto each record as it is emitted."""

	def filter(self, record: logging.LogRecord) -> bool:
		if getattr(record, "request_id", None) is None:
			request_id = current_request_id()
			if request_id:
				record.request_id = request_id
		return True


def _scrub(field: str, value: Any) -> Any:
	if any(marker in field.lower() for marker in _SECRET_FIELDS):
		return REDACTED
	if isinstance(value, str) and value.lower().startswith(_SECRET_VALUE_PREFIXES):
		return REDACTED
	if isinstance(value, dict):
		return {key: _scrub(str(key), item) for key, item in value.items()}
	return value


class GatewayFormatter(logging.Formatter):
	"""One JSON object (or ``key=value`` pairs) per record."""

	def __init__(self, use_json: bool = True) -> None:
		super().__init__()
		self.use_json = use_json

	def fields(self, record: logging.LogRecord) -> Dict[str, Any]:
		fields: Dict[str, Any] = {
			"timestamp": self.formatTime(record),
			"level": record.levelname,
			"logger": record.name,
			"message": record.getMessage(),
		}
		request_id = getattr(record, "request_id", None) or current_request_id()
		if request_id:
			fields["request_id"] = request_id
		for key, value in record.__dict__.items():
			if key in _RECORD_ATTRS or key in fields:
				continue
			fields[key] = _scrub(key, value)
		if record.exc_info:
			fields["exception"] = self.formatException(record.exc_info)
		return fields

	def format(self, record: logging.LogRecord) -> str:
		fields = self.fields(record)
		if self.use_json:
			return json.dumps(fields, default=str, ensure_ascii=False)
		return " ".join(f"{key}={value!r}" for key, value in fields.items())


def setup_logging(level: str = "INFO", use_json: bool = True) -> logging.Handler:
	"""Install the gateway handler on the root logger, replacing one from an earlier startup."""
	root = logging.getLogger()
	root.setLevel(getattr(logging, level.upper(), logging.INFO))
	for existing in list(root.handlers):
		if existing.get_name() == HANDLER_NAME:
			root.removeHandler(existing)
	handler = logging.StreamHandler(sys.stdout)
	handler.set_name(HANDLER_NAME)
	handler.addFilter(RequestContextFilter())
	handler.setFormatter(GatewayFormatter(use_json=use_json))
	root.addHandler(handler)
	return handler
