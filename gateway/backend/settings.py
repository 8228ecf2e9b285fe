from __future__ import annotations

import os
from typing import Optional

from gateway.backend import constants
from gateway.backend.errors import GatewayServiceError


def _int_env(name: str, default: int, minimum: int = 1) -> int:
	raw = os.getenv(name, "").strip()
	if not raw:
		return default
	try:
		value = int(raw)
	except ValueError:
		return default
	return value if value >= minimum else default


def _float_env(name: str, default: float, minimum: float = 0.0) -> float:
	raw = os.getenv(name, "").strip()
	if not raw:
		return default
	try:
		value = float(raw)
	except ValueError:
		return default
	return value if value > minimum else default


def _flag_env(name: str, default: bool) -> bool:
	raw = os.getenv(name, "").strip().lower()
	if not raw:
		return default
	return raw not in {"0", "false", "off", "no"}


def upstream_mode() -> str:
	mode = os.getenv("GATEWAY_UPSTREAM_MODE", constants.DEFAULT_UPSTREAM_MODE).strip().lower()
	mode = mode or constants.DEFAULT_UPSTREAM_MODE
	if mode not in constants.UPSTREAM_MODES:
		raise GatewayServiceError(
			status_code=503,
			code="gateway_unconfigured",
			message="GATEWAY_UPSTREAM_MODE must be one of: stream, batch.",
		)
	return mode


def stream_url() -> str:
	return os.getenv("GATEWAY_STREAM_URL", "").strip() or constants.DEFAULT_STREAM_URL


def stream_model() -> str:
	return os.getenv("GATEWAY_STREAM_MODEL", "").strip() or constants.DEFAULT_STREAM_MODEL


def chunk_timeout() -> float:
	return _float_env("GATEWAY_CHUNK_TIMEOUT_S", constants.DEFAULT_CHUNK_TIMEOUT_S)


def batch_base_url() -> Optional[str]:
	return os.getenv("GATEWAY_BATCH_BASE_URL", "").strip() or None


def batch_model() -> str:
	return os.getenv("GATEWAY_BATCH_MODEL", "").strip() or constants.DEFAULT_BATCH_MODEL


def batch_api_key() -> str:
	key = os.getenv("GATEWAY_BATCH_API_KEY", "").strip() or os.getenv("OPENAI_API_KEY", "").strip()
	if key:
		return key
	raise GatewayServiceError(
		status_code=503,
		code="gateway_unconfigured",
		message="Batch backend API key not configured. Set GATEWAY_BATCH_API_KEY.",
	)


def batch_timeout() -> float:
	return _float_env("GATEWAY_BATCH_TIMEOUT_S", constants.DEFAULT_BATCH_TIMEOUT_S)


def batch_pacing_enabled() -> bool:
	return _flag_env("GATEWAY_BATCH_PACING", True)


def pacing_seed() -> Optional[int]:
	raw = os.getenv("GATEWAY_PACING_SEED", "").strip()
	if not raw:
		return None
	try:
		return int(raw)
	except ValueError:
		return None


def rate_limit() -> int:
	return _int_env("GATEWAY_RATE_LIMIT", constants.DEFAULT_RATE_LIMIT)


def rate_window() -> float:
	return _float_env("GATEWAY_RATE_WINDOW_S", constants.DEFAULT_RATE_WINDOW_S)


def sweep_interval() -> float:
	return _float_env("GATEWAY_SWEEP_INTERVAL_S", constants.DEFAULT_SWEEP_INTERVAL_S)


def max_messages() -> int:
	return _int_env("GATEWAY_MAX_MESSAGES", constants.DEFAULT_MAX_MESSAGES)


def max_content_chars() -> int:
	return _int_env("GATEWAY_MAX_CONTENT_CHARS", constants.DEFAULT_MAX_CONTENT_CHARS)


def log_level() -> str:
	return os.getenv("GATEWAY_LOG_LEVEL", "").strip().upper() or "INFO"


def log_json() -> bool:
	return _flag_env("GATEWAY_LOG_JSON", True)
