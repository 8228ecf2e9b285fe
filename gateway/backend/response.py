"""JSON envelopes for every non-streamed reply."""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

from gateway.backend.errors import GatewayServiceError


def now_iso() -> str:
	return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _envelope(ok: bool, request: Optional[Request]) -> Dict[str, Any]:
	payload: Dict[str, Any] = {"ok": ok, "generated_at": now_iso()}
	request_id = getattr(request.state, "request_id", None) if request is not None else None
	if request_id:
		payload["request_id"] = request_id
	return payload


def success_response(
	*,
	request: Optional[Request] = None,
	data: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
	payload = _envelope(True, request)
	if data is not None:
		payload["data"] = data
	return payload


def error_response(
	*,
	code: str,
	message: str,
	request: Optional[Request] = None,
	evidence: Optional[List[str]] = None,
	advice: Optional[str] = None,
) -> Dict[str, Any]:
	error: Dict[str, Any] = {"code": code, "message": message, "evidence": evidence or []}
	if advice:
		error["advice"] = advice
	payload = _envelope(False, request)
	payload["error"] = error
	return payload


def rejection_response(
	exc: GatewayServiceError,
	*,
	request: Optional[Request] = None,
	retry_after: Optional[float] = None,
) -> JSONResponse:
	"""Reply for a request turned away before any work started; carries ``Retry-After`` when known."""
	headers = {"Retry-After": str(max(1, math.ceil(retry_after)))} if retry_after else None
	return JSONResponse(
		status_code=exc.status_code,
		content=error_response(
			code=exc.code,
			message=exc.message,
			request=request,
			evidence=exc.evidence,
			advice=exc.advice,
		),
		headers=headers,
	)
