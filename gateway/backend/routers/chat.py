from __future__ import annotations

import json
import logging

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from gateway.backend.errors import AdmissionRejected, GatewayServiceError
from gateway.backend.response import rejection_response, success_response
from gateway.backend.schemas import ApiEnvelope
from gateway.backend.services import admission_service, chat_service, registry_service
from gateway.protocol.framing import REQUEST_ID_HEADER


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/chat", tags=["chat"])


def _client_id_from_request(request: Request) -> str:
	peer = request.client.host if request.client else None
	return chat_service.client_id_from(request.headers.get("X-Forwarded-For"), peer)


def _http_error(exc: GatewayServiceError) -> HTTPException:
	return HTTPException(
		status_code=exc.status_code,
		detail={
			"code": exc.code,
			"message": exc.message,
			"evidence": exc.evidence,
			"advice": exc.advice,
		},
	)


@router.post("")
async def chat(request: Request):
	client_id = _client_id_from_request(request)
	if not admission_service.allow(client_id):
		return rejection_response(
			AdmissionRejected(client_id),
			request=request,
			retry_after=admission_service.limiter().window,
		)

	try:
		raw = await request.json()
	except (json.JSONDecodeError, UnicodeDecodeError):
		raw = None

	try:
		payload = chat_service.validate_request(raw)
		stream = await chat_service.open_stream(payload)
	except GatewayServiceError as exc:
		raise _http_error(exc) from exc

	logger.info(
		"Streaming %s to client %s",
		stream.request_id,
		client_id,
		extra={"client_id": client_id, "stream_id": stream.request_id},
	)
	return StreamingResponse(
		stream.frames(),
		media_type="text/event-stream",
		headers={
			"Cache-Control": "no-cache",
			"Connection": "keep-alive",
			"X-Accel-Buffering": "no",
			REQUEST_ID_HEADER: stream.request_id,
		},
		background=BackgroundTask(stream.aclose),
	)


@router.delete("/{request_id}", response_model=ApiEnvelope)
async def cancel(request: Request, request_id: str):
	if not registry_service.registry().cancel(request_id):
		raise HTTPException(
			status_code=404,
			detail={"code": "request_not_found", "message": f"No in-flight request '{request_id}'."},
		)
	return success_response(request=request, data={"request_id": request_id, "cancelled": True})
