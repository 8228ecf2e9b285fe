from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.trustedhost import TrustedHostMiddleware

from gateway.backend import constants, settings
from gateway.backend.errors import evidence_from
from gateway.backend.logging_config import setup_logging
from gateway.backend.middleware import RequestContextMiddleware
from gateway.backend.response import error_response
from gateway.backend.routers import chat, health
from gateway.backend.services import admission_service, registry_service
from gateway.protocol.framing import REQUEST_ID_HEADER

logger = logging.getLogger(__name__)


async def _sweep_admission_windows() -> None:
	while True:
		await asyncio.sleep(settings.sweep_interval())
		admission_service.sweep()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
	setup_logging(level=settings.log_level(), use_json=settings.log_json())
	sweeper = asyncio.create_task(_sweep_admission_windows())
	try:
		yield
	finally:
		cancelled = registry_service.registry().cancel_all()
		if cancelled:
			logger.info("Cancelled %d in-flight requests on shutdown", cancelled)
		sweeper.cancel()
		await asyncio.gather(sweeper, return_exceptions=True)


def create_app() -> FastAPI:
	app = FastAPI(
		title=constants.APP_NAME,
		version=constants.APP_VERSION,
		lifespan=lifespan,
	)
	_register_middleware(app)
	_register_handlers(app)
	_register_routers(app)
	return app


def _register_middleware(app: FastAPI) -> None:
	app.add_middleware(RequestContextMiddleware)
	app.add_middleware(
		CORSMiddleware,
		allow_origins=constants.DEFAULT_CORS_ALLOW_ORIGINS,
		allow_credentials=True,
		allow_methods=["*"],
		allow_headers=["*"],
		expose_headers=[REQUEST_ID_HEADER],
	)
	app.add_middleware(
		TrustedHostMiddleware,
		allowed_hosts=constants.DEFAULT_TRUSTED_HOSTS,
	)


def _register_routers(app: FastAPI) -> None:
	app.include_router(chat.router)
	app.include_router(health.router)


def _register_handlers(app: FastAPI) -> None:
	# Covers FastAPI's HTTPException too. Routers pass service errors as a dict detail.
	@app.exception_handler(StarletteHTTPException)
	async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
		detail = exc.detail if isinstance(exc.detail, dict) else {}
		evidence = detail.get("evidence")
		payload = error_response(
			code=_detail_text(detail, "code") or f"http_{exc.status_code}",
			message=_detail_text(detail, "message") or _exc_message(exc.detail),
			request=request,
			evidence=[str(item) for item in evidence] if isinstance(evidence, list) else None,
			advice=_detail_text(detail, "advice"),
		)
		return JSONResponse(status_code=exc.status_code, content=payload, headers=exc.headers)

	@app.exception_handler(RequestValidationError)
	async def handle_request_validation_error(
		request: Request,
		exc: RequestValidationError,
	) -> JSONResponse:
		payload = error_response(
			code="validation_failed",
			message="Request validation failed.",
			request=request,
			evidence=evidence_from(exc.errors()),
		)
		return JSONResponse(status_code=400, content=payload)

	@app.exception_handler(Exception)
	async def handle_unexpected_exception(request: Request, exc: Exception) -> JSONResponse:
		logger.exception("Unhandled error on %s", request.url.path)
		payload = error_response(
			code="internal_error",
			message="Internal server error.",
			request=request,
		)
		return JSONResponse(status_code=500, content=payload)


def _detail_text(detail: Dict[str, Any], key: str) -> Optional[str]:
	value = detail.get(key)
	if isinstance(value, str) and value.strip():
		return value.strip()
	return None


def _exc_message(detail: Any) -> str:
	if isinstance(detail, str):
		return detail
	if detail is None:
		return "Request failed."
	return str(detail)


app = create_app()
