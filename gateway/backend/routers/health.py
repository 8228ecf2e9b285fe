from __future__ import annotations

from fastapi import APIRouter, Request

from gateway.backend.response import success_response
from gateway.backend.schemas import ApiEnvelope, HealthData
from gateway.backend.services import health_service


router = APIRouter(prefix="/api/health", tags=["health"])


@router.get("/summary", response_model=ApiEnvelope)
def get_summary(request: Request):
	data = HealthData.model_validate(health_service.get_summary())
	return success_response(
		request=request,
		data=data.model_dump(),
	)
