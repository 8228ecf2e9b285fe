from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class ApiError(BaseModel):
	model_config = ConfigDict(extra="forbid")

	code: str
	message: str
	evidence: List[str] = Field(default_factory=list)
	advice: Optional[str] = None


class ApiEnvelope(BaseModel):
	model_config = ConfigDict(extra="allow")

	ok: bool
	generated_at: str
	request_id: Optional[str] = None
	data: Optional[Dict[str, Any]] = None
	error: Optional[ApiError] = None


class ChatMessage(BaseModel):
	model_config = ConfigDict(extra="ignore")

	role: Literal["system", "user", "assistant"]
	content: str


class ModelParams(BaseModel):
	"""Recognized sampling options. Values pass through to the backend untouched."""

	model_config = ConfigDict(extra="forbid", populate_by_name=True)

	temperature: float = Field(default=0.7, ge=0.0, le=2.0)
	max_tokens: int = Field(default=1000, ge=1, alias="maxTokens")
	context_window: int = Field(default=2048, ge=1, alias="contextWindow")
	top_k: int = Field(default=40, ge=0, alias="topK")
	top_p: float = Field(default=0.9, gt=0.0, le=1.0, alias="topP")
	repeat_penalty: float = Field(default=1.1, gt=0.0, alias="repeatPenalty")


class ChatRequest(BaseModel):
	model_config = ConfigDict(extra="forbid", populate_by_name=True)

	messages: List[ChatMessage] = Field(..., min_length=1)
	model_params: ModelParams = Field(default_factory=ModelParams, alias="modelParams")


class HealthData(BaseModel):
	model_config = ConfigDict(extra="forbid")

	status: Literal["ok", "degraded"]
	upstream_mode: Optional[Literal["stream", "batch"]] = None
	in_flight: int = 0
	tracked_clients: int = 0
	warnings: List[str] = Field(default_factory=list)
