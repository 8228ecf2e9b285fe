from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional


class GatewayServiceError(Exception):
	def __init__(
		self,
		*,
		status_code: int,
		code: str,
		message: str,
		advice: Optional[str] = None,
		evidence: Optional[List[str]] = None,
	):
		super().__init__(message)
		self.status_code = status_code
		self.code = code
		self.message = message
		self.advice = advice
		self.evidence = evidence or []


class AdmissionRejected(GatewayServiceError):
	def __init__(self, client_id: str):
		super().__init__(
			status_code=429,
			code="rate_limited",
			message="Rate limit exceeded. Please try again later.",
		)
		self.client_id = client_id


class ValidationFailed(GatewayServiceError):
	def __init__(self, message: str, *, evidence: Optional[List[str]] = None):
		super().__init__(
			status_code=400,
			code="validation_failed",
			message=message,
			evidence=evidence,
		)


class UpstreamUnavailable(GatewayServiceError):
	def __init__(self, message: str, *, advice: Optional[str] = None):
		super().__init__(
			status_code=500,
			code="upstream_unavailable",
			message=message,
			advice=advice,
		)


class ChunkTimeout(Exception):
	"""No upstream data arrived within the per-chunk deadline."""


class ConsumerDisconnect(Exception):
	"""The request was cancelled by its consumer or through the registry."""


def evidence_from(issues: Iterable[Dict[str, Any]]) -> List[str]:
	"""Flatten pydantic validation issues into ``"loc: msg"`` strings."""
	evidence = []
	for issue in issues:
		loc = ".".join(str(part) for part in issue.get("loc", []))
		msg = issue.get("msg", "Invalid request.")
		evidence.append(f"{loc}: {msg}" if loc else msg)
	return evidence
