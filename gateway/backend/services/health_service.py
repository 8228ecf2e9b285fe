from __future__ import annotations

from typing import Dict, List

from gateway.backend import settings
from gateway.backend.errors import GatewayServiceError
from gateway.backend.services import admission_service, registry_service


def get_summary() -> Dict[str, object]:
	warnings: List[str] = []
	mode = None
	try:
		mode = settings.upstream_mode()
	except GatewayServiceError as exc:
		warnings.append(exc.message)
	if mode == "batch":
		try:
			settings.batch_api_key()
		except GatewayServiceError as exc:
			warnings.append(exc.message)
	return {
		"status": "degraded" if warnings else "ok",
		"upstream_mode": mode,
		"in_flight": len(registry_service.registry()),
		"tracked_clients": admission_service.limiter().tracked_clients(),
		"warnings": warnings,
	}
