from starlette.middleware.base import BaseHTTPMiddleware
from fastapi import Request
import logging
import json
import time
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

SLOW_REQUEST_SECONDS = 1.0


class LoggingMiddleware(BaseHTTPMiddleware):
	"""One structured JSON line per request"""

	async def dispatch(self, request: Request, call_next):
		start_time = time.time()

		# Bodies are never read here: uploads can be hundreds of megabytes
		response = await call_next(request)
		duration = time.time() - start_time

		log_dict = {
			"timestamp": datetime.now(timezone.utc).isoformat(),
			"level": "INFO",
			"request_id": getattr(request.state, "request_id", None),
			"method": request.method,
			"path": request.url.path,
			"query_params": dict(request.query_params),
			"content_length": request.headers.get("content-length"),
			"client_host": request.client.host if request.client else None,
			"user_agent": request.headers.get("user-agent"),
			"status_code": response.status_code,
			"duration_seconds": round(duration, 3),
		}

		if response.status_code >= 500:
			log_dict["level"] = "ERROR"
			logger.error(json.dumps(log_dict))
		elif response.status_code >= 400:
			log_dict["level"] = "WARNING"
			logger.warning(json.dumps(log_dict))
		else:
			logger.info(json.dumps(log_dict))

		if duration > SLOW_REQUEST_SECONDS:
			logger.warning(f"Slow request detected: {request.method} {request.url.path} took {duration:.2f}s")

		return response
