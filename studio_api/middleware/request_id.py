from starlette.middleware.base import BaseHTTPMiddleware
from fastapi import Request
import uuid
import logging

logger = logging.getLogger(__name__)

MAX_REQUEST_ID_LENGTH = 128


class RequestIDMiddleware(BaseHTTPMiddleware):
	"""Propagate the caller's X-Request-ID or mint one"""

	async def dispatch(self, request: Request, call_next):
		request_id = request.headers.get("X-Request-ID", "")[:MAX_REQUEST_ID_LENGTH]
		if not request_id:
			request_id = str(uuid.uuid4())

		request.state.request_id = request_id
		response = await call_next(request)

		response.headers["X-Request-ID"] = request_id
		logger.debug(f"{request.method} {request.url.path} [{request_id}] -> {response.status_code}")
		return response
