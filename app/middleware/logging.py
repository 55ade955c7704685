import time
import logging
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from app.core.request_context import HDR_REQUEST_ID, get_request_context, request_id_var

logger = logging.getLogger("access")

class LoggingMiddleware(BaseHTTPMiddleware):
    """Access log line per request, tagged with the calling actor and request id"""

    async def dispatch(self, request: Request, call_next):
        start_time = time.perf_counter()
        context = get_request_context(request)
        token = request_id_var.set(context["request_id"])

        try:
            logger.info(
                f"🌐 {context['endpoint']} - "
                f"Client: {context['ip_address'] or 'unknown'} - "
                f"Actor: {context['actor_id'] or 'anonymous'}"
            )

            response = await call_next(request)
            process_time = time.perf_counter() - start_time

            if response.status_code >= 400:
                logger.warning(
                    f"❌ {context['endpoint']} - Status: {response.status_code} - Time: {process_time:.4f}s"
                )
            else:
                logger.info(
                    f"✅ {context['endpoint']} - Status: {response.status_code} - Time: {process_time:.4f}s"
                )

            response.headers["X-Process-Time"] = f"{process_time:.4f}"
            response.headers[HDR_REQUEST_ID] = context["request_id"]
            return response
        finally:
            request_id_var.reset(token)
