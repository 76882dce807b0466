import time
import logging
import uuid
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger("datapusher.request")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        """Log each request with a generated id and elapsed time, echoing the id back."""
        request_id = str(uuid.uuid4())
        start_time = time.time()
        request.state.request_id = request_id
        client = request.client.host if request.client else "unknown"

        logger.info(f"[{request_id}] START {request.method} {request.url.path} from {client}")

        try:
            response = await call_next(request)
        except Exception as e:
            process_time = time.time() - start_time
            logger.error(
                f"[{request_id}] ERROR 500 in {process_time:.4f}s - {request.method} {request.url.path} (Error: {str(e)})"
            )
            raise

        process_time = time.time() - start_time
        logger.info(
            f"[{request_id}] DONE {response.status_code} in {process_time:.4f}s - {request.method} {request.url.path}"
        )

        response.headers["X-Request-ID"] = request_id

        decision = getattr(request.state, "rate_limit", None)
        if decision is not None:
            response.headers["X-RateLimit-Limit"] = str(decision.limit)
            response.headers["X-RateLimit-Remaining"] = str(decision.remaining)
        return response
