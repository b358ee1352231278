import time
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from carebridge.core.logger import get_logger

logger = get_logger("http")

class LogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                f"Method: {request.method} | "
                f"Path: {request.url.path} | "
                f"Unhandled error after {time.perf_counter() - start_time:.4f}s"
            )
            raise

        process_time = time.perf_counter() - start_time

        message = (
            f"Method: {request.method} | "
            f"Path: {request.url.path} | "
            f"Status: {response.status_code} | "
            f"Duration: {process_time:.4f}s"
        )
        if response.status_code >= 500:
            logger.error(message)
        elif response.status_code >= 400:
            logger.warning(message)
        else:
            logger.info(message)

        return response
