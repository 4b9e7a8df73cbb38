import logging
import time

from pymongo import monitoring
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from nagarsathi.core import config

logger = logging.getLogger("performance")

_command_timings = {}

QUIET_PATHS = {"/", "/api/health", "/favicon.ico", "/robots.txt"}


class CommandLogger(monitoring.CommandListener):
    """Logs slow MongoDB commands; fast ones are skipped to keep logs quiet."""

    def started(self, event):
        _command_timings[event.request_id] = time.time()

    def succeeded(self, event):
        start_time = _command_timings.pop(event.request_id, None)
        if start_time:
            duration = (time.time() - start_time) * 1000
            if duration > 100:
                logger.warning(f"🐌 Slow MongoDB {event.command_name}: {duration:.2f} ms")
            elif duration > 50:
                logger.info(f"⚡ MongoDB {event.command_name}: {duration:.2f} ms")

    def failed(self, event):
        start_time = _command_timings.pop(event.request_id, None)
        duration = (time.time() - start_time) * 1000 if start_time else 0
        logger.error(f"❌ MongoDB {event.command_name} failed after {duration:.2f} ms")


def register_command_logger():
    monitoring.register(CommandLogger())


class TimingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        response: Response = await call_next(request)
        process_time = (time.time() - start_time) * 1000

        path = request.url.path
        should_log = path not in QUIET_PATHS and not path.startswith("/api/images/")
        if should_log:
            if config.LOG_SLOW_REQUESTS and process_time > config.SLOW_REQUEST_MS:
                logger.warning(
                    f"🐌 Slow request {request.method} {path} took {process_time:.2f} ms "
                    f"(threshold {config.SLOW_REQUEST_MS} ms)"
                )
            else:
                logger.debug(f"⏱️ Request {request.method} {path} took {process_time:.2f} ms")

        response.headers["X-Process-Time-ms"] = f"{process_time:.2f}"
        return response
