import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

TRACE_HEADER = "X-Trace-ID"
MAX_TRACE_ID_LENGTH = 128


def resolve_trace_id(incoming: str | None) -> str:
    candidate = (incoming or "").strip()
    if not candidate or len(candidate) > MAX_TRACE_ID_LENGTH:
        return str(uuid.uuid4())
    return candidate


class TraceIdMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, header_name: str = TRACE_HEADER):
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next):
        trace_id = resolve_trace_id(request.headers.get(self.header_name))
        request.state.trace_id = trace_id
        response: Response = await call_next(request)
        response.headers[self.header_name] = trace_id
        return response
