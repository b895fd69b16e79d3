"""
Origin gate for the Rules Service.
"""

from typing import Iterable, Optional

from fastapi import Request
from fastapi.responses import PlainTextResponse

from shared.logging import get_logger


REJECTION_MESSAGE = "Not allowed by CORS"


class OriginGate:
    """Rejects browser requests from origins outside the allow-list.

    Requests without an Origin header (curl, server-to-server) pass. A
    rejected request never reaches a route handler. CORS response headers
    for allowed origins are left to Starlette's CORSMiddleware.
    """

    def __init__(self, allowed_origins: Iterable[str]):
        self.allowed_origins = frozenset(allowed_origins)
        self.logger = get_logger("rules.origin_gate")

    def is_allowed(self, origin: Optional[str]) -> bool:
        return not origin or origin in self.allowed_origins

    async def dispatch(self, request: Request, call_next):
        origin = request.headers.get("origin")
        if not self.is_allowed(origin):
            self.logger.warning(
                "Rejected cross-origin request",
                origin=origin,
                method=request.method,
                path=request.url.path
            )
            return PlainTextResponse(REJECTION_MESSAGE, status_code=403)
        return await call_next(request)
