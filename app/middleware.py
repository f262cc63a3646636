import logging
import time
from contextvars import ContextVar

from sqlalchemy import event
from starlette.datastructures import Headers
from starlette.types import ASGIApp, Receive, Scope, Send

from app.permissions import Principal, Role

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Per-request context variable
# ---------------------------------------------------------------------------

query_count_var: ContextVar[int] = ContextVar("query_count", default=0)


def install_query_counter(engine) -> None:
    """
    Register a ``before_cursor_execute`` listener on *engine* that
    increments the per-request ``query_count_var`` for every SQL statement,
    including the ones issued by ``selectinload``.

    Must be called once per engine (production engine in ``database.py``,
    test engine in ``conftest.py``).
    """
    sync_engine = engine.sync_engine

    @event.listens_for(sync_engine, "before_cursor_execute")
    def _count_query(conn, cursor, statement, parameters, context, executemany):
        query_count_var.set(query_count_var.get() + 1)


# ---------------------------------------------------------------------------
# Middleware (pure ASGI; avoids BaseHTTPMiddleware ContextVar isolation)
# ---------------------------------------------------------------------------

class TimingMiddleware:
    """
    Adds ``X-Response-Time-Ms`` and ``X-Query-Count`` to every HTTP
    response and logs one line per request at DEBUG.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        query_count_var.set(0)
        start = time.perf_counter()

        async def send_wrapper(message):
            if message["type"] == "http.response.start":
                duration_ms = round((time.perf_counter() - start) * 1000, 2)
                queries = query_count_var.get()
                headers = list(message.get("headers", []))
                headers.append((b"x-response-time-ms", str(duration_ms).encode()))
                headers.append((b"x-query-count", str(queries).encode()))
                message["headers"] = headers
                logger.debug(
                    "%s %s -> %s in %sms (%d queries)",
                    scope["method"], scope["path"], message["status"], duration_ms, queries,
                )
            await send(message)

        await self.app(scope, receive, send_wrapper)


PRINCIPAL_ID_HEADER = "x-principal-id"
PRINCIPAL_ROLE_HEADER = "x-principal-role"
SESSION_ID_HEADER = "x-session-id"


class PrincipalMiddleware:
    """
    Turns the identity headers forwarded by the auth gateway into a
    ``Principal`` on ``request.state.principal`` (``None`` when anonymous).

    Token verification happens upstream; this service trusts the gateway.
    Revocation is checked later by the ``get_principal`` dependency since
    it needs the cache.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http":
            headers = Headers(scope=scope)
            principal_id = headers.get(PRINCIPAL_ID_HEADER)
            principal = None
            if principal_id:
                principal = Principal(
                    id=principal_id.strip(),
                    role=Role.parse(headers.get(PRINCIPAL_ROLE_HEADER)),
                    session_id=headers.get(SESSION_ID_HEADER),
                )
            scope.setdefault("state", {})["principal"] = principal
        await self.app(scope, receive, send)
