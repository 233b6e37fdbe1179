"""
Middleware that attaches a server-side session to every request.

Reads the session cookie, loads the stored data into
``request.state.session`` and, after the handler runs, persists it if it
changed or destroys it if the handler called ``invalidate()``. A cookie is
only issued once the session holds data.

Exception handlers registered on the app do not see errors raised here, so
an unreachable session store is answered with a 503 directly.
"""

from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from core.cache import StoreUnavailableError
from core.sessions import SessionData, SessionStore, get_session_store

from ..config import get_settings
from ..error_handlers import store_unavailable_response


class SessionMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, store: SessionStore | None = None):
        super().__init__(app)
        self.settings = get_settings()
        self._store = store

    @property
    def store(self) -> SessionStore:
        return self._store or get_session_store()

    async def dispatch(self, request: Request, call_next) -> Response:
        session_id = request.cookies.get(self.settings.session_cookie_name)

        try:
            stored = await run_in_threadpool(self.store.load, session_id) if session_id else None
        except StoreUnavailableError:
            return store_unavailable_response(request.url.path)
        if stored is None:
            # Unknown or expired id: never adopt a client-chosen id
            session_id = None
        session = SessionData(stored or {}, session_id=session_id)
        request.state.session = session

        response = await call_next(request)

        try:
            await self._persist(session, response)
        except StoreUnavailableError:
            # The handler's session change was lost; don't report success
            return store_unavailable_response(request.url.path)
        return response

    async def _persist(self, session: SessionData, response: Response) -> None:
        cookie_name = self.settings.session_cookie_name
        if session.destroyed or (session.modified and not session):
            if session.session_id:
                await run_in_threadpool(self.store.destroy, session.session_id)
            response.delete_cookie(cookie_name, path="/")
        elif session.modified:
            session_id = session.session_id or self.store.new_session_id()
            await run_in_threadpool(self.store.save, session_id, dict(session))
            response.set_cookie(
                key=cookie_name,
                value=session_id,
                max_age=self.store.max_age,
                httponly=True,
                secure=self.settings.is_production,
                samesite="lax",
                path="/",
            )
