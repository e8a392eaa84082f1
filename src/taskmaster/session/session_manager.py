# src/taskmaster/session/session_manager.py

"""
Session manager.

Owns the current authenticated identity and tells dependents when it changes.

Key invariants:
- identity listeners fire exactly once per transition (anonymous <-> signed in, or A -> B),
  never for an unchanged identity;
- a failed sign-in / sign-up leaves the session untouched;
- sign-out always clears local state, even if the remote call fails.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from ..core.ports import AuthBackend
from ..errors import AuthError
from ..tasks.task_models import Identity, Session
from .session_file import SessionFile

logger = logging.getLogger(__name__)

IdentityListener = Callable[[Identity | None], None]


class SessionManager:
    def __init__(self, auth: AuthBackend, *, session_file: SessionFile | None = None) -> None:
        self._auth = auth
        self._session_file = session_file
        self._session: Session | None = None
        self._listeners: list[IdentityListener] = []

    # ---- reads ----

    def current_identity(self) -> Identity | None:
        return self._session.identity if self._session is not None else None

    def access_token(self) -> str | None:
        return self._session.access_token if self._session is not None else None

    def on_identity_change(self, listener: IdentityListener) -> Callable[[], None]:
        """Register a listener; returns a callable that removes it."""
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    # ---- auth actions ----

    async def sign_in(self, email: str, password: str) -> Identity:
        email = _check_credentials(email, password)
        session = await self._auth.authenticate(email, password)
        logger.info("Signed in user_id=%s", session.identity.id)
        self._set_session(session)
        return session.identity

    async def sign_up(self, email: str, password: str) -> Identity:
        email = _check_credentials(email, password)
        session = await self._auth.register(email, password)
        if session is None:
            logger.info("Sign-up needs email confirmation email=%s", email)
            raise AuthError("Check your email to confirm your account, then sign in.")
        logger.info("Signed up user_id=%s", session.identity.id)
        self._set_session(session)
        return session.identity

    async def sign_out(self) -> None:
        session = self._session
        if session is None:
            return
        try:
            await self._auth.deauthenticate(session.access_token)
        except AuthError as e:
            # Local sign-out must still happen; the token just expires server-side.
            logger.warning("Remote sign-out failed: %s", e.message)
        logger.info("Signed out user_id=%s", session.identity.id)
        self._set_session(None)

    async def restore(self) -> Identity | None:
        """
        Pick up a persisted session from a previous run.

        Validates the stored token remotely and falls back to a refresh grant.
        Never raises: any failure leaves the session anonymous.
        """
        if self._session_file is None:
            return None
        stored = self._session_file.load()
        if stored is None:
            return None

        session: Session | None = stored
        if stored.is_expired(time.time()):
            session = None
        else:
            try:
                user = await self._auth.get_user(stored.access_token)
                session = Session(
                    identity=Identity.from_user(user),
                    access_token=stored.access_token,
                    refresh_token=stored.refresh_token,
                    expires_at=stored.expires_at,
                )
            except AuthError as e:
                logger.info("Stored session rejected: %s", e.message)
                session = None

        if session is None and stored.refresh_token:
            try:
                session = await self._auth.refresh_session(stored.refresh_token)
            except AuthError as e:
                logger.info("Session refresh failed: %s", e.message)
                session = None

        if session is None:
            self._session_file.clear()
            return None

        logger.info("Restored session user_id=%s", session.identity.id)
        self._set_session(session)
        return session.identity

    # ---- internals ----

    def _set_session(self, session: Session | None) -> None:
        before = self.current_identity()
        self._session = session

        if self._session_file is not None:
            if session is None:
                self._session_file.clear()
            else:
                self._session_file.save(session)

        after = self.current_identity()
        if before == after:
            return

        for listener in list(self._listeners):
            try:
                listener(after)
            except Exception:
                logger.exception("Identity listener failed")


def _check_credentials(email: str, password: str) -> str:
    email = (email or "").strip()
    if not email or not password:
        raise AuthError("Email and password are required.")
    return email
