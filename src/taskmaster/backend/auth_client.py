# src/taskmaster/backend/auth_client.py

from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from typing import Any

import httpx

from ..errors import AuthError
from ..tasks.task_models import Identity, Session
from .http import bearer, describe_transport_error, parse_error

logger = logging.getLogger(__name__)

AUTH_PREFIX = "/auth/v1"


class AuthClient:
    """Email/password auth against the hosted auth service (/auth/v1)."""

    def __init__(self, http: httpx.AsyncClient) -> None:
        self._http = http

    async def authenticate(self, email: str, password: str) -> Session:
        data = await self._post(
            "/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        return _session_from_token_response(data)

    async def register(self, email: str, password: str) -> Session | None:
        data = await self._post("/signup", json={"email": email, "password": password})
        # With email confirmation on, the service returns the bare user and no tokens.
        if not data.get("access_token"):
            return None
        return _session_from_token_response(data)

    async def deauthenticate(self, access_token: str) -> None:
        await self._post("/logout", headers=bearer(access_token))

    async def get_user(self, access_token: str) -> Mapping[str, Any]:
        try:
            resp = await self._http.get(f"{AUTH_PREFIX}/user", headers=bearer(access_token))
        except httpx.HTTPError as e:
            raise AuthError(describe_transport_error(e)) from e
        if resp.status_code >= 400:
            raise AuthError(parse_error(resp).message)
        data = resp.json()
        if not isinstance(data, dict) or not data.get("id"):
            raise AuthError("Unexpected response from the auth service.")
        return data

    async def refresh_session(self, refresh_token: str) -> Session:
        data = await self._post(
            "/token",
            params={"grant_type": "refresh_token"},
            json={"refresh_token": refresh_token},
        )
        return _session_from_token_response(data)

    async def _post(
            self,
            path: str,
            *,
            params: dict[str, str] | None = None,
            json: dict[str, Any] | None = None,
            headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        try:
            resp = await self._http.post(f"{AUTH_PREFIX}{path}", params=params, json=json, headers=headers)
        except httpx.HTTPError as e:
            logger.info("Auth request failed path=%s error=%s", path, e.__class__.__name__)
            raise AuthError(describe_transport_error(e)) from e

        if resp.status_code >= 400:
            err = parse_error(resp)
            logger.info("Auth rejected path=%s status=%s code=%s", path, err.status, err.code)
            raise AuthError(err.message or "An error occurred during authentication")

        if resp.status_code == 204 or not resp.content:
            return {}
        data = resp.json()
        return data if isinstance(data, dict) else {}


def _session_from_token_response(data: Mapping[str, Any]) -> Session:
    user = data.get("user")
    token = data.get("access_token")
    if not isinstance(user, dict) or not user.get("id") or not token:
        raise AuthError("Unexpected response from the auth service.")

    expires_at: float | None = None
    if data.get("expires_at") is not None:
        expires_at = float(data["expires_at"])
    elif data.get("expires_in") is not None:
        expires_at = time.time() + float(data["expires_in"])

    return Session(
        identity=Identity.from_user(user),
        access_token=str(token),
        refresh_token=str(data["refresh_token"]) if data.get("refresh_token") else None,
        expires_at=expires_at,
    )
