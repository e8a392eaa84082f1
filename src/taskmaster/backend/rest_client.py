# src/taskmaster/backend/rest_client.py

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..core.ports import Row
from ..errors import DataError, SchemaError
from .http import ErrorBody, bearer, describe_transport_error, parse_error

logger = logging.getLogger(__name__)

REST_PREFIX = "/rest/v1"

# Postgres "undefined_table", and PostgREST's schema-cache flavour of the same thing.
MISSING_RELATION_CODES = frozenset({"42P01", "PGRST205"})


def is_missing_relation(err: ErrorBody) -> bool:
    if err.code in MISSING_RELATION_CODES:
        return True
    return "does not exist" in err.message and "relation" in err.message


class RestClient:
    """
    Row access for the todos table (/rest/v1/<table>).

    Row-level security on the backend restricts every call to the caller's rows;
    the owner filter on reads is sent anyway so the query is explicit.
    """

    def __init__(self, http: httpx.AsyncClient, *, table: str = "todos") -> None:
        self._http = http
        self._table = table

    @property
    def table(self) -> str:
        return self._table

    async def query(self, *, access_token: str, owner_id: str) -> list[Row]:
        resp = await self._request(
            "GET",
            params={"select": "*", "user_id": f"eq.{owner_id}", "order": "created_at.desc"},
            token=access_token,
        )
        data = resp.json()
        if not isinstance(data, list):
            raise DataError("Unexpected response from the storage service.")
        return [r for r in data if isinstance(r, dict)]

    async def insert(self, *, access_token: str, record: Row) -> None:
        await self._request(
            "POST",
            json=[record],
            token=access_token,
            headers={"Prefer": "return=minimal"},
        )

    async def update(self, *, access_token: str, task_id: str, fields: Row) -> None:
        await self._request(
            "PATCH",
            params={"id": f"eq.{task_id}"},
            json=fields,
            token=access_token,
            headers={"Prefer": "return=minimal"},
        )

    async def delete(self, *, access_token: str, task_id: str) -> None:
        await self._request("DELETE", params={"id": f"eq.{task_id}"}, token=access_token)

    async def probe(self, *, access_token: str | None = None) -> None:
        """Cheap `select id limit 1`, used at boot to detect a missing table."""
        await self._request("GET", params={"select": "id", "limit": "1"}, token=access_token)

    async def _request(
            self,
            method: str,
            *,
            token: str | None,
            params: dict[str, str] | None = None,
            json: Any = None,
            headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        hdrs: dict[str, str] = dict(headers or {})
        if token:
            hdrs.update(bearer(token))

        try:
            resp = await self._http.request(
                method,
                f"{REST_PREFIX}/{self._table}",
                params=params,
                json=json,
                headers=hdrs,
            )
        except httpx.HTTPError as e:
            logger.info("Storage request failed method=%s error=%s", method, e.__class__.__name__)
            raise DataError(describe_transport_error(e)) from e

        if resp.status_code >= 400:
            err = parse_error(resp)
            if is_missing_relation(err):
                raise SchemaError(
                    f"The '{self._table}' table does not exist in your backend project.",
                    relation=self._table,
                )
            logger.info("Storage rejected method=%s status=%s code=%s", method, err.status, err.code)
            raise DataError(err.message, code=err.code)

        return resp
