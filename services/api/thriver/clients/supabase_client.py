"""
Supabase client - the managed backend behind every feed and reaction call.

Talks plain HTTP to three Supabase surfaces:
  PostgREST  /rest/v1/<table>        row selects / inserts / updates / deletes / upserts
             /rest/v1/rpc/<fn>       stored procedures (ranked feeds, stats, finalize)
  Auth       /auth/v1/user           access token → user
  Storage    /storage/v1/object      video uploads; public URLs are built locally (media.py)

Row-level security is enforced by the backend, so every call is made with the
viewer's access token when one is available (anon key otherwise).

Any transport failure, non-2xx response or unparseable body is raised as
BackendError; callers decide whether to degrade or surface it.
"""
import logging
from typing import Any, Optional
from urllib.parse import quote

import httpx

from thriver.config import settings
from thriver.telemetry import BACKEND_ERRORS_TOTAL

logger = logging.getLogger(__name__)


class BackendError(Exception):
    """A failed call to the managed backend."""

    def __init__(
        self,
        operation: str,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
    ) -> None:
        super().__init__(f"{operation}: {message}")
        self.operation = operation
        self.message = message
        self.status_code = status_code
        # Postgres SQLSTATE from PostgREST, e.g. "23505" for a unique violation
        self.code = code


def in_filter(values: list[str]) -> str:
    """PostgREST `in` filter, values double-quoted so commas are safe."""
    quoted = ",".join('"' + v.replace('"', '\\"') + '"' for v in values)
    return f"in.({quoted})"


def eq(value: Any) -> str:
    if isinstance(value, bool):
        value = "true" if value else "false"
    return f"eq.{value}"


class SupabaseClient:
    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self._transport = transport
        self._http: Optional[httpx.AsyncClient] = None

    async def start(self) -> None:
        self._http = httpx.AsyncClient(
            base_url=settings.supabase_url.rstrip("/"),
            timeout=settings.supabase_timeout,
            transport=self._transport,
        )

    async def stop(self) -> None:
        if self._http:
            await self._http.aclose()
            self._http = None

    @property
    def http(self) -> httpx.AsyncClient:
        if self._http is None:
            raise RuntimeError("Supabase client not initialised - call start() at startup")
        return self._http

    def _headers(self, token: Optional[str], **extra: str) -> dict[str, str]:
        headers = {
            "apikey": settings.supabase_anon_key,
            "Authorization": f"Bearer {token or settings.supabase_anon_key}",
        }
        headers.update(extra)
        return headers

    async def _request(
        self,
        operation: str,
        method: str,
        url: str,
        token: Optional[str] = None,
        params: Optional[dict[str, str]] = None,
        json: Any = None,
        headers: Optional[dict[str, str]] = None,
        content: Optional[bytes] = None,
    ) -> httpx.Response:
        try:
            resp = await self.http.request(
                method,
                url,
                params=params,
                json=json,
                content=content,
                headers=self._headers(token, **(headers or {})),
            )
        except httpx.HTTPError as exc:
            BACKEND_ERRORS_TOTAL.labels(operation=operation).inc()
            raise BackendError(operation, str(exc)) from exc

        if resp.is_error:
            BACKEND_ERRORS_TOTAL.labels(operation=operation).inc()
            raise BackendError(
                operation, _error_message(resp), resp.status_code, _error_code(resp)
            )
        return resp

    # ── PostgREST ─────────────────────────────────────────────────────────

    async def rpc(self, fn: str, params: dict[str, Any], token: Optional[str] = None) -> Any:
        operation = f"rpc:{fn}"
        resp = await self._request(operation, "POST", f"/rest/v1/rpc/{fn}", token, json=params)
        if not resp.content:
            return None
        return _json(resp, operation)

    async def select(
        self,
        table: str,
        columns: str,
        filters: Optional[dict[str, str]] = None,
        token: Optional[str] = None,
        order: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[dict]:
        operation = f"select:{table}"
        params = {"select": columns, **(filters or {})}
        if order:
            params["order"] = order
        if limit is not None:
            params["limit"] = str(limit)
        resp = await self._request(operation, "GET", f"/rest/v1/{table}", token, params=params)
        rows = _json(resp, operation)
        if not isinstance(rows, list):
            BACKEND_ERRORS_TOTAL.labels(operation=operation).inc()
            raise BackendError(operation, "expected a JSON array of rows", resp.status_code)
        return rows

    async def select_one(
        self,
        table: str,
        columns: str,
        filters: dict[str, str],
        token: Optional[str] = None,
    ) -> Optional[dict]:
        rows = await self.select(table, columns, filters, token, limit=1)
        return rows[0] if rows else None

    async def count(
        self,
        table: str,
        filters: dict[str, str],
        token: Optional[str] = None,
    ) -> int:
        """Exact row count via HEAD + Content-Range (`0-9/42` or `*/0`)."""
        resp = await self._request(
            f"count:{table}",
            "HEAD",
            f"/rest/v1/{table}",
            token,
            params={"select": "*", **filters},
            headers={"Prefer": "count=exact"},
        )
        content_range = resp.headers.get("content-range", "")
        _, _, total = content_range.partition("/")
        try:
            return int(total)
        except ValueError:
            return 0

    async def insert(
        self,
        table: str,
        row: dict[str, Any],
        token: Optional[str] = None,
        returning: Optional[str] = None,
    ) -> Optional[dict]:
        """
        Insert one row. With `returning` (a column list) the created row is
        read back in the same round trip; otherwise nothing is returned.
        """
        operation = f"insert:{table}"
        if returning is None:
            await self._request(
                operation,
                "POST",
                f"/rest/v1/{table}",
                token,
                json=row,
                headers={"Prefer": "return=minimal"},
            )
            return None

        resp = await self._request(
            operation,
            "POST",
            f"/rest/v1/{table}",
            token,
            params={"select": returning},
            json=row,
            headers={"Prefer": "return=representation"},
        )
        created = _json(resp, operation)
        if isinstance(created, list):
            created = created[0] if created else None
        if not isinstance(created, dict):
            BACKEND_ERRORS_TOTAL.labels(operation=operation).inc()
            raise BackendError(operation, "insert returned no row", resp.status_code)
        return created

    async def update(
        self,
        table: str,
        values: dict[str, Any],
        filters: dict[str, str],
        token: Optional[str] = None,
    ) -> None:
        await self._request(
            f"update:{table}",
            "PATCH",
            f"/rest/v1/{table}",
            token,
            params=filters,
            json=values,
            headers={"Prefer": "return=minimal"},
        )

    async def upsert(
        self,
        table: str,
        row: dict[str, Any],
        on_conflict: str,
        token: Optional[str] = None,
    ) -> None:
        await self._request(
            f"upsert:{table}",
            "POST",
            f"/rest/v1/{table}",
            token,
            params={"on_conflict": on_conflict},
            json=row,
            headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
        )

    async def delete(self, table: str, filters: dict[str, str], token: Optional[str] = None) -> None:
        await self._request(f"delete:{table}", "DELETE", f"/rest/v1/{table}", token, params=filters)

    # ── Storage ───────────────────────────────────────────────────────────

    async def upload(
        self,
        bucket: str,
        path: str,
        data: bytes,
        content_type: str,
        token: Optional[str] = None,
    ) -> None:
        """Write one object, replacing any object already at `path`."""
        await self._request(
            f"upload:{bucket}",
            "POST",
            f"/storage/v1/object/{bucket}/{quote(path, safe='/')}",
            token,
            content=data,
            headers={"Content-Type": content_type, "x-upsert": "true"},
        )

    # ── Auth ──────────────────────────────────────────────────────────────

    async def get_user(self, token: str) -> dict:
        resp = await self._request("auth:user", "GET", "/auth/v1/user", token)
        return _json(resp, "auth:user")


def _json(resp: httpx.Response, operation: str) -> Any:
    """Decode a 2xx body; a gateway page or truncated body becomes BackendError."""
    try:
        return resp.json()
    except ValueError as exc:
        BACKEND_ERRORS_TOTAL.labels(operation=operation).inc()
        logger.warning("Non-JSON body from %s (HTTP %d)", operation, resp.status_code)
        raise BackendError(operation, "invalid JSON in backend response", resp.status_code) from exc


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text or resp.reason_phrase
    if isinstance(body, dict):
        return str(body.get("message") or body.get("msg") or body.get("error") or body)
    return str(body)


def _error_code(resp: httpx.Response) -> Optional[str]:
    try:
        body = resp.json()
    except ValueError:
        return None
    if isinstance(body, dict) and body.get("code") is not None:
        return str(body["code"])
    return None


# Singleton - started/stopped in app lifespan (main.py)
supabase = SupabaseClient()
