"""
Client for the hosted directory service.

The service authenticates users, owns the ``workers`` and ``user_profiles``
tables and stores generated report files. It speaks a PostgREST-style REST
dialect:

  /auth/v1/user                               current user for a bearer token
  /rest/v1/<table>?id=eq.<id>                 table reads / inserts / deletes
  /storage/v1/object/<bucket>/<key>           object upload (x-upsert)
  /storage/v1/object/public/<bucket>/<key>    public object URL
  /storage/v1/object/list/<bucket>            object listing
"""

from __future__ import annotations

import logging
from urllib.parse import quote

import httpx

from worksite.core.config import settings
from worksite.schemas.worker import UserIdentity, UserProfile, Worker, WorkerCreate

logger = logging.getLogger(__name__)


class DirectoryError(Exception):
    """A call to the directory service failed; ``message`` is safe to show."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for field in ("message", "error_description", "error", "msg"):
            if body.get(field):
                return str(body[field])
    return f"Directory service returned HTTP {resp.status_code}"


class DirectoryClient:
    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        *,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.DIRECTORY_URL).rstrip("/")
        self._api_key = api_key or settings.DIRECTORY_API_KEY
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "apikey": self._api_key,
                "Authorization": f"Bearer {self._api_key}",
            },
            timeout=timeout or settings.DIRECTORY_TIMEOUT_SEC,
            follow_redirects=True,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            resp = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("Directory %s %s failed: %s", method, url, exc)
            raise DirectoryError("Directory service is unreachable") from exc

        if resp.is_error:
            message = _error_message(resp)
            logger.warning(
                "Directory %s %s -> %d: %s", method, url, resp.status_code, message
            )
            raise DirectoryError(message, status_code=resp.status_code)
        return resp

    # --- auth / profiles ---

    async def get_current_user(self, access_token: str) -> UserIdentity | None:
        """Resolve a user's bearer token; None when the token is not accepted."""
        try:
            resp = await self._request(
                "GET",
                "/auth/v1/user",
                headers={"Authorization": f"Bearer {access_token}"},
            )
        except DirectoryError as exc:
            if exc.status_code in (401, 403):
                return None
            raise

        data = resp.json()
        if not isinstance(data, dict) or not data.get("id"):
            return None
        return UserIdentity(id=str(data["id"]), email=data.get("email"))

    async def get_profile(self, user_id: str) -> UserProfile | None:
        """Profile row of a user; None when missing or the lookup fails."""
        try:
            resp = await self._request(
                "GET",
                f"/rest/v1/{settings.PROFILES_TABLE}",
                params={"id": f"eq.{user_id}", "select": "id,name,role"},
            )
        except DirectoryError as exc:
            logger.warning("Profile lookup for %s failed: %s", user_id, exc.message)
            return None

        try:
            rows = resp.json()
            if not isinstance(rows, list) or not rows:
                return None
            return UserProfile.model_validate(rows[0])
        except ValueError as exc:
            # pydantic's ValidationError is a ValueError too
            logger.warning("Profile of %s is unreadable: %s", user_id, exc)
            return None

    # --- workers ---

    async def list_workers(self) -> list[Worker]:
        resp = await self._request(
            "GET",
            f"/rest/v1/{settings.WORKERS_TABLE}",
            params={"select": "*"},
        )
        return [Worker.model_validate(row) for row in resp.json()]

    async def insert_worker(self, name: str, phone_number: str) -> Worker:
        # Raises pydantic.ValidationError before any request when a field is blank
        body = WorkerCreate(name=name, phone_number=phone_number)
        resp = await self._request(
            "POST",
            f"/rest/v1/{settings.WORKERS_TABLE}",
            json=[body.model_dump()],
            headers={"Prefer": "return=representation"},
        )
        rows = resp.json()
        if not rows:
            raise DirectoryError("Directory service did not return the new worker")
        worker = Worker.model_validate(rows[0])
        logger.info("Worker added: '%s' (id=%s)", worker.name, worker.id)
        return worker

    async def delete_worker(self, worker_id: str) -> None:
        await self._request(
            "DELETE",
            f"/rest/v1/{settings.WORKERS_TABLE}",
            params={"id": f"eq.{worker_id}"},
        )
        logger.info("Worker deleted: id=%s", worker_id)

    # --- object storage ---

    async def upload_object(
        self,
        bucket: str,
        key: str,
        data: bytes,
        content_type: str,
        *,
        overwrite: bool = False,
    ) -> None:
        await self._request(
            "POST",
            f"/storage/v1/object/{bucket}/{quote(key)}",
            content=data,
            headers={
                "Content-Type": content_type,
                "x-upsert": "true" if overwrite else "false",
            },
        )
        logger.info("Uploaded %s/%s (%d bytes)", bucket, key, len(data))

    def get_public_url(self, bucket: str, key: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{bucket}/{quote(key)}"

    async def list_objects(self, bucket: str, prefix: str, *, limit: int = 1000) -> list[str]:
        """Names of the objects directly under ``prefix`` (without the prefix)."""
        resp = await self._request(
            "POST",
            f"/storage/v1/object/list/{bucket}",
            json={
                "prefix": prefix,
                "limit": limit,
                "offset": 0,
                "sortBy": {"column": "name", "order": "desc"},
            },
        )
        return [item["name"] for item in resp.json() if item.get("name")]
