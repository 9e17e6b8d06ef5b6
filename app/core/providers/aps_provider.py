from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any
from urllib.parse import quote

import httpx

from app.config import Settings
from app.core.errors import UpstreamAuthError, UpstreamRequestError
from app.core.providers.base import (
    BaseTranslationClient,
    Bucket,
    Manifest,
    TranslationJob,
    UploadedObject,
    classify_manifest,
)

logger = logging.getLogger(__name__)

_AUTH_REJECTED = {400, 401, 403}


class APSClient(BaseTranslationClient):
    """Autodesk Platform Services client (OSS buckets + Model Derivative)."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        *,
        base_url: str = "https://developer.api.autodesk.com",
        scopes: str = "data:read data:write data:create bucket:create bucket:read",
        bucket_policy: str = "temporary",
        timeout: float = 30.0,
        http: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if not client_id or not client_secret:
            raise ValueError("APS client id and secret are required")
        self._client_id = client_id
        self._client_secret = client_secret
        self._scopes = scopes
        self._bucket_policy = bucket_policy
        self._clock = clock
        self._http = http or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self._token: str | None = None
        self._token_expires_at = 0.0
        self._token_lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> APSClient:
        return cls(
            settings.aps_client_id,
            settings.aps_client_secret,
            base_url=settings.aps_base_url,
            scopes=settings.aps_scopes,
            bucket_policy=settings.aps_bucket_policy,
            timeout=settings.aps_request_timeout_seconds,
        )

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _send(self, action: str, method: str, url: str, **kwargs: Any) -> httpx.Response:
        start = time.monotonic()
        try:
            response = await self._http.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise UpstreamRequestError(f"APS {action} failed: {exc}") from exc
        latency_ms = int((time.monotonic() - start) * 1000)
        logger.debug(
            "aps.request",
            extra={"action": action, "status": response.status_code, "latency_ms": latency_ms},
        )
        return response

    @staticmethod
    def _raise_for_status(action: str, response: httpx.Response) -> None:
        if response.is_success:
            return
        if response.status_code in (401, 403):
            raise UpstreamAuthError(
                f"APS {action} rejected credentials ({response.status_code})",
                status_code=response.status_code,
            )
        raise UpstreamRequestError(
            f"APS {action} failed ({response.status_code}): {response.text[:200]}",
            status_code=response.status_code,
        )

    @staticmethod
    def _json(action: str, response: httpx.Response) -> dict:
        try:
            body = response.json()
        except ValueError as exc:
            raise UpstreamRequestError(f"APS {action} returned malformed JSON") from exc
        if not isinstance(body, dict):
            raise UpstreamRequestError(f"APS {action} returned unexpected payload")
        return body

    async def _authorized(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {await self.authenticate()}"}

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    async def authenticate(self) -> str:
        if self._token and self._clock() < self._token_expires_at:
            return self._token

        async with self._token_lock:
            # Another caller may have refreshed while we waited
            if self._token and self._clock() < self._token_expires_at:
                return self._token

            response = await self._send(
                "authenticate",
                "POST",
                "/authentication/v2/token",
                data={"grant_type": "client_credentials", "scope": self._scopes},
                auth=(self._client_id, self._client_secret),
            )
            if response.status_code in _AUTH_REJECTED:
                raise UpstreamAuthError(
                    f"APS authentication rejected ({response.status_code})",
                    status_code=response.status_code,
                )
            self._raise_for_status("authenticate", response)
            body = self._json("authenticate", response)
            try:
                token = str(body["access_token"])
                expires_in = int(body["expires_in"])
            except (KeyError, TypeError, ValueError) as exc:
                raise UpstreamRequestError("APS authenticate response missing token fields") from exc

            self._token = token
            self._token_expires_at = self._clock() + expires_in
            logger.info("aps.authenticated", extra={"expires_in": expires_in})
            return token

    async def viewer_token(self) -> tuple[str, int]:
        token = await self.authenticate()
        return token, max(int(self._token_expires_at - self._clock()), 0)

    # ------------------------------------------------------------------
    # OSS
    # ------------------------------------------------------------------

    async def create_bucket(self, bucket_key: str) -> Bucket:
        headers = await self._authorized()
        response = await self._send(
            "create_bucket",
            "POST",
            "/oss/v2/buckets",
            json={"bucketKey": bucket_key, "policyKey": self._bucket_policy},
            headers=headers,
        )
        if response.status_code == 409:
            logger.info("aps.bucket_exists", extra={"bucket_key": bucket_key})
            response = await self._send(
                "get_bucket",
                "GET",
                f"/oss/v2/buckets/{quote(bucket_key, safe='')}/details",
                headers=headers,
            )
        self._raise_for_status("create_bucket", response)
        body = self._json("create_bucket", response)
        return Bucket(
            bucket_key=str(body.get("bucketKey", bucket_key)),
            bucket_owner=body.get("bucketOwner"),
            policy_key=body.get("policyKey"),
        )

    async def upload_object(self, bucket_key: str, object_key: str, data: bytes) -> UploadedObject:
        response = await self._send(
            "upload_object",
            "PUT",
            f"/oss/v2/buckets/{quote(bucket_key, safe='')}/objects/{quote(object_key, safe='')}",
            content=data,
            headers={**await self._authorized(), "Content-Type": "application/octet-stream"},
        )
        self._raise_for_status("upload_object", response)
        body = self._json("upload_object", response)
        object_id = body.get("objectId")
        if not object_id:
            raise UpstreamRequestError("APS upload_object response missing objectId")
        return UploadedObject(
            bucket_key=str(body.get("bucketKey", bucket_key)),
            object_key=str(body.get("objectKey", object_key)),
            object_id=str(object_id),
            size=body.get("size"),
        )

    # ------------------------------------------------------------------
    # Model Derivative
    # ------------------------------------------------------------------

    async def submit_translation(self, urn: str) -> TranslationJob:
        response = await self._send(
            "submit_translation",
            "POST",
            "/modelderivative/v2/designdata/job",
            json={
                "input": {"urn": urn},
                "output": {"formats": [{"type": "svf2", "views": ["2d", "3d"]}]},
            },
            headers=await self._authorized(),
        )
        self._raise_for_status("submit_translation", response)
        body = self._json("submit_translation", response)
        return TranslationJob(urn=str(body.get("urn", urn)), result=str(body.get("result", "")))

    async def get_manifest(self, urn: str) -> Manifest:
        response = await self._send(
            "get_manifest",
            "GET",
            f"/modelderivative/v2/designdata/{urn}/manifest",
            headers=await self._authorized(),
        )
        self._raise_for_status("get_manifest", response)
        body = self._json("get_manifest", response)
        raw_status = body.get("status")
        return Manifest(
            status=classify_manifest(raw_status),
            raw_status=str(raw_status or ""),
            progress=body.get("progress"),
            detail=body,
        )

    async def aclose(self) -> None:
        await self._http.aclose()
