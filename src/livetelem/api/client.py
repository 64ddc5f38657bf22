"""Async HTTP client for the dashboard backend's REST collaborators."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from livetelem.api.errors import AuthError, CollaboratorError

logger = logging.getLogger(__name__)

_BODY_EXCERPT = 200


class LiveApiClient:
    """Bearer-authenticated JSON client.

    Every response is validated before it is decoded: a non-success status,
    a content type other than JSON, or an undecodable body raises
    :class:`CollaboratorError`; HTTP 401/403 raises :class:`AuthError`.
    Nothing is retried here; callers retry on their next scheduled tick.
    """

    def __init__(
        self,
        *,
        access_token: str,
        base_url: str,
        timeout: float = 10.0,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={
                "Authorization": f"Bearer {access_token}",
                "Accept": "application/json",
            },
            timeout=timeout,
        )

    async def get(self, path: str, *, params: dict[str, Any] | None = None) -> Any:
        """GET *path* and return the decoded JSON body."""
        try:
            response = await self._client.get(path, params=params)
        except httpx.HTTPError as exc:
            raise CollaboratorError(f"Request to {path} failed: {exc}") from exc
        return self._decode(response)

    def _decode(self, response: httpx.Response) -> Any:
        status = response.status_code
        text = response.text
        excerpt = text[:_BODY_EXCERPT]

        if status in (401, 403):
            raise AuthError(
                f"Access token rejected by {response.request.url.path} (HTTP {status})",
                status_code=status,
            )
        if not response.is_success:
            raise CollaboratorError(f"HTTP {status}: {excerpt}", status_code=status, body=excerpt)

        content_type = response.headers.get("content-type", "")
        if "application/json" not in content_type:
            raise CollaboratorError(
                f"Expected JSON but got {content_type or 'no content type'}",
                status_code=status,
                body=excerpt,
            )

        try:
            return response.json()
        except ValueError as exc:
            raise CollaboratorError(
                f"Invalid JSON: {text[:100]}", status_code=status, body=excerpt
            ) from exc

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> LiveApiClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()
