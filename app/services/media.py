from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from app.core.config import settings
from app.core.telemetry import tracer


log = logging.getLogger(__name__)


class MediaUploadError(Exception):
    def __init__(self, message: str, *, status_code: int | None = None, retryable: bool = False):
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable


@dataclass(frozen=True)
class UploadedImage:
    url: str
    public_id: str | None = None
    width: int | None = None
    height: int | None = None
    bytes: int | None = None


def _cap_text(s: str, *, max_chars: int) -> str:
    if len(s) <= max_chars:
        return s
    return s[:max_chars] + f"...(truncated, {len(s)} chars)"


class MediaUploader:
    """
    Client for the hosted image host (unsigned upload preset).

    - Uses one AsyncClient instance (connection pooling).
    - Does NOT retry; a failed upload fails the triggering form submit.
    - Returns the public retrieval URL of the stored image.
    """

    def __init__(
        self,
        *,
        upload_url: str,
        upload_preset: str,
        timeout_seconds: float = 20.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._upload_url = upload_url
        self._upload_preset = upload_preset
        self._client = httpx.AsyncClient(timeout=httpx.Timeout(timeout_seconds), transport=transport)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def upload_image(self, *, filename: str, content: bytes, content_type: str) -> UploadedImage:
        if not content:
            raise MediaUploadError("Empty image upload")

        try:
            with tracer.start_as_current_span("media.upload") as span:
                span.set_attribute("media.bytes", len(content))
                span.set_attribute("media.content_type", content_type)
                resp = await self._client.post(
                    self._upload_url,
                    data={"upload_preset": self._upload_preset},
                    files={"file": (filename, content, content_type)},
                )
                span.set_attribute("http.status_code", resp.status_code)
        except httpx.TimeoutException as e:
            raise MediaUploadError(f"Image upload timed out: {e}", retryable=True) from e
        except httpx.RequestError as e:
            # DNS errors, connection refused, TLS, etc.
            raise MediaUploadError(f"Image upload failed: {e}", retryable=True) from e

        if not 200 <= resp.status_code < 300:
            log.warning(
                "media host rejected upload: HTTP %s %s",
                resp.status_code,
                _cap_text(resp.text, max_chars=500),
            )
            raise MediaUploadError(
                f"HTTP {resp.status_code}",
                status_code=resp.status_code,
                retryable=resp.status_code in (408, 429, 500, 502, 503, 504),
            )

        try:
            body: Any = resp.json()
        except ValueError as e:
            raise MediaUploadError("Media host returned a non-JSON response", status_code=resp.status_code) from e

        url = body.get("secure_url") if isinstance(body, dict) else None
        if not url:
            raise MediaUploadError("Media host response has no secure_url", status_code=resp.status_code)

        return UploadedImage(
            url=url,
            public_id=body.get("public_id"),
            width=body.get("width"),
            height=body.get("height"),
            bytes=body.get("bytes"),
        )


_uploader: MediaUploader | None = None


def get_media_uploader() -> MediaUploader:
    global _uploader
    if _uploader is None:
        _uploader = MediaUploader(
            upload_url=settings.media_upload_url,
            upload_preset=settings.media_upload_preset,
            timeout_seconds=settings.media_timeout_seconds,
        )
    return _uploader
