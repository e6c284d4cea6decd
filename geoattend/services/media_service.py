"""
Media Service - client for the external photo/signature upload service

The upload service stores opaque blobs and hands back a URI. A submission
needs three uploads (front photo, back photo, signature); they succeed or
fail as a group so no record ever points at a partial media set.
"""
import logging
from typing import Iterable, List, NamedTuple, Optional
import httpx
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception
from geoattend.config import settings

logger = logging.getLogger(__name__)


class MediaUploadError(Exception):
    """Raised when the upload service cannot store or delete a blob"""


class SubmissionMedia(NamedTuple):
    """Raw media as submitted (base64 data URIs)"""
    front_photo: str
    back_photo: str
    signature: str


class MediaRefs(NamedTuple):
    """URIs returned by the upload service"""
    front_photo: str
    back_photo: str
    signature: str


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, (httpx.TimeoutException, httpx.TransportError)):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return False


class MediaService:
    """
    Service for uploading attendance media.

    Features:
    - Retries timeouts, transport errors and 5xx responses
    - All-or-nothing upload of a submission's three blobs
    - Best-effort cleanup of orphaned uploads
    """

    def __init__(self, transport: Optional[httpx.BaseTransport] = None):
        self._transport = transport

    def _client(self) -> httpx.Client:
        headers = {"Accept": "application/json"}
        if settings.MEDIA_UPLOAD_TOKEN:
            headers["Authorization"] = f"Bearer {settings.MEDIA_UPLOAD_TOKEN}"
        return httpx.Client(
            base_url=settings.MEDIA_UPLOAD_URL,
            timeout=settings.MEDIA_UPLOAD_TIMEOUT_SEC,
            headers=headers,
            transport=self._transport
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
        retry=retry_if_exception(_is_retryable),
        reraise=True
    )
    def _post(self, path: str, payload: dict) -> dict:
        with self._client() as client:
            response = client.post(path, json=payload)
            response.raise_for_status()
            return response.json()

    def upload(self, raw: str, folder: str, name: str) -> str:
        """Upload one blob and return its URI"""
        try:
            data = self._post("/upload", {"file": raw, "folder": folder, "public_id": name})
        except httpx.HTTPError as e:
            raise MediaUploadError(f"Upload of {folder}/{name} failed: {e}") from e

        uri = data.get("url") or data.get("secure_url")
        if not uri:
            raise MediaUploadError(f"Upload of {folder}/{name} returned no URL")
        return uri

    def delete(self, uri: str) -> bool:
        """Delete a previously uploaded blob"""
        try:
            data = self._post("/delete", {"url": uri})
        except httpx.HTTPError as e:
            raise MediaUploadError(f"Delete of {uri} failed: {e}") from e
        return bool(data.get("ok", True))

    def delete_quietly(self, uris: Iterable[str]) -> None:
        """Remove orphaned uploads, logging (not raising) failures"""
        for uri in uris:
            try:
                self.delete(uri)
            except MediaUploadError as e:
                logger.error(f"Orphaned media left behind: {e}")

    def upload_submission_media(
        self,
        media: SubmissionMedia,
        folder: str,
        base_name: str
    ) -> MediaRefs:
        """
        Upload the three blobs of one submission.

        If any upload fails the blobs already stored are deleted and
        MediaUploadError propagates, so the caller can abort cleanly.
        """
        uploaded: List[str] = []
        try:
            for suffix, raw in (
                ("front", media.front_photo),
                ("back", media.back_photo),
                ("signature", media.signature),
            ):
                uploaded.append(self.upload(raw, folder, f"{base_name}_{suffix}"))
        except MediaUploadError:
            self.delete_quietly(uploaded)
            raise

        return MediaRefs(*uploaded)


# Singleton instance
media_service = MediaService()
