"""Vercel Blob document store client.

Pathnames are stored without a leading slash, e.g. `Texas/Fee Schedules/x.pdf`.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Tuple
from urllib.parse import quote

import httpx

logger = logging.getLogger(__name__)

API_VERSION = "7"


class BlobStoreError(Exception):
    """Error returned by the blob store or raised while talking to it."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class BlobObject:
    """One stored blob."""
    pathname: str
    url: str
    size: int = 0
    uploaded_at: Optional[datetime] = None
    download_url: Optional[str] = None
    content_type: Optional[str] = None

    @classmethod
    def from_api(cls, data: dict) -> "BlobObject":
        uploaded_at = data.get("uploadedAt")
        if uploaded_at:
            uploaded_at = datetime.fromisoformat(uploaded_at.replace("Z", "+00:00")).replace(tzinfo=None)
        return cls(
            pathname=normalize_pathname(data.get("pathname", "")),
            url=data.get("url", ""),
            size=int(data.get("size") or 0),
            uploaded_at=uploaded_at,
            download_url=data.get("downloadUrl"),
            content_type=data.get("contentType"),
        )


def normalize_pathname(pathname: str) -> str:
    """Strip leading slashes and convert separators to POSIX form."""
    return pathname.replace("\\", "/").lstrip("/")


class BlobStore:
    """Vercel Blob REST client over httpx."""

    def __init__(self, token: str, api_url: str = "https://blob.vercel-storage.com", timeout: float = 30.0):
        self.token = token
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout

    def _headers(self, extra: Optional[dict] = None) -> dict:
        if not self.token:
            raise BlobStoreError("Blob store token is not configured")
        headers = {
            "authorization": f"Bearer {self.token}",
            "x-api-version": API_VERSION,
        }
        if extra:
            headers.update(extra)
        return headers

    def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            response = httpx.request(method, url, timeout=self.timeout, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"Blob store request {method} {url} failed: {e}")
            raise BlobStoreError(f"Blob store request failed: {e}")

        if response.status_code >= 400:
            try:
                message = response.json().get("error", {}).get("message") or response.text
            except ValueError:
                message = response.text
            raise BlobStoreError(message, status_code=response.status_code)
        return response

    def list(self, prefix: Optional[str] = None, cursor: Optional[str] = None,
             limit: int = 1000) -> Tuple[List[BlobObject], Optional[str]]:
        """List one page of blobs.

        Returns:
            (blobs, next_cursor) where next_cursor is None on the last page
        """
        params = {"limit": limit}
        if prefix:
            params["prefix"] = normalize_pathname(prefix)
        if cursor:
            params["cursor"] = cursor

        data = self._send("GET", self.api_url, params=params, headers=self._headers()).json()
        blobs = [BlobObject.from_api(item) for item in data.get("blobs", [])]
        next_cursor = data.get("cursor") if data.get("hasMore") else None
        return blobs, next_cursor

    def list_all(self, prefix: Optional[str] = None) -> List[BlobObject]:
        """Follow the cursor until every blob under the prefix is listed."""
        blobs: List[BlobObject] = []
        cursor = None
        while True:
            page, cursor = self.list(prefix=prefix, cursor=cursor)
            blobs.extend(page)
            if not cursor:
                return blobs

    def put(self, pathname: str, data: bytes, content_type: Optional[str] = None,
            overwrite: bool = False) -> BlobObject:
        """Upload a blob under an exact pathname (no random suffix)."""
        pathname = normalize_pathname(pathname)
        headers = {"x-add-random-suffix": "0"}
        if overwrite:
            headers["x-allow-overwrite"] = "1"
        if content_type:
            headers["x-content-type"] = content_type

        response = self._send(
            "PUT",
            f"{self.api_url}/{quote(pathname)}",
            content=data,
            headers=self._headers(headers),
        )
        return BlobObject.from_api({"pathname": pathname, "size": len(data), **response.json()})

    def delete(self, urls: List[str]) -> None:
        """Delete blobs by URL. A no-op for an empty list."""
        if not urls:
            return
        self._send("POST", f"{self.api_url}/delete", json={"urls": urls}, headers=self._headers())

    def head(self, url: str) -> Optional[BlobObject]:
        """Blob metadata, or None when the blob does not exist."""
        try:
            response = self._send("GET", self.api_url, params={"url": url}, headers=self._headers())
        except BlobStoreError as e:
            if e.status_code == 404:
                return None
            raise
        return BlobObject.from_api(response.json())

    def copy(self, from_url: str, to_pathname: str) -> BlobObject:
        """Server-side copy to a new pathname."""
        to_pathname = normalize_pathname(to_pathname)
        response = self._send(
            "PUT",
            f"{self.api_url}/{quote(to_pathname)}",
            params={"fromUrl": from_url},
            headers=self._headers({"x-add-random-suffix": "0"}),
        )
        return BlobObject.from_api({"pathname": to_pathname, **response.json()})

    def download(self, url: str) -> bytes:
        """Fetch blob content from its public URL."""
        try:
            response = httpx.get(url, timeout=self.timeout, follow_redirects=True)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise BlobStoreError(f"Download of {url} failed: {e}")
        return response.content
