"""Inventory backend media API client."""

from dataclasses import dataclass
from typing import Protocol

import httpx
from pydantic import ValidationError

from inventory_media.domain.media import (
    CapturedFile,
    MediaCategory,
    MediaKind,
    MediaRecord,
)
from inventory_media.services.uploads import MediaUploader, TransferError


class MediaApiClient(MediaUploader, Protocol):
    """Interface for the backend's media endpoints."""

    async def list_for_car(self, car_id: str) -> list[MediaRecord]:
        """Return media already stored for a car."""

    async def delete(self, media_id: str) -> None:
        """Delete a stored media record."""

    async def close(self) -> None:
        """Release network resources."""


@dataclass
class HttpxMediaApiClient(MediaApiClient):
    """HTTPX-backed media API client."""

    base_url: str
    http_client: httpx.AsyncClient
    token: str | None = None
    timeout: float = 120.0

    @classmethod
    def create(
        cls, base_url: str, token: str | None = None, timeout: float = 120.0
    ) -> "HttpxMediaApiClient":
        """Create a media API client with a managed httpx session."""
        return cls(
            base_url=base_url.rstrip("/"),
            http_client=httpx.AsyncClient(),
            token=token,
            timeout=timeout,
        )

    async def upload(
        self,
        file: CapturedFile,
        owner_id: str,
        media_kind: MediaKind,
        category: MediaCategory,
    ) -> MediaRecord:
        """Upload a file as multipart form data."""
        data = {"carId": owner_id, "type": media_kind.value}
        if category:
            data["category"] = category.value
        try:
            response = await self.http_client.post(
                f"{self.base_url}/media/upload",
                data=data,
                files={"file": (file.name, file.content, file.mime_type)},
                headers=self._headers(),
                timeout=self.timeout,
            )
            response.raise_for_status()
            return MediaRecord.model_validate(response.json())
        except httpx.HTTPStatusError as exc:
            raise TransferError(
                f"Upload of {file.name} rejected with status "
                f"{exc.response.status_code}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise TransferError(f"Upload of {file.name} failed: {exc}") from exc
        except (ValueError, ValidationError) as exc:
            raise TransferError(
                f"Upload of {file.name} returned an unexpected payload"
            ) from exc

    async def list_for_car(self, car_id: str) -> list[MediaRecord]:
        """Fetch media stored for a car."""
        response = await self._request("GET", f"/media/car/{car_id}")
        try:
            return [MediaRecord.model_validate(row) for row in response.json()]
        except (TypeError, ValueError, ValidationError) as exc:
            raise TransferError(
                f"Media list for car {car_id} returned an unexpected payload"
            ) from exc

    async def delete(self, media_id: str) -> None:
        """Delete a media record."""
        await self._request("DELETE", f"/media/{media_id}")

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()

    async def _request(self, method: str, path: str) -> httpx.Response:
        try:
            response = await self.http_client.request(
                method,
                f"{self.base_url}{path}",
                headers=self._headers(),
                timeout=15,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise TransferError(
                f"{method} {path} rejected with status {exc.response.status_code}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise TransferError(f"{method} {path} failed: {exc}") from exc
        return response

    def _headers(self) -> dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}
