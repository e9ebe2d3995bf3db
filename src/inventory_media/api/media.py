"""Endpoints for media already stored by the inventory backend."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi import APIRouter, HTTPException, Request, status
from fastapi.responses import Response

from inventory_media.domain.media import MediaRecord
from inventory_media.services.uploads import TransferError

if TYPE_CHECKING:
    from inventory_media.adapters.media_api_client import MediaApiClient

logger = logging.getLogger(__name__)

router = APIRouter(tags=["media"])


def _client(request: Request) -> MediaApiClient:
    return request.app.state.container.media_client


def _backend_failure(exc: TransferError) -> HTTPException:
    if exc.status_code == status.HTTP_404_NOT_FOUND:
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND)
    logger.warning("Media backend request failed: %s", exc)
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))


@router.get("/cars/{car_id}/media")
async def list_car_media(car_id: str, request: Request) -> list[MediaRecord]:
    """Return media the backend already stores for a car."""
    try:
        return await _client(request).list_for_car(car_id)
    except TransferError as exc:
        raise _backend_failure(exc) from exc


@router.delete("/media/{media_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_media(media_id: str, request: Request) -> Response:
    """Delete a stored media record."""
    try:
        await _client(request).delete(media_id)
    except TransferError as exc:
        raise _backend_failure(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)
