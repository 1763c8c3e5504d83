from __future__ import annotations

import logging
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, File, Query, UploadFile, status

from app.api.dependencies import AdminUser, CurrentUser, DbSession
from app.api.schemas import (
    CamelModel,
    Envelope,
    Message,
    NonEmptyStr,
    PagedEnvelope,
    Pagination,
    dump,
    ok,
    paged,
    pagination,
)
from app.services import media_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/media", tags=["media"])


class MediaFileOut(CamelModel):
    id: int
    filename: str
    original_name: str
    mime_type: str
    file_size: int
    file_path: str
    url: str
    uploaded_by: int
    created_at: datetime | None = None
    updated_at: datetime | None = None


@router.post(
    "/upload", status_code=status.HTTP_201_CREATED, response_model=Envelope[MediaFileOut]
)
async def upload(
    file: Annotated[UploadFile, File()], session: DbSession, principal: CurrentUser
) -> dict:
    [row] = await media_service.store_uploads(session, [file], principal.id)
    return ok("File uploaded successfully", dump(MediaFileOut, row))


@router.post(
    "/upload-multiple",
    status_code=status.HTTP_201_CREATED,
    response_model=Envelope[list[MediaFileOut]],
)
async def upload_multiple(
    files: Annotated[list[UploadFile], File()],
    session: DbSession,
    principal: CurrentUser,
) -> dict:
    rows = await media_service.store_uploads(session, files, principal.id)
    return ok(f"{len(rows)} files uploaded successfully", dump(MediaFileOut, rows))


@router.get("", response_model=PagedEnvelope[list[MediaFileOut]])
async def list_media(
    session: DbSession,
    _user: CurrentUser,
    page: Annotated[Pagination, Depends(pagination)],
) -> dict:
    rows = await media_service.list_media(session, limit=page.limit, offset=page.offset)
    return paged("Media files retrieved successfully", dump(MediaFileOut, rows), page)


@router.get("/search", response_model=Envelope[list[MediaFileOut]])
async def search_media(
    session: DbSession, _user: CurrentUser, filename: Annotated[NonEmptyStr, Query()]
) -> dict:
    rows = await media_service.search(session, filename)
    return ok("Media files retrieved successfully", dump(MediaFileOut, rows))


@router.get("/uploader/{user_id}", response_model=Envelope[list[MediaFileOut]])
async def media_by_uploader(user_id: int, session: DbSession, _user: CurrentUser) -> dict:
    rows = await media_service.by_uploader(session, user_id)
    return ok("Media files retrieved successfully", dump(MediaFileOut, rows))


@router.get("/type/{mime_type:path}", response_model=Envelope[list[MediaFileOut]])
async def media_by_type(mime_type: str, session: DbSession, _user: CurrentUser) -> dict:
    rows = await media_service.by_mime_type(session, mime_type)
    return ok("Media files retrieved successfully", dump(MediaFileOut, rows))


@router.get("/{media_id}", response_model=Envelope[MediaFileOut])
async def get_media(media_id: int, session: DbSession) -> dict:
    row = await media_service.get_media(session, media_id)
    return ok("Media file retrieved successfully", dump(MediaFileOut, row))


@router.delete("/{media_id}", response_model=Message)
async def delete_media(media_id: int, session: DbSession, _admin: AdminUser) -> dict:
    await media_service.delete_media(session, media_id)
    return {"success": True, "message": "Media file deleted successfully"}
