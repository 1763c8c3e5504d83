"""Uploaded media: files on local disk, metadata in ``media_files``.

Files land in ``UPLOAD_DIR/<category>/<uuid><ext>`` and are served by the
static mount at ``/uploads``. A request whose transaction rolls back
removes every file it wrote, so the disk never holds files without a row.
Deleted files are unlinked only after the row delete commits.
"""

from __future__ import annotations

import logging
import uuid
from pathlib import Path, PurePath

import aiofiles
from fastapi import UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import SETTINGS
from app.core.errors import AppError, BadRequestError, NotFoundError
from app.core.metrics import MEDIA_UPLOADS
from app.db.engine import after_commit, after_rollback
from app.db.tables import MediaFileRow
from app.repos.crud import CrudRepo

logger = logging.getLogger(__name__)

MAX_FILES_PER_REQUEST = 10
_CHUNK_SIZE = 1024 * 1024

ALLOWED_MIME_TYPES = frozenset(
    {
        "image/jpeg",
        "image/png",
        "image/gif",
        "image/webp",
        "image/svg+xml",
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "application/vnd.ms-excel",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "application/vnd.ms-powerpoint",
        "application/vnd.openxmlformats-officedocument.presentationml.presentation",
        "text/plain",
        "text/csv",
        "video/mp4",
        "video/mpeg",
        "video/quicktime",
        "video/webm",
        "audio/mpeg",
        "audio/mp3",
        "audio/wav",
        "audio/ogg",
    }
)


def category_for(mime_type: str) -> str:
    major = mime_type.split("/", 1)[0]
    return {"image": "images", "video": "videos", "audio": "audio"}.get(
        major, "documents"
    )


def upload_root() -> Path:
    return Path(SETTINGS.upload_dir)


async def _write(upload: UploadFile, target: Path) -> int:
    """Stream *upload* to *target*, enforcing the size limit. Returns bytes written."""
    size = 0
    target.parent.mkdir(parents=True, exist_ok=True)
    async with aiofiles.open(target, "wb") as out:
        while chunk := await upload.read(_CHUNK_SIZE):
            size += len(chunk)
            if size > SETTINGS.max_upload_bytes:
                raise AppError(
                    f"File {upload.filename} exceeds the maximum size of "
                    f"{SETTINGS.max_upload_bytes} bytes",
                    status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                )
            await out.write(chunk)
    return size


def _remove(paths: list[Path]) -> None:
    """Best-effort unlink; a file that cannot be removed is logged and left."""
    for path in paths:
        try:
            path.unlink(missing_ok=True)
        except OSError:
            logger.exception("Could not remove uploaded file %s", path)


async def store_uploads(
    session: AsyncSession, uploads: list[UploadFile], uploaded_by: int
) -> list[MediaFileRow]:
    if not uploads:
        raise BadRequestError("No file uploaded")
    if len(uploads) > MAX_FILES_PER_REQUEST:
        raise BadRequestError(f"At most {MAX_FILES_PER_REQUEST} files can be uploaded")
    for upload in uploads:
        if upload.content_type not in ALLOWED_MIME_TYPES:
            raise BadRequestError(f"File type {upload.content_type} is not allowed")

    written: list[Path] = []

    async def cleanup() -> None:
        _remove(written)

    after_rollback(session, cleanup)

    rows: list[MediaFileRow] = []
    repo = CrudRepo(session, MediaFileRow)
    for upload in uploads:
        mime_type = upload.content_type or "application/octet-stream"
        category = category_for(mime_type)
        original_name = upload.filename or "upload"
        filename = f"{uuid.uuid4()}{PurePath(original_name).suffix.lower()}"
        target = upload_root() / category / filename
        written.append(target)
        size = await _write(upload, target)
        rows.append(
            await repo.add(
                filename=filename,
                original_name=original_name,
                mime_type=mime_type,
                file_size=size,
                file_path=str(target),
                url=f"/uploads/{category}/{filename}",
                uploaded_by=uploaded_by,
            )
        )
        MEDIA_UPLOADS.labels(category=category).inc()

    logger.info("User=%d uploaded %d file(s)", uploaded_by, len(rows))
    return rows


async def get_media(session: AsyncSession, media_id: int) -> MediaFileRow:
    media = await CrudRepo(session, MediaFileRow).get(media_id)
    if media is None:
        raise NotFoundError("Media file not found")
    return media


async def list_media(
    session: AsyncSession, *, limit: int | None = None, offset: int = 0
) -> list[MediaFileRow]:
    return await CrudRepo(session, MediaFileRow).find_all(
        order_by=[MediaFileRow.created_at.desc(), MediaFileRow.id.desc()],
        limit=limit,
        offset=offset,
    )


async def by_uploader(session: AsyncSession, user_id: int) -> list[MediaFileRow]:
    return await CrudRepo(session, MediaFileRow).find_all(
        MediaFileRow.uploaded_by == user_id
    )


async def by_mime_type(session: AsyncSession, mime_type: str) -> list[MediaFileRow]:
    """Prefix match, so ``image`` finds every image and ``image/png`` only PNGs."""
    return await CrudRepo(session, MediaFileRow).find_all(
        MediaFileRow.mime_type.startswith(mime_type, autoescape=True)
    )


async def search(session: AsyncSession, term: str) -> list[MediaFileRow]:
    return await CrudRepo(session, MediaFileRow).find_all(
        MediaFileRow.original_name.icontains(term, autoescape=True)
    )


async def delete_media(session: AsyncSession, media_id: int) -> None:
    media = await get_media(session, media_id)
    path = Path(media.file_path)
    await CrudRepo(session, MediaFileRow).delete_by_id(media_id)

    async def unlink() -> None:
        _remove([path])

    after_commit(session, unlink)
    logger.info("Deleted media file id=%d", media_id)
