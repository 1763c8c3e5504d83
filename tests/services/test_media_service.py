"""Media files on disk follow the fate of the transaction that wrote their rows."""

from __future__ import annotations

import asyncio
import io
from pathlib import Path

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import Session
from starlette.datastructures import Headers, UploadFile

from app.db.engine import transaction
from app.db.tables import MediaFileRow, UserRow
from app.services import media_service


def _file(name: str, content: bytes) -> UploadFile:
    return UploadFile(
        io.BytesIO(content),
        filename=name,
        headers=Headers({"content-type": "text/plain"}),
    )


def test_failed_upload_transaction_removes_written_files(
    db: Session,
    session_factory: async_sessionmaker[AsyncSession],
    learner: UserRow,
) -> None:
    written: list[Path] = []

    async def scenario() -> None:
        async with transaction(session_factory) as session:
            rows = await media_service.store_uploads(
                session, [_file("a.txt", b"one"), _file("b.txt", b"two")], learner.id
            )
            written.extend(Path(row.file_path) for row in rows)
            assert all(path.exists() for path in written)
            raise RuntimeError("commit never happens")

    with pytest.raises(RuntimeError):
        asyncio.run(scenario())
    assert len(written) == 2
    assert not any(path.exists() for path in written)
    assert db.query(MediaFileRow).count() == 0


def test_delete_keeps_file_until_commit(
    db: Session,
    session_factory: async_sessionmaker[AsyncSession],
    learner: UserRow,
) -> None:
    async def upload() -> MediaFileRow:
        async with transaction(session_factory) as session:
            [row] = await media_service.store_uploads(
                session, [_file("keep.txt", b"keep")], learner.id
            )
        return row

    media = asyncio.run(upload())
    path = Path(media.file_path)

    async def failed_delete() -> None:
        async with transaction(session_factory) as session:
            await media_service.delete_media(session, media.id)
            assert path.exists()
            raise RuntimeError("rolled back")

    with pytest.raises(RuntimeError):
        asyncio.run(failed_delete())
    assert path.exists()
    assert db.query(MediaFileRow).count() == 1

    async def delete() -> None:
        async with transaction(session_factory) as session:
            await media_service.delete_media(session, media.id)

    asyncio.run(delete())
    assert not path.exists()
