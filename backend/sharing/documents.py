"""Document loading and queries.

Permission checks must run against freshly loaded state: access lists change
independently of any request, so decisions are never cached.
"""

import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from models import Document
from sharing.access import DocumentRecord
from sharing.access_list import normalize_access_users, normalize_email


def to_record(doc: Document) -> DocumentRecord:
    return DocumentRecord(
        id=doc.id,
        owner_id=doc.owner_id,
        name=doc.name,
        url=doc.url,
        storage_path=doc.storage_path,
        is_publicly_shared=bool(doc.is_publicly_shared),
        allow_save=bool(doc.allow_save),
        access=normalize_access_users(doc.access_users),
        uploaded_by=doc.uploaded_by,
        uploaded_at=doc.uploaded_at,
        size=doc.size or 0,
        original_pdf_id=doc.original_pdf_id,
    )


async def get_document_row(db: AsyncSession, doc_id: str) -> Document | None:
    result = await db.execute(select(Document).where(Document.id == doc_id))
    return result.scalar_one_or_none()


async def load_document(db: AsyncSession, doc_id: str) -> DocumentRecord | None:
    """Fetch by id and normalize; None when absent."""
    doc = await get_document_row(db, doc_id)
    return to_record(doc) if doc is not None else None


async def list_owned(
    db: AsyncSession, owner_id: uuid.UUID, offset: int = 0, limit: int = 20
) -> tuple[list[DocumentRecord], int]:
    total = (
        await db.execute(
            select(func.count()).select_from(Document).where(Document.owner_id == owner_id)
        )
    ).scalar() or 0
    result = await db.execute(
        select(Document)
        .where(Document.owner_id == owner_id)
        .order_by(Document.uploaded_at.desc())
        .offset(offset)
        .limit(limit)
    )
    return [to_record(d) for d in result.scalars().all()], total


async def list_shared_with(
    db: AsyncSession, email: str, exclude_owner: uuid.UUID | None = None
) -> list[DocumentRecord]:
    """Documents whose access list names ``email``.

    The JSON column mixes two entry shapes, so membership is decided on the
    normalized records rather than in SQL.
    """
    email = normalize_email(email)
    query = select(Document).where(Document.access_users.isnot(None))
    if exclude_owner is not None:
        query = query.where(Document.owner_id != exclude_owner)
    result = await db.execute(query.order_by(Document.uploaded_at.desc()))
    records = []
    for doc in result.scalars().all():
        record = to_record(doc)
        if any(entry.email == email for entry in record.access):
            records.append(record)
    return records


async def find_saved_copy(
    db: AsyncSession, original_id: str, owner_id: uuid.UUID
) -> Document | None:
    result = await db.execute(
        select(Document).where(
            Document.original_pdf_id == original_id,
            Document.owner_id == owner_id,
        )
    )
    return result.scalars().first()
