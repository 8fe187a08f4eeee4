"""Document endpoints: register, list, share, copy and delete PDFs."""

import uuid
import logging
from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from auth.jwt import Identity, get_current_identity, get_optional_identity
from errors import Forbidden, NotFound
from models import Document, DocumentComment, get_db
from sharing.access import AccessDecision, AccessTier, Caller, DocumentRecord, evaluate_access
from sharing.access_list import normalize_email, remove_entry, upsert_entry
from sharing.documents import (
    find_saved_copy,
    get_document_row,
    list_owned,
    list_shared_with,
    to_record,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/documents", tags=["documents"])


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class CreateDocumentRequest(_CamelModel):
    name: str = Field(..., min_length=1, max_length=255)
    url: str = Field(..., min_length=1)
    storage_path: str | None = Field(None, alias="storagePath")
    size: int = Field(0, ge=0)


class UpdateDocumentRequest(_CamelModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    is_publicly_shared: bool | None = Field(None, alias="isPubliclyShared")
    allow_save: bool | None = Field(None, alias="allowSave")


class GrantAccessRequest(_CamelModel):
    email: EmailStr
    can_save: bool = Field(False, alias="canSave")


class AccessEntryOut(BaseModel):
    email: str
    canSave: bool
    addedAt: datetime | None = None
    legacy: bool = False


class DocumentOut(BaseModel):
    id: str
    name: str
    url: str | None = None
    storagePath: str | None = None
    size: int
    uploadedBy: str | None = None
    uploadedAt: datetime | None = None
    ownerId: uuid.UUID
    isPubliclyShared: bool
    allowSave: bool
    originalPdfId: str | None = None
    accessUsers: list[AccessEntryOut] | None = None
    access: AccessTier | None = None
    isOwner: bool = False
    canSave: bool = False
    isSaved: bool | None = None


class DocumentListResponse(BaseModel):
    items: list[DocumentOut]
    total: int


def _out(record: DocumentRecord, decision: AccessDecision | None = None, **extra) -> DocumentOut:
    is_owner = decision.is_owner if decision else False
    return DocumentOut(
        id=record.id,
        name=record.name,
        url=record.url if decision is None or decision.can_view else None,
        storagePath=record.storage_path if is_owner else None,
        size=record.size,
        uploadedBy=record.uploaded_by,
        uploadedAt=record.uploaded_at,
        ownerId=record.owner_id,
        isPubliclyShared=record.is_publicly_shared,
        allowSave=record.allow_save,
        originalPdfId=record.original_pdf_id,
        # Only the owner sees who else has access
        accessUsers=[
            AccessEntryOut(email=e.email, canSave=e.can_save, addedAt=e.added_at, legacy=e.legacy)
            for e in record.access
        ] if is_owner else None,
        access=decision.tier if decision else None,
        isOwner=is_owner,
        canSave=decision.can_save if decision else False,
        **extra,
    )


async def _owned_document(db: AsyncSession, doc_id: str, identity: Identity) -> Document:
    """Load a document the caller owns, else 404/403."""
    doc = await get_document_row(db, doc_id)
    if doc is None:
        raise NotFound("PDF not found")
    if doc.owner_id != identity.uid:
        raise Forbidden("Only the owner can modify this PDF")
    return doc


@router.post("", response_model=DocumentOut, status_code=status.HTTP_201_CREATED)
async def create_document(
    body: CreateDocumentRequest,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    """Register an uploaded PDF's metadata; the caller becomes its owner."""
    doc = Document(
        owner_id=identity.uid,
        name=body.name.strip(),
        url=body.url,
        storage_path=body.storage_path,
        size=body.size,
        uploaded_by=identity.email,
        access_users=[],
    )
    db.add(doc)
    await db.commit()
    await db.refresh(doc)
    record = to_record(doc)
    logger.info("Document %s registered by %s", doc.id, identity.uid)
    return _out(record, evaluate_access(record, Caller.from_identity(identity)))


@router.get("", response_model=DocumentListResponse)
async def list_documents(
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    """Paginated list of the caller's own documents, newest first."""
    records, total = await list_owned(db, identity.uid, offset=(page - 1) * per_page, limit=per_page)
    caller = Caller.from_identity(identity)
    return DocumentListResponse(
        items=[_out(r, evaluate_access(r, caller)) for r in records],
        total=total,
    )


@router.get("/shared", response_model=DocumentListResponse)
async def list_shared_documents(
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    """Documents other users have shared with the caller."""
    records = await list_shared_with(db, identity.email, exclude_owner=identity.uid)
    caller = Caller.from_identity(identity)
    items = []
    for record in records:
        saved = await find_saved_copy(db, record.id, identity.uid)
        items.append(_out(record, evaluate_access(record, caller), isSaved=saved is not None))
    return DocumentListResponse(items=items, total=len(items))


@router.get("/{doc_id}", response_model=DocumentOut)
async def get_document(
    doc_id: str,
    identity: Identity | None = Depends(get_optional_identity),
    db: AsyncSession = Depends(get_db),
):
    """Document metadata plus the caller's permissions. Anonymous callers allowed."""
    doc = await get_document_row(db, doc_id)
    record = to_record(doc) if doc is not None else None
    decision = evaluate_access(record, Caller.from_identity(identity))
    if decision.tier is AccessTier.NOT_FOUND:
        raise NotFound("PDF not found")
    if decision.tier is AccessTier.DENIED:
        raise Forbidden()
    return _out(record, decision)


@router.patch("/{doc_id}", response_model=DocumentOut)
async def update_document(
    doc_id: str,
    body: UpdateDocumentRequest,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    """Rename a document or change its public-sharing settings."""
    doc = await _owned_document(db, doc_id, identity)
    if body.name is not None:
        doc.name = body.name.strip()
    if body.is_publicly_shared is not None:
        doc.is_publicly_shared = body.is_publicly_shared
    if body.allow_save is not None:
        doc.allow_save = body.allow_save
    await db.commit()
    await db.refresh(doc)
    record = to_record(doc)
    return _out(record, evaluate_access(record, Caller.from_identity(identity)))


@router.post("/{doc_id}/access", response_model=DocumentOut)
async def grant_access(
    doc_id: str,
    body: GrantAccessRequest,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    """Add or update an access-list entry."""
    doc = await _owned_document(db, doc_id, identity)
    doc.access_users = upsert_entry(doc.access_users, body.email, body.can_save)
    await db.commit()
    await db.refresh(doc)
    logger.info("Access to %s granted to %s (can_save=%s)", doc_id, normalize_email(body.email), body.can_save)
    record = to_record(doc)
    return _out(record, evaluate_access(record, Caller.from_identity(identity)))


@router.delete("/{doc_id}/access/{email}")
async def revoke_access(
    doc_id: str,
    email: str,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    """Remove an access-list entry.

    The owner may remove anyone. Any other caller may only remove themselves,
    which also deletes their saved copy of the document.
    """
    doc = await get_document_row(db, doc_id)
    if doc is None:
        raise NotFound("PDF not found")

    target = normalize_email(email)
    is_owner = doc.owner_id == identity.uid
    if not is_owner and target != identity.email:
        raise Forbidden("Only the owner can modify this PDF")

    doc.access_users, removed = remove_entry(doc.access_users, target)
    if not removed:
        raise NotFound("Email is not on the access list")

    if not is_owner:
        copy = await find_saved_copy(db, doc_id, identity.uid)
        if copy is not None:
            await db.execute(delete(Document).where(Document.id == copy.id))

    await db.commit()
    logger.info("Access to %s revoked for %s", doc_id, target)
    return {"ok": True}


@router.post("/{doc_id}/copy", response_model=DocumentOut, status_code=status.HTTP_201_CREATED)
async def save_copy(
    doc_id: str,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    """Save an independent copy owned by the caller. Requires save permission."""
    doc = await get_document_row(db, doc_id)
    record = to_record(doc) if doc is not None else None
    caller = Caller.from_identity(identity)
    decision = evaluate_access(record, caller)
    if decision.tier is AccessTier.NOT_FOUND:
        raise NotFound("PDF not found")
    if not decision.can_save:
        raise Forbidden("Saving this PDF is not allowed")
    if decision.is_owner:
        raise Forbidden("You already own this PDF")

    existing = await find_saved_copy(db, doc_id, identity.uid)
    if existing is None:
        existing = Document(
            owner_id=identity.uid,
            name=doc.name,
            url=doc.url,
            storage_path=doc.storage_path,
            size=doc.size,
            uploaded_by=identity.email,
            access_users=[],
            original_pdf_id=doc.id,
        )
        db.add(existing)
        await db.commit()
        await db.refresh(existing)
        logger.info("Document %s saved as %s by %s", doc_id, existing.id, identity.uid)

    copy_record = to_record(existing)
    return _out(copy_record, evaluate_access(copy_record, caller))


@router.delete("/{doc_id}")
async def delete_document(
    doc_id: str,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    """Delete a document the caller owns."""
    await _owned_document(db, doc_id, identity)
    await db.execute(delete(DocumentComment).where(DocumentComment.document_id == doc_id))
    await db.execute(delete(Document).where(Document.id == doc_id))
    await db.commit()
    logger.info("Document %s deleted by %s", doc_id, identity.uid)
    return {"ok": True}
