"""Comments on documents, visible to anyone who can view the document."""

import uuid
import logging
from datetime import datetime

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from auth.jwt import Identity, get_current_identity, get_optional_identity
from errors import BadRequest, Forbidden, NotFound
from models import DocumentComment, get_db
from sharing.access import AccessTier, Caller, evaluate_access
from sharing.documents import load_document

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/documents/{doc_id}/comments", tags=["comments"])


class CommentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    content: str = Field(..., min_length=1, max_length=10000)
    parent_id: uuid.UUID | None = Field(None, alias="parentId")


class CommentOut(BaseModel):
    id: uuid.UUID
    userId: uuid.UUID
    authorEmail: str
    content: str
    parentId: uuid.UUID | None = None
    createdAt: datetime


def _out(comment: DocumentComment) -> CommentOut:
    return CommentOut(
        id=comment.id,
        userId=comment.user_id,
        authorEmail=comment.author_email,
        content=comment.content,
        parentId=comment.parent_id,
        createdAt=comment.created_at,
    )


async def _require_view(db: AsyncSession, doc_id: str, identity: Identity | None) -> None:
    decision = evaluate_access(await load_document(db, doc_id), Caller.from_identity(identity))
    if decision.tier is AccessTier.NOT_FOUND:
        raise NotFound("PDF not found")
    if not decision.can_view:
        raise Forbidden()


@router.get("", response_model=list[CommentOut])
async def list_comments(
    doc_id: str,
    identity: Identity | None = Depends(get_optional_identity),
    db: AsyncSession = Depends(get_db),
):
    await _require_view(db, doc_id, identity)
    result = await db.execute(
        select(DocumentComment)
        .where(DocumentComment.document_id == doc_id)
        .order_by(DocumentComment.created_at)
    )
    return [_out(c) for c in result.scalars().all()]


@router.post("", response_model=CommentOut, status_code=status.HTTP_201_CREATED)
async def add_comment(
    doc_id: str,
    body: CommentRequest,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    """Add a comment, or a reply when parentId is given."""
    await _require_view(db, doc_id, identity)

    if body.parent_id is not None:
        parent = await db.execute(
            select(DocumentComment.id).where(
                DocumentComment.id == body.parent_id,
                DocumentComment.document_id == doc_id,
            )
        )
        if parent.scalar_one_or_none() is None:
            raise BadRequest("Parent comment not found on this PDF")

    comment = DocumentComment(
        document_id=doc_id,
        user_id=identity.uid,
        author_email=identity.email,
        content=body.content.strip(),
        parent_id=body.parent_id,
    )
    db.add(comment)
    await db.commit()
    await db.refresh(comment)
    return _out(comment)
