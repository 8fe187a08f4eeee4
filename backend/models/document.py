"""Shared PDF documents.

``access_users`` holds the raw stored list (legacy email strings and/or
structured ``{email, canSave, addedAt}`` dicts); use
``sharing.documents.to_record`` to get a normalized view.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, BigInteger, Boolean, String, Text, DateTime, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class Document(Base):
    __tablename__ = "documents"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    owner_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    storage_path: Mapped[str | None] = mapped_column(Text, nullable=True)
    size: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    uploaded_by: Mapped[str | None] = mapped_column(String(320), nullable=True)
    uploaded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    is_publicly_shared: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    allow_save: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    access_users: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    original_pdf_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
