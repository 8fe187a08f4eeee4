"""Permission decision for a caller against a document.

Precedence, first match wins: owner, explicit access-list entry, public
share, otherwise denied. A missing document is reported as NOT_FOUND rather
than DENIED so responses can tell the two apart.
"""

import enum
import uuid
from dataclasses import dataclass, field
from datetime import datetime

from sharing.access_list import AccessEntry, normalize_email


class AccessTier(str, enum.Enum):
    NOT_FOUND = "not_found"
    DENIED = "denied"
    VIEW_ONLY = "view_only"
    VIEW_AND_SAVE = "view_and_save"


@dataclass(frozen=True)
class Caller:
    authenticated: bool = False
    uid: uuid.UUID | None = None
    email: str | None = None

    @classmethod
    def anonymous(cls) -> "Caller":
        return cls()

    @classmethod
    def from_identity(cls, identity) -> "Caller":
        if identity is None:
            return cls.anonymous()
        return cls(authenticated=True, uid=identity.uid, email=identity.email)


@dataclass(frozen=True)
class DocumentRecord:
    """A document as loaded from the database, with access_users normalized."""

    id: str
    owner_id: uuid.UUID
    name: str
    url: str
    storage_path: str | None = None
    is_publicly_shared: bool = False
    allow_save: bool = False
    access: tuple[AccessEntry, ...] = field(default_factory=tuple)
    uploaded_by: str | None = None
    uploaded_at: datetime | None = None
    size: int = 0
    original_pdf_id: str | None = None


@dataclass(frozen=True)
class AccessDecision:
    tier: AccessTier
    is_owner: bool = False

    @property
    def can_view(self) -> bool:
        return self.tier in (AccessTier.VIEW_ONLY, AccessTier.VIEW_AND_SAVE)

    @property
    def can_save(self) -> bool:
        return self.tier is AccessTier.VIEW_AND_SAVE


def _find_entry(document: DocumentRecord, email: str | None) -> AccessEntry | None:
    if not email:
        return None
    email = normalize_email(email)
    for entry in document.access:
        if entry.email == email:
            return entry
    return None


def evaluate_access(document: DocumentRecord | None, caller: Caller) -> AccessDecision:
    if document is None:
        return AccessDecision(AccessTier.NOT_FOUND)

    if caller.authenticated and caller.uid is not None and caller.uid == document.owner_id:
        return AccessDecision(AccessTier.VIEW_AND_SAVE, is_owner=True)

    entry = _find_entry(document, caller.email) if caller.authenticated else None
    if entry is not None:
        return AccessDecision(AccessTier.VIEW_AND_SAVE if entry.can_save else AccessTier.VIEW_ONLY)

    if document.is_publicly_shared:
        if caller.authenticated and document.allow_save:
            return AccessDecision(AccessTier.VIEW_AND_SAVE)
        return AccessDecision(AccessTier.VIEW_ONLY)

    return AccessDecision(AccessTier.DENIED)
