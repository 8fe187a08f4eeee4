"""Normalization of a document's ``access_users`` field.

Stored entries come in two shapes:

* a bare email string (legacy rows written before per-user permissions), or
* ``{"email": ..., "canSave": bool, "addedAt": iso8601}``.

Rows are never migrated; both shapes are parsed here, once, when a document
is loaded. Legacy strings carry no save flag and therefore grant view only.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccessEntry:
    email: str
    can_save: bool = False
    added_at: datetime | None = None
    legacy: bool = False


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _parse_added_at(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    return None


def _parse_legacy(raw: str) -> AccessEntry | None:
    email = normalize_email(raw)
    if not email:
        return None
    return AccessEntry(email=email, can_save=False, legacy=True)


def parse_entry(raw: Any) -> AccessEntry | None:
    """Parse one stored entry; unrecognised shapes yield None."""
    if isinstance(raw, str):
        return _parse_legacy(raw)
    if isinstance(raw, dict) and isinstance(raw.get("email"), str):
        email = normalize_email(raw["email"])
        if not email:
            return None
        return AccessEntry(
            email=email,
            can_save=raw.get("canSave") is True,
            added_at=_parse_added_at(raw.get("addedAt")),
        )
    return None


def normalize_access_users(raw_entries: list | None) -> tuple[AccessEntry, ...]:
    """Convert the stored list into ordered AccessEntry values."""
    entries = []
    for raw in raw_entries or []:
        entry = parse_entry(raw)
        if entry is None:
            logger.warning("Skipping malformed access entry of type %s", type(raw).__name__)
            continue
        entries.append(entry)
    return tuple(entries)


def serialize_entry(entry: AccessEntry) -> dict:
    added_at = entry.added_at or datetime.now(timezone.utc)
    return {"email": entry.email, "canSave": entry.can_save, "addedAt": added_at.isoformat()}


def upsert_entry(raw_entries: list | None, email: str, can_save: bool) -> list:
    """Return a new stored list with ``email`` granted ``can_save``.

    Any existing entry for the email, legacy or structured, is replaced in
    place so list order is preserved.
    """
    email = normalize_email(email)
    new_entry = serialize_entry(
        AccessEntry(email=email, can_save=can_save, added_at=datetime.now(timezone.utc))
    )
    result = []
    replaced = False
    for raw in raw_entries or []:
        parsed = parse_entry(raw)
        if parsed is not None and parsed.email == email:
            if not replaced:
                result.append(new_entry)
                replaced = True
            continue
        result.append(raw)
    if not replaced:
        result.append(new_entry)
    return result


def remove_entry(raw_entries: list | None, email: str) -> tuple[list, bool]:
    """Return the stored list without ``email`` and whether anything was removed."""
    email = normalize_email(email)
    kept = []
    removed = False
    for raw in raw_entries or []:
        parsed = parse_entry(raw)
        if parsed is not None and parsed.email == email:
            removed = True
            continue
        kept.append(raw)
    return kept, removed
