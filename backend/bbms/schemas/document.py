"""Audit ledger documents.

The ledger nests the reading under ``fields``:

{
  "id": "...", "owner": "...", "collection_id": "...", "path_reference": "...",
  "doc_type": "...", "clearance": 1,
  "fields": {"coreid": "...", "data": "...", "name": "...", "published_at": "...", "ttl": 60},
  "creation_date": "2025-01-31 10:15:00Z", "update_date": "2025-01-31 10:15:00Z"
}

Dates are kept as the ledger sent them so a document survives a write/read cycle
unchanged; parsed values are exposed as properties.
"""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field, field_validator

EPOCH = datetime.min.replace(tzinfo=timezone.utc)

_LEDGER_DATE_FORMATS = ("%Y-%m-%d %H:%M:%SZ", "%Y-%m-%d %H:%M:%S")


def parse_ledger_date(value: str | None) -> datetime | None:
    if not value:
        return None
    for fmt in _LEDGER_DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _coerce_ttl(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


class AuditDocument(BaseModel):
    id: str
    core_id: str | None = None
    name: str | None = None
    payload: str = ""
    published_at: str | None = None
    ttl: int | None = None
    clearance: int | None = None
    creation_date: str = ""
    update_date: str = ""
    owner: str | None = None
    collection_id: str | None = None
    path_reference: str | None = None
    doc_type: str | None = None

    @field_validator("ttl", mode="before")
    @classmethod
    def _ttl(cls, value: Any) -> int | None:
        return _coerce_ttl(value)

    @property
    def published_date(self) -> datetime | None:
        return parse_ledger_date(self.published_at)

    @property
    def created(self) -> datetime:
        return parse_ledger_date(self.creation_date) or EPOCH

    @property
    def updated(self) -> datetime:
        return parse_ledger_date(self.update_date) or self.created

    @classmethod
    def from_wire(cls, raw: dict[str, Any]) -> "AuditDocument":
        fields = raw.get("fields")
        if not isinstance(fields, dict):
            raise ValueError("document has no fields object")
        return cls(
            id=raw["id"],
            core_id=fields.get("coreid"),
            name=fields.get("name"),
            payload=fields.get("data") or "",
            published_at=fields.get("published_at"),
            ttl=fields.get("ttl"),
            clearance=raw.get("clearance"),
            creation_date=raw.get("creation_date") or "",
            update_date=raw.get("update_date") or "",
            owner=raw.get("owner"),
            collection_id=raw.get("collection_id"),
            path_reference=raw.get("path_reference"),
            doc_type=raw.get("doc_type"),
        )

    def to_wire(self) -> dict[str, Any]:
        fields: dict[str, Any] = {"data": self.payload}
        for key, value in (
            ("coreid", self.core_id),
            ("name", self.name),
            ("published_at", self.published_at),
            ("ttl", self.ttl),
        ):
            if value is not None:
                fields[key] = value

        wire: dict[str, Any] = {
            "id": self.id,
            "fields": fields,
            "creation_date": self.creation_date,
            "update_date": self.update_date,
        }
        for key in ("owner", "collection_id", "path_reference", "doc_type", "clearance"):
            value = getattr(self, key)
            if value is not None:
                wire[key] = value
        return wire


class AuditRecord(BaseModel):
    core_id: str
    name: str
    payload: str
    published_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    ttl: int | None = None
    clearance: int | None = None

    def to_wire(self) -> dict[str, Any]:
        fields: dict[str, Any] = {
            "coreid": self.core_id,
            "name": self.name,
            "data": self.payload,
            "published_at": self.published_at.isoformat(),
        }
        if self.ttl is not None:
            fields["ttl"] = self.ttl

        wire: dict[str, Any] = {"fields": fields}
        if self.clearance is not None:
            wire["clearance"] = self.clearance
        return wire


class DocumentListResponse(BaseModel):
    items: list[AuditDocument]
    count: int
    latest: AuditDocument | None
    is_stale: bool
    error_message: str | None
    is_loading: bool = False
