"""
PageFeed Data Models
====================

Pydantic models for the rows of the cache database.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class CacheRecord(BaseModel):
    """Validators remembered for one source URL. Replaced as a whole."""

    url: str = Field(..., min_length=1, description="Source URL, exact string key")
    etag: Optional[str] = Field(default=None, description="Opaque ETag value")
    last_modified: Optional[datetime] = Field(
        default=None, description="Last-Modified instant reported by the server"
    )
    content_fingerprint: str = Field(..., description="SHA-256 of the raw body")
    recorded_at: datetime = Field(default_factory=utc_now)
    checked_at: datetime = Field(default_factory=utc_now)

    model_config = {"frozen": True}

    @field_validator("last_modified", "recorded_at", "checked_at")
    @classmethod
    def ensure_timezone(cls, v):
        return _as_aware(v)

    @property
    def has_validators(self) -> bool:
        return bool(self.etag) or self.last_modified is not None

    @classmethod
    def from_db_row(cls, row: Dict[str, Any]) -> "CacheRecord":
        return cls(**dict(row))

    def __str__(self) -> str:
        return f"CacheRecord({self.url})"


class OutputRecord(BaseModel):
    """What was last written to an output file and where it came from."""

    filename: str
    fingerprint: str = Field(..., description="SHA-256 of the written bytes")
    source_url: str
    source_fingerprint: str = Field(
        ..., description="Fingerprint of the page body the output was built from"
    )
    definition_hash: str
    version: str
    written_at: datetime = Field(default_factory=utc_now)

    model_config = {"frozen": True}

    @field_validator("written_at")
    @classmethod
    def ensure_timezone(cls, v):
        return _as_aware(v)

    @classmethod
    def from_db_row(cls, row: Dict[str, Any]) -> "OutputRecord":
        return cls(**dict(row))
