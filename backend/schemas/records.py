from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from db.record import RecordCategory, RecordFormat


class TrackItem(BaseModel):
    position: int
    title: str
    duration: Optional[int] = None  # milliseconds


class RecordRead(BaseModel):
    id: UUID
    artist: str
    album: str
    price: float
    quantity: int
    format: RecordFormat
    category: RecordCategory
    mbid: Optional[str] = None
    track_list: Optional[List[TrackItem]] = None
    release_year: Optional[int] = None
    country: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class RecordCreate(BaseModel):
    artist: str
    album: str
    price: float = Field(..., ge=0, le=10000)
    quantity: int = Field(..., ge=0, le=100)
    format: RecordFormat
    category: RecordCategory
    mbid: Optional[str] = None
    track_list: Optional[List[TrackItem]] = None
    release_year: Optional[int] = None
    country: Optional[str] = None

    @field_validator("artist", "album")
    @classmethod
    def _strip_required(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("field is required")
        return v

    @field_validator("mbid")
    @classmethod
    def _strip_mbid(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None


class RecordUpdate(BaseModel):
    artist: Optional[str] = None
    album: Optional[str] = None
    price: Optional[float] = Field(None, ge=0, le=10000)
    quantity: Optional[int] = Field(None, ge=0, le=100)
    format: Optional[RecordFormat] = None
    category: Optional[RecordCategory] = None
    mbid: Optional[str] = None
    track_list: Optional[List[TrackItem]] = None
    release_year: Optional[int] = None
    country: Optional[str] = None

    @field_validator("artist", "album")
    @classmethod
    def _strip_optional(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        if not v:
            raise ValueError("cannot be empty")
        return v

    @field_validator("mbid")
    @classmethod
    def _strip_mbid(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None
