import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, CheckConstraint, Column, DateTime, Index, Integer, Numeric, String, Uuid
from sqlalchemy.orm import validates

from .database import Base


class RecordFormat(str, enum.Enum):
    VINYL = "Vinyl"
    CD = "CD"
    CASSETTE = "Cassette"
    DIGITAL = "Digital"


class RecordCategory(str, enum.Enum):
    ROCK = "Rock"
    JAZZ = "Jazz"
    HIPHOP = "Hip-Hop"
    CLASSICAL = "Classical"
    POP = "Pop"
    ALTERNATIVE = "Alternative"
    INDIE = "Indie"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_key(value: str) -> str:
    """Case-insensitive comparison form of a name (full Unicode case folding)."""
    return value.strip().casefold()


class Record(Base):
    """Catalog entry. `quantity` is the stock ledger value and only moves through db.ledger."""
    __tablename__ = "records"
    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_records_quantity_non_negative"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    artist = Column(String, nullable=False, index=True)
    album = Column(String, nullable=False, index=True)
    # normalize_key(artist) / normalize_key(album), kept in sync by _sync_key
    artist_key = Column(String, nullable=False)
    album_key = Column(String, nullable=False)
    price = Column(Numeric(10, 2, asdecimal=False), nullable=False)
    quantity = Column(Integer, nullable=False, default=0)
    format = Column(String, nullable=False, index=True)  # RecordFormat
    category = Column(String, nullable=False, index=True)  # RecordCategory

    # MusicBrainz enrichment
    mbid = Column(String, nullable=True)
    track_list = Column(JSON, nullable=True)  # [{position, title, duration}]
    release_year = Column(Integer, nullable=True)
    country = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    @validates("artist", "album")
    def _sync_key(self, name, value):
        setattr(self, f"{name}_key", normalize_key(value) if value is not None else None)
        return value

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "artist": self.artist,
            "album": self.album,
            "price": float(self.price) if self.price is not None else None,
            "quantity": self.quantity,
            "format": self.format,
            "category": self.category,
            "mbid": self.mbid,
            "track_list": self.track_list,
            "release_year": self.release_year,
            "country": self.country,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


# (artist, album, format) is unique regardless of letter case
Index("ux_records_artist_album_format", Record.artist_key, Record.album_key, Record.format, unique=True)
