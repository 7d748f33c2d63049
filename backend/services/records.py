from typing import Any, Dict, Optional, Set
from uuid import UUID

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.cache import ReadThroughCache
from core.errors import Conflict, NotFound
from core.musicbrainz import MetadataLookupError, MusicBrainzClient
from db import ledger
from db.record import Record, normalize_key
from schemas.common import Page, Pagination
from schemas.records import RecordCreate, RecordRead, RecordUpdate
from services.base import execute
from services.filters import RecordFilter

logger = structlog.get_logger(__name__)

ENRICHABLE_FIELDS = ("album", "track_list", "release_year", "country")
NULLABLE_FIELDS = ("mbid", "track_list", "release_year", "country")


def _read(record: Record) -> RecordRead:
    return RecordRead(**record.to_schema)


def merge_enrichment(data: Dict[str, Any], enrichment: Dict[str, Any], explicit: Set[str]) -> Dict[str, Any]:
    """Fill `data` from enrichment for fields the caller did not set explicitly."""
    merged = dict(data)
    for name in ENRICHABLE_FIELDS:
        value = enrichment.get(name)
        if name in explicit or value in (None, [], ""):
            continue
        merged[name] = value
    return merged


def _to_columns(data: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(data)
    for name in ("format", "category"):
        if out.get(name) is not None:
            out[name] = getattr(out[name], "value", out[name])
    return out


async def _ensure_unique(tx: AsyncSession, artist: str, album: str, fmt: str, exclude_id: Optional[UUID] = None):
    stmt = select(Record.id).where(
        Record.artist_key == normalize_key(artist),
        Record.album_key == normalize_key(album),
        Record.format == fmt,
    )
    if exclude_id is not None:
        stmt = stmt.where(Record.id != exclude_id)
    if (await tx.execute(stmt)).first() is not None:
        raise Conflict("Record already exists")


class RecordCatalog:
    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        cache: ReadThroughCache,
        metadata: Optional[MusicBrainzClient] = None,
    ):
        self.session_maker = session_maker
        self.cache = cache
        self.metadata = metadata

    async def _enrich(self, mbid: Optional[str]) -> Dict[str, Any]:
        if not mbid or self.metadata is None:
            return {}
        try:
            release = await self.metadata.fetch_release(mbid)
        except MetadataLookupError as e:
            logger.warning("Skipping record enrichment", mbid=mbid, error=str(e))
            return {}
        return release.as_dict()

    async def create(self, payload: RecordCreate) -> RecordRead:
        data = payload.model_dump(mode="json")
        enrichment = await self._enrich(payload.mbid)
        data = _to_columns(merge_enrichment(data, enrichment, set(payload.model_fields_set)))

        async def _create(tx: AsyncSession) -> RecordRead:
            await _ensure_unique(tx, data["artist"], data["album"], data["format"])
            record = Record(**data)
            tx.add(record)
            try:
                await tx.flush()
            except IntegrityError as e:
                raise Conflict("Record already exists") from e
            return _read(record)

        record = await execute(self.session_maker, "Record creation", _create)
        await self.cache.invalidate_all()
        logger.info("Record created", record_id=str(record.id))
        return record

    async def update(self, record_id: UUID, payload: RecordUpdate) -> RecordRead:
        data = payload.model_dump(mode="json", exclude_unset=True)
        data = {k: v for k, v in data.items() if v is not None or k in NULLABLE_FIELDS}

        enrichment: Dict[str, Any] = {}
        if data.get("mbid"):
            existing = await self.get(record_id)
            if data["mbid"] != existing.mbid:
                enrichment = await self._enrich(data["mbid"])
        data = _to_columns(merge_enrichment(data, enrichment, set(payload.model_fields_set)))

        async def _update(tx: AsyncSession) -> RecordRead:
            changes = dict(data)
            record = await ledger.get(tx, record_id, for_update=True)
            if record is None:
                raise NotFound("Record not found")

            # Stock moves only through the ledger
            if "quantity" in changes:
                delta = changes.pop("quantity") - record.quantity
                if delta:
                    record = await ledger.adjust_quantity(tx, record_id, delta)

            if {"artist", "album", "format"} & changes.keys():
                await _ensure_unique(
                    tx,
                    changes.get("artist", record.artist),
                    changes.get("album", record.album),
                    changes.get("format", record.format),
                    exclude_id=record_id,
                )

            for k, v in changes.items():
                setattr(record, k, v)
            try:
                await tx.flush()
            except IntegrityError as e:
                raise Conflict("Record already exists") from e
            await tx.refresh(record)
            return _read(record)

        record = await execute(self.session_maker, "Record update", _update)
        await self.cache.invalidate_all()
        logger.info("Record updated", record_id=str(record_id), fields=sorted(data))
        return record

    async def get(self, record_id: UUID) -> RecordRead:
        async def _get(tx: AsyncSession) -> RecordRead:
            record = await ledger.get(tx, record_id)
            if record is None:
                raise NotFound("Record not found")
            return _read(record)

        return await execute(self.session_maker, "Record lookup", _get)

    async def list(self, filter: RecordFilter, pagination: Pagination) -> Page[RecordRead]:
        key = self.cache.key("records", filter.cache_params(), pagination.model_dump())

        async def _compute() -> dict:
            page = await execute(
                self.session_maker,
                "Record listing",
                lambda tx: self._query_page(tx, filter, pagination),
            )
            return page.model_dump(mode="json")

        return await self.cache.get_or_compute(key, _compute, load=Page[RecordRead].model_validate)

    async def _query_page(self, tx: AsyncSession, filter: RecordFilter, pagination: Pagination) -> Page[RecordRead]:
        where = filter.where()
        stmt = select(Record).order_by(Record.created_at.desc(), Record.id)
        count_stmt = select(func.count()).select_from(Record)
        if where is not None:
            stmt = stmt.where(where)
            count_stmt = count_stmt.where(where)

        res = await tx.execute(stmt.offset(pagination.skip).limit(pagination.limit))
        total = (await tx.execute(count_stmt)).scalar_one()
        return Page[RecordRead](items=[_read(r) for r in res.scalars().all()], total=total)
