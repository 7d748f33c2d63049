from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from core.auth import current_creator
from db.record import RecordCategory, RecordFormat
from db.users import User
from routers.deps import get_services
from schemas.common import Envelope, PageMeta, PageParams, page_params
from schemas.records import RecordCreate, RecordRead, RecordUpdate
from services.container import Services
from services.filters import RecordFilter

router = APIRouter()


@router.post("", response_model=Envelope[RecordRead], status_code=status.HTTP_201_CREATED)
async def create_record(
    payload: RecordCreate,
    services: Services = Depends(get_services),
    user: User = Depends(current_creator),
):
    record = await services.records.create(payload)
    return Envelope[RecordRead](responseText="Record successfully created.", data=record)


@router.put("/{record_id}", response_model=Envelope[RecordRead])
async def update_record(
    record_id: UUID,
    payload: RecordUpdate,
    services: Services = Depends(get_services),
    user: User = Depends(current_creator),
):
    record = await services.records.update(record_id, payload)
    return Envelope[RecordRead](responseText="Record successfully updated.", data=record)


@router.get("", response_model=Envelope[PageMeta[RecordRead]])
async def list_records(
    q: Optional[str] = Query(None, description="Search across artist, album and category"),
    artist: Optional[str] = None,
    album: Optional[str] = None,
    format: Optional[RecordFormat] = None,
    category: Optional[RecordCategory] = None,
    params: PageParams = Depends(page_params),
    services: Services = Depends(get_services),
):
    record_filter = RecordFilter(q=q, artist=artist, album=album, format=format, category=category)
    page = await services.records.list(record_filter, params.to_pagination())
    return Envelope[PageMeta[RecordRead]](responseText="Record successfully fetched.", data=params.shape(page))


@router.get("/{record_id}", response_model=Envelope[RecordRead])
async def get_record(record_id: UUID, services: Services = Depends(get_services)):
    record = await services.records.get(record_id)
    return Envelope[RecordRead](responseText="Record successfully fetched.", data=record)
