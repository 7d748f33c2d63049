from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.cache import CacheBackend, ReadThroughCache, make_backend
from core.config import Settings
from core.musicbrainz import MusicBrainzClient
from services.orders import OrderStateMachine
from services.records import RecordCatalog


@dataclass
class Services:
    cache: ReadThroughCache
    metadata: Optional[MusicBrainzClient]
    records: RecordCatalog
    orders: OrderStateMachine

    async def close(self) -> None:
        if self.metadata is not None:
            await self.metadata.close()
        await self.cache.close()


def build_services(
    settings: Settings,
    session_maker: async_sessionmaker[AsyncSession],
    cache_backend: Optional[CacheBackend] = None,
    metadata: Optional[MusicBrainzClient] = None,
) -> Services:
    """Wire the services explicitly; called once at process start."""
    cache = ReadThroughCache(
        cache_backend or make_backend(settings.redis_url),
        namespace=settings.cache_namespace,
        ttl=settings.cache_ttl,
    )
    if metadata is None and settings.mbid_base_url:
        metadata = MusicBrainzClient(settings.mbid_base_url, timeout=settings.mbid_timeout, cache=cache)
    return Services(
        cache=cache,
        metadata=metadata,
        records=RecordCatalog(session_maker, cache, metadata),
        orders=OrderStateMachine(session_maker, cache),
    )
