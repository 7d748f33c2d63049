"""MusicBrainz release lookup used to enrich catalog records.

Lookups are best-effort: every failure surfaces as MetadataLookupError and the
catalog carries on without enrichment.
"""

import xml.etree.ElementTree as ET
from dataclasses import asdict, dataclass, field
from typing import List, Optional

import httpx
import structlog

from core.cache import ReadThroughCache

logger = structlog.get_logger(__name__)

MMD_NS = {"mb": "http://musicbrainz.org/ns/mmd-2.0#"}


class MetadataLookupError(Exception):
    pass


@dataclass
class ReleaseMetadata:
    album: Optional[str] = None
    track_list: List[dict] = field(default_factory=list)
    release_year: Optional[int] = None
    country: Optional[str] = None

    def as_dict(self) -> dict:
        return asdict(self)


def _int_or_none(text: Optional[str]) -> Optional[int]:
    if not text:
        return None
    digits = text.strip()
    try:
        return int(digits)
    except ValueError:
        return None


def parse_release_xml(payload: str) -> ReleaseMetadata:
    """Parse an MMD-2.0 `release` document (with `inc=recordings`)."""
    try:
        root = ET.fromstring(payload)
    except ET.ParseError as e:
        raise MetadataLookupError(f"Invalid release XML: {e}") from e

    release = root.find("mb:release", MMD_NS)
    if release is None:
        raise MetadataLookupError("No release element in response")

    date = release.findtext("mb:date", default=None, namespaces=MMD_NS)
    tracks = []
    # Only the first medium is used for the track list
    for track in release.findall("mb:medium-list/mb:medium[1]/mb:track-list/mb:track", MMD_NS):
        tracks.append({
            "position": _int_or_none(track.findtext("mb:position", namespaces=MMD_NS)),
            "title": track.findtext("mb:recording/mb:title", default="", namespaces=MMD_NS),
            "duration": _int_or_none(track.findtext("mb:length", namespaces=MMD_NS)),
        })

    return ReleaseMetadata(
        album=release.findtext("mb:title", default=None, namespaces=MMD_NS),
        track_list=tracks,
        release_year=_int_or_none(date[:4]) if date else None,
        country=release.findtext("mb:country", default=None, namespaces=MMD_NS),
    )


class MusicBrainzClient:
    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        cache: Optional[ReadThroughCache] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.cache = cache
        self._http = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            headers={"Accept": "application/xml", "User-Agent": "record-store-api/0.1"},
            transport=transport,
        )

    async def fetch_release(self, mbid: str) -> ReleaseMetadata:
        cache_key = self.cache.key("release", mbid) if self.cache else None
        if cache_key:
            cached = await self.cache.get(cache_key)
            if cached is not None:
                return ReleaseMetadata(**cached)

        try:
            resp = await self._http.get(f"/ws/2/release/{mbid}", params={"inc": "recordings", "fmt": "xml"})
            resp.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("MusicBrainz lookup failed", mbid=mbid, error=repr(e))
            raise MetadataLookupError(f"MusicBrainz lookup failed for {mbid}") from e

        metadata = parse_release_xml(resp.text)
        if cache_key:
            await self.cache.set(cache_key, metadata.as_dict())
        return metadata

    async def close(self) -> None:
        await self._http.aclose()
