"""
Radiko adapter.

Reads a station's weekly program schedule (XML). Each ``<prog>`` becomes
one raw item; attributes carry the JST start/end stamps and the length
in seconds. Station display metadata comes from the area station list.
"""

import logging
import xml.etree.ElementTree as ET
from datetime import datetime

from src.ingestion.base_adapter import PlatformAdapter
from src.ingestion.errors import AdapterError
from src.ingestion.http_client import HTTPClient
from src.ingestion.schemas import Platform, RawItem, SourceDetails, SourceRef

logger = logging.getLogger(__name__)

WEEKLY_PROGRAM_URL = "https://radiko.jp/v3/program/station/weekly/{station}.xml"
STATION_LIST_URL = "https://radiko.jp/v3/station/list/{area}.xml"


def _text(node: ET.Element, tag: str) -> str | None:
    value = node.findtext(tag)
    return value.strip() if value and value.strip() else None


def parse_weekly_programs(xml_text: str, station_id: str) -> list[dict[str, str | None]]:
    """Flatten every ``<prog>`` in a weekly schedule document."""
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as e:
        raise AdapterError(f"Invalid schedule XML for {station_id}: {e}", platform=Platform.RADIKO.value) from e

    programs = []
    for prog in root.iter("prog"):
        programs.append({
            "id": prog.get("id"),
            "station_id": station_id,
            "ft": prog.get("ft"),
            "to": prog.get("to"),
            "dur": prog.get("dur"),
            "title": _text(prog, "title"),
            "desc": _text(prog, "desc") or _text(prog, "info"),
            "img": _text(prog, "img"),
            "url": _text(prog, "url"),
        })
    return programs


class RadikoAdapter(PlatformAdapter):
    """Adapter for radiko stations; the external id is the station id."""

    def __init__(self, http: HTTPClient, area_id: str = "JP13", rate_limit: int = 30):
        super().__init__(http, rate_limit=rate_limit)
        self._area_id = area_id

    @property
    def platform(self) -> Platform:
        return Platform.RADIKO

    async def list_items_since(self, source: SourceRef, since: datetime) -> list[RawItem]:
        url = WEEKLY_PROGRAM_URL.format(station=source.external_id)
        body = await self._call(self._http.get_text(url), f"weekly schedule {source.external_id}")
        return [
            RawItem(platform=Platform.RADIKO, kind="program", data=program)
            for program in parse_weekly_programs(body, source.external_id)
        ]

    async def fetch_source_details(self, source: SourceRef) -> SourceDetails | None:
        url = STATION_LIST_URL.format(area=self._area_id)
        body = await self._call(self._http.get_text(url), f"station list {self._area_id}")
        try:
            root = ET.fromstring(body)
        except ET.ParseError as e:
            raise AdapterError(f"Invalid station list XML: {e}", platform=self.platform.value) from e

        for station in root.iter("station"):
            station_id = _text(station, "id") or station.get("id")
            if station_id != source.external_id:
                continue
            return SourceDetails(
                external_id=station_id,
                display_name=_text(station, "name"),
                handle=station_id,
                thumbnail_url=_text(station, "logo") or _text(station, "banner"),
            )

        logger.info(f"Station {source.external_id} not listed in area {self._area_id}")
        return None
