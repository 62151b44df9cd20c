"""
番組情報取得モジュール

このモジュールはradikoの番組表を取得・検索します。
- エリア別の当日番組表の取得
- 放送中番組の特定
- 番組情報のXMLサイドカー形式への変換
"""

import asyncio
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional, TYPE_CHECKING

import aiohttp

from .context import SessionContext
from .errors import NotFoundError, ProtocolError, TransportError
from .utils.base import LoggerMixin
from .utils.datetime_utils import now_jst, parse_radiko_time
from .utils.network_utils import create_radiko_session

if TYPE_CHECKING:
    from .auth import RadikoAuthenticator


PROGRAM_ATTRIBUTES = ('ft', 'to', 'ftl', 'tol', 'dur')
PROGRAM_ELEMENTS = ('title', 'subtitle', 'pfm', 'desc', 'info', 'url')


@dataclass(frozen=True)
class Program:
    """番組情報（番組表の prog 要素に対応）"""
    ft: str
    to: str
    ftl: str = ""
    tol: str = ""
    dur: str = ""
    title: str = ""
    subtitle: str = ""
    pfm: str = ""
    desc: str = ""
    info: str = ""
    url: str = ""

    def ft_time(self) -> datetime:
        return parse_radiko_time(self.ft)

    def to_time(self) -> datetime:
        return parse_radiko_time(self.to)

    def contains(self, now: datetime) -> bool:
        """放送時間内か判定（開始を含み、終了を含まない）"""
        now_ts = int(now_jst(now).timestamp())
        return int(self.ft_time().timestamp()) <= now_ts < int(self.to_time().timestamp())

    def remaining_seconds(self, now: datetime) -> int:
        """終了までの残り秒数"""
        return int(self.to_time().timestamp()) - int(now_jst(now).timestamp())

    @classmethod
    def from_element(cls, element: ET.Element) -> 'Program':
        """prog 要素から生成"""
        values = {name: element.get(name, "") for name in PROGRAM_ATTRIBUTES}
        for name in PROGRAM_ELEMENTS:
            values[name] = element.findtext(name) or ""
        return cls(**values)

    def to_element(self) -> ET.Element:
        """prog 要素に変換"""
        element = ET.Element('prog', {name: getattr(self, name) for name in PROGRAM_ATTRIBUTES})
        for name in PROGRAM_ELEMENTS:
            ET.SubElement(element, name).text = getattr(self, name)
        return element

    def to_xml(self) -> str:
        """インデント付きXML文字列に変換（メタデータサイドカー形式）"""
        element = self.to_element()
        ET.indent(element, space="    ")
        return ET.tostring(element, encoding='unicode')

    @classmethod
    def from_xml(cls, text: str) -> 'Program':
        """メタデータサイドカー形式のXMLから復元"""
        try:
            element = ET.fromstring(text)
        except ET.ParseError as e:
            raise ProtocolError(f"番組XMLの解析に失敗しました: {e}") from e
        if element.tag != 'prog':
            raise ProtocolError(f"prog要素ではありません: {element.tag}")
        return cls.from_element(element)


@dataclass
class StationSchedule:
    """放送局ごとの番組表"""
    id: str
    name: str = ""
    date: str = ""
    programs: List[Program] = field(default_factory=list)


@dataclass
class ScheduleDocument:
    """エリアの当日番組表"""
    stations: List[StationSchedule] = field(default_factory=list)

    @property
    def station_ids(self) -> List[str]:
        return [station.id for station in self.stations]

    def find_station(self, station_id: str) -> Optional[StationSchedule]:
        for station in self.stations:
            if station.id == station_id:
                return station
        return None

    @classmethod
    def from_xml(cls, content: bytes) -> 'ScheduleDocument':
        """番組表XMLを解析

        ルート要素が <stations> の場合と、<radiko> などで包まれている場合の
        両方に対応する。
        """
        try:
            root = ET.fromstring(content)
        except ET.ParseError as e:
            raise ProtocolError(f"番組表XMLの解析に失敗しました: {e}") from e

        stations_el = root if root.tag == 'stations' else root.find('stations')
        if stations_el is None:
            return cls()

        stations = []
        for station_el in stations_el.findall('station'):
            progs_el = station_el.find('scd/progs')
            programs = []
            date = ""
            if progs_el is not None:
                date = progs_el.findtext('date') or progs_el.get('date', "")
                programs = [Program.from_element(p) for p in progs_el.findall('prog')]
            stations.append(StationSchedule(
                id=station_el.get('id', ""),
                name=(station_el.findtext('name') or "").strip(),
                date=date,
                programs=programs
            ))
        return cls(stations=stations)


def find_current_program(document: ScheduleDocument, station_id: str, now: datetime) -> Program:
    """番組表から放送中の番組を検索（線形探索）

    Raises:
        NotFoundError: 放送局が存在しない、または放送中の番組がない
        ProtocolError: 番組の時刻形式が不正
    """
    station = document.find_station(station_id)
    if station is None:
        raise NotFoundError("not found program", context={'station': station_id})

    for program in station.programs:
        try:
            if program.contains(now):
                return program
        except ValueError as e:
            raise ProtocolError(f"番組時刻の形式が不正です: {e}",
                                context={'station': station_id, 'ft': program.ft,
                                         'to': program.to}) from e

    raise NotFoundError("not found program", context={'station': station_id})


class ProgramInfoManager(LoggerMixin):
    """番組情報管理クラス"""

    # radiko API エンドポイント
    PROGRAM_TODAY_URL = "http://radiko.jp/v2/api/program/today"

    def __init__(self, now_func: Optional[Callable[[], datetime]] = None, timeout: int = 30):
        super().__init__()
        self.now_func = now_func or now_jst
        self.timeout = timeout

    async def today_programs(self, ctx: SessionContext, area_id: str) -> ScheduleDocument:
        """エリアの当日番組表を取得

        Raises:
            TransportError: 通信エラー・ステータス異常
            ProtocolError: XML形式不正
        """
        self.logger.info(f"GET {self.PROGRAM_TODAY_URL}?area_id={area_id}")
        content = await ctx.guard(self._fetch_schedule(area_id))
        document = ScheduleDocument.from_xml(content)
        self.logger.debug(f"番組表取得完了: area_id={area_id}, 放送局数={len(document.stations)}")
        return document

    async def _fetch_schedule(self, area_id: str) -> bytes:
        try:
            async with create_radiko_session(self.timeout) as session:
                async with session.get(self.PROGRAM_TODAY_URL, params={'area_id': area_id}) as response:
                    if response.status != 200:
                        raise TransportError(
                            f"not status code:200, got:{response.status}",
                            status=response.status,
                            context={'stage': 'program', 'area_id': area_id}
                        )
                    return await response.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(f"番組表の取得に失敗しました: {e}",
                                 context={'stage': 'program', 'area_id': area_id}) from e

    async def current_program(self, ctx: SessionContext, area_id: str, station_id: str) -> Program:
        """放送中の番組を取得

        Raises:
            NotFoundError: 放送中の番組が見つからない
        """
        document = await self.today_programs(ctx, area_id)
        program = find_current_program(document, station_id, self.now_func())
        self.logger.info(f"放送中番組: {program.title} ({program.ft}-{program.to})")
        return program

    async def station_list(self, ctx: SessionContext,
                           authenticator: 'RadikoAuthenticator') -> List[str]:
        """認証エリアで受信可能な放送局ID一覧を取得"""
        auth_info = await authenticator.authenticate(ctx)
        document = await self.today_programs(ctx, auth_info.area_id)
        return document.station_ids
