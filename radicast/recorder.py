"""
録音実行モジュール

録音セッション → 部分ファイル結合 → 保存 の一連の流れをまとめます。
"""

import asyncio
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional, Union

from .auth import RadikoAuthenticator
from .capture import CapturePipeline
from .context import SessionContext
from .converter import Converter
from .errors import CaptureError
from .merger import SegmentMerger
from .persister import PersistedProgram, ResultPersister
from .program_info import ProgramInfoManager
from .session import SessionResult, SessionSupervisor
from .utils.base import LoggerMixin


class RadikoRecorder(LoggerMixin):
    """放送中番組の録音"""

    def __init__(self,
                 station_id: str,
                 converter: Converter,
                 temp_dir: Union[str, Path],
                 bitrate: str = "64k",
                 buffer: int = 60,
                 authenticator: Optional[RadikoAuthenticator] = None,
                 program_manager: Optional[ProgramInfoManager] = None,
                 pipeline: Optional[CapturePipeline] = None,
                 merger: Optional[SegmentMerger] = None,
                 persister: Optional[ResultPersister] = None,
                 now_func: Optional[Callable[[], datetime]] = None):
        super().__init__()
        self.station_id = station_id
        self.converter = converter
        self.authenticator = authenticator or RadikoAuthenticator()
        self.program_manager = program_manager or ProgramInfoManager(now_func=now_func)
        self.pipeline = pipeline or CapturePipeline(converter)
        self.merger = merger or SegmentMerger(converter)
        self.persister = persister or ResultPersister()
        self.supervisor = SessionSupervisor(
            station_id=station_id,
            authenticator=self.authenticator,
            program_manager=self.program_manager,
            pipeline=self.pipeline,
            temp_dir=temp_dir,
            bitrate=bitrate,
            buffer=buffer,
            now_func=now_func
        )

    async def run(self, ctx: SessionContext) -> SessionResult:
        """録音を実行し、必要なら部分ファイルを結合

        Raises:
            CaptureError: 録音ファイルが1つも得られなかった
            MergeError: 結合に失敗した（部分ファイルは残る）
        """
        result = await self.supervisor.run_session(ctx)

        if not result.attempts:
            raise CaptureError("empty outputs", context={'station': self.station_id})
        if len(result.attempts) == 1:
            return result

        # 結合はブロッキング処理のためワーカースレッドで実行
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.merger.merge, result)

    def save(self, result: SessionResult, root: Union[str, Path]) -> PersistedProgram:
        return self.persister.save(result, root)
