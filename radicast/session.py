"""
録音セッション監視モジュール

1番組分の録音セッションを状態機械として管理します。

    IDLE → RECORDING → SUCCESS
                     → RETRYING → RECORDING ...
                     → EXHAUSTED（リトライ上限）
                     → CANCELLED（キャンセル）
                     → ABORTED（リトライしないエラー）

- 試行ごとに認証・放送中番組の取得をやり直し、残り時間を計算して録音する
- 失敗時は一定間隔で最大5回までリトライする（合計6回）
- 出力ファイルが存在する試行は、エラーがあっても録音順に保持する
"""

import tempfile
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Tuple, Union

from .auth import RadikoAuthenticator
from .capture import CapturePipeline
from .context import SessionContext
from .errors import CaptureError, RadicastError, SessionCancelledError
from .program_info import Program, ProgramInfoManager
from .utils.base import LoggerMixin
from .utils.datetime_utils import now_jst
from .utils.path_utils import ensure_directory_path_exists


class SessionState(Enum):
    """録音セッションの状態"""
    IDLE = "idle"
    RECORDING = "recording"
    RETRYING = "retrying"
    SUCCESS = "success"
    EXHAUSTED = "exhausted"
    CANCELLED = "cancelled"
    ABORTED = "aborted"


class CaptureOutcome(Enum):
    """キャプチャ試行の結果"""
    SUCCESS = "success"
    FAILED = "failed"
    KILLED = "killed"


@dataclass(frozen=True)
class CaptureAttempt:
    """1回分のキャプチャ試行"""
    index: int
    output_path: Path
    station_id: str
    program: Program
    outcome: CaptureOutcome
    error: Optional[RadicastError] = None


@dataclass
class SessionResult:
    """録音セッションの結果"""
    station_id: str
    attempts: List[CaptureAttempt] = field(default_factory=list)
    state: SessionState = SessionState.IDLE
    output_path: Optional[Path] = None
    merged: bool = False
    error: Optional[RadicastError] = None

    @property
    def program(self) -> Optional[Program]:
        """最初の試行の番組情報（タイトル・時刻の基準）"""
        return self.attempts[0].program if self.attempts else None

    @property
    def partial_paths(self) -> List[Path]:
        return [attempt.output_path for attempt in self.attempts]


class SessionSupervisor(LoggerMixin):
    """録音セッションのリトライ・状態管理"""

    MAX_RETRIES = 5
    RETRY_INTERVAL = 10

    def __init__(self,
                 station_id: str,
                 authenticator: RadikoAuthenticator,
                 program_manager: ProgramInfoManager,
                 pipeline: CapturePipeline,
                 temp_dir: Union[str, Path],
                 bitrate: str = "64k",
                 buffer: int = 60,
                 now_func: Optional[Callable[[], datetime]] = None):
        super().__init__()
        self.station_id = station_id
        self.authenticator = authenticator
        self.program_manager = program_manager
        self.pipeline = pipeline
        self.temp_dir = Path(temp_dir)
        self.bitrate = bitrate
        self.buffer = buffer
        self.now_func = now_func or now_jst
        self.state = SessionState.IDLE

    def _transition(self, state: SessionState) -> None:
        if state != self.state:
            self.logger.debug(f"状態遷移: {self.state.value} -> {state.value}")
        self.state = state

    async def run_session(self, ctx: SessionContext) -> SessionResult:
        """録音セッションを実行

        Returns:
            SessionResult: 保持した全試行（録音順）と終了状態

        Raises:
            CaptureError: 出力ファイルが1つも得られなかった（"empty outputs"）
            ConfigError / NotFoundError: 試行が1つも得られないまま中断した場合はその例外
        """
        session_dir = Path(tempfile.mkdtemp(
            prefix=f"{self.station_id}_",
            dir=ensure_directory_path_exists(self.temp_dir)
        ))
        started = time.monotonic()
        attempts: List[CaptureAttempt] = []
        last_error: Optional[RadicastError] = None
        retry = 0

        while True:
            self._transition(SessionState.RECORDING)
            self.logger.info(f"録音開始: 試行 {retry + 1}/{self.MAX_RETRIES + 1} "
                             f"(経過 {int(time.monotonic() - started)}秒)")

            attempt, error = await self._record(ctx, session_dir, retry)
            if attempt is not None:
                attempts.append(attempt)

            if error is None:
                final_state = SessionState.SUCCESS
                break

            last_error = error
            self.logger.warning(f"録音エラー: {error}")

            if isinstance(error, SessionCancelledError) or ctx.cancelled:
                final_state = SessionState.CANCELLED
                break

            if not error.retryable:
                final_state = SessionState.ABORTED
                break

            if retry >= self.MAX_RETRIES:
                final_state = SessionState.EXHAUSTED
                break

            self._transition(SessionState.RETRYING)
            self.logger.info(f"{self.RETRY_INTERVAL}秒後にリトライします")
            if not await ctx.sleep(self.RETRY_INTERVAL):
                final_state = SessionState.CANCELLED
                break
            retry += 1

        self._transition(final_state)
        self.logger.info(f"録音セッション終了: 状態={final_state.value}, 試行数={retry + 1}, "
                         f"出力数={len(attempts)}")
        return self._finish(attempts, final_state, last_error)

    def _finish(self, attempts: List[CaptureAttempt], state: SessionState,
                last_error: Optional[RadicastError]) -> SessionResult:
        if not attempts:
            if state == SessionState.ABORTED and last_error is not None:
                raise last_error
            raise CaptureError("empty outputs",
                               context={'station': self.station_id, 'state': state.value}
                               ) from last_error

        return SessionResult(
            station_id=self.station_id,
            attempts=attempts,
            state=state,
            output_path=attempts[0].output_path if len(attempts) == 1 else None,
            error=None if state == SessionState.SUCCESS else last_error
        )

    async def _record(self, ctx: SessionContext, session_dir: Path, index: int
                      ) -> Tuple[Optional[CaptureAttempt], Optional[RadicastError]]:
        """1回分の試行（認証 → 番組取得 → 録音）

        Returns:
            (試行, エラー) 出力ファイルがない場合の試行はNone
        """
        output = session_dir / f"radiko_{index}.m4a"

        try:
            auth_info = await self.authenticator.authenticate(ctx)
            program = await self.program_manager.current_program(
                ctx, auth_info.area_id, self.station_id
            )
        except RadicastError as e:
            return None, e

        duration = program.remaining_seconds(self.now_func()) + self.buffer
        title = f"{program.title} ({program.ft_time().strftime('%Y-%m-%d %H:%M:%S %z %Z')})"
        self.logger.info(f"番組録音開始: {program.title} 残り{duration}秒 -> {output}")

        error: Optional[RadicastError] = None
        try:
            await self.pipeline.capture(ctx, auth_info.auth_token, self.station_id, duration,
                                        self.bitrate, output, title, program.pfm)
        except RadicastError as e:
            error = e

        if not output.exists():
            if error is None:
                error = CaptureError("出力ファイルが作成されませんでした",
                                     context={'output': str(output)})
            return None, error

        if error is None:
            outcome = CaptureOutcome.SUCCESS
        elif ctx.cancelled:
            outcome = CaptureOutcome.KILLED
        else:
            outcome = CaptureOutcome.FAILED

        return CaptureAttempt(
            index=index,
            output_path=output,
            station_id=self.station_id,
            program=program,
            outcome=outcome,
            error=error
        ), error
