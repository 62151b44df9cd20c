"""
録音パイプラインモジュール

rtmpdump の出力をパイプで変換コマンドの入力に直結し、
1回分の録音（キャプチャ試行）を実行・監視します。

    rtmpdump --live ... -o -  |  ffmpeg -i - ... output.m4a

- 変換コマンドを先に起動し、rtmpdump の終了を待ってから変換コマンドの終了を待つ
- キャンセル時は rtmpdump を強制終了する（パイプが閉じて変換コマンドも終了する）
"""

import asyncio
import os
from pathlib import Path
from typing import List, Optional, Tuple, Union

from .auth import PLAYER_URL
from .context import SessionContext
from .converter import Converter
from .errors import CaptureError, ConfigError, SessionCancelledError
from .utils.base import LoggerMixin
from .utils.process_utils import find_command, format_command, kill_process

RTMP_URL = "rtmpe://f-radiko.smartstream.ne.jp"
PLAY_PATH = "simul-stream.stream"


class CapturePipeline(LoggerMixin):
    """rtmpdump → 変換コマンドのプロセスパイプライン"""

    # 強制終了後にプロセス回収を待つ秒数
    TERMINATE_TIMEOUT = 1.0

    def __init__(self, converter: Converter, rtmpdump_path: Optional[str] = None,
                 drain_timeout: Optional[float] = None):
        super().__init__()
        self.converter = converter
        self.rtmpdump_path = rtmpdump_path
        self.drain_timeout = drain_timeout

    def capture_command(self, rtmpdump: str, auth_token: str, station_id: str,
                        duration_seconds: int) -> List[str]:
        """rtmpdump コマンドを組み立て（プロトコル上の固定値はradiko側の要求どおり）"""
        return [
            rtmpdump,
            '--live',
            '--quiet',
            '-r', RTMP_URL,
            '--playpath', PLAY_PATH,
            '--app', f'{station_id}/_definst_',
            '-W', PLAYER_URL,
            '-C', 'S:""', '-C', 'S:""', '-C', 'S:""', '-C', f'S:{auth_token}',
            '--stop', str(duration_seconds),
            '-o', '-',
        ]

    def _resolve_rtmpdump(self) -> str:
        rtmpdump = self.rtmpdump_path or find_command(['rtmpdump'])
        if not rtmpdump:
            raise ConfigError("rtmpdump が見つかりません")
        return rtmpdump

    async def capture(self, ctx: SessionContext, auth_token: str, station_id: str,
                      duration_seconds: int, bitrate: str, output_path: Union[str, Path],
                      title: str, author: str) -> None:
        """1回分の録音を実行

        Raises:
            ConfigError: rtmpdump が見つからない
            CaptureError: プロセスの起動失敗・異常終了（強制終了を含む）
            SessionCancelledError: キャンセル後に結果が得られなかった
        """
        capture_cmd = self.capture_command(self._resolve_rtmpdump(), auth_token,
                                           station_id, duration_seconds)
        decode_cmd = self.converter.decode_command(bitrate, output_path, title, author)

        self.logger.info(f"rtmpdump command: {format_command(capture_cmd)}")
        self.logger.info(f"converter command: {format_command(decode_cmd)}")

        if ctx.cancelled:
            raise ctx.error()

        capturer, decoder = await self._start(capture_cmd, decode_cmd)

        try:
            await ctx.guard(
                self._wait(capturer, decoder, output_path),
                on_cancel=lambda: kill_process(capturer),
                drain_timeout=self.drain_timeout
            )
        except SessionCancelledError:
            await self._terminate(capturer, decoder)
            raise

    async def _start(self, capture_cmd: List[str], decode_cmd: List[str]
                     ) -> Tuple[asyncio.subprocess.Process, asyncio.subprocess.Process]:
        """変換コマンド → rtmpdump の順に起動し、パイプで接続"""
        read_fd, write_fd = os.pipe()
        decoder = None
        try:
            try:
                decoder = await asyncio.create_subprocess_exec(
                    *decode_cmd,
                    stdin=read_fd,
                    stdout=asyncio.subprocess.DEVNULL,
                    stderr=asyncio.subprocess.DEVNULL
                )
            except OSError as e:
                raise CaptureError(f"変換コマンドの起動に失敗しました: {e}",
                                   context={'stage': 'converter'}) from e

            try:
                capturer = await asyncio.create_subprocess_exec(
                    *capture_cmd,
                    stdin=asyncio.subprocess.DEVNULL,
                    stdout=write_fd,
                    stderr=asyncio.subprocess.DEVNULL
                )
            except OSError as e:
                kill_process(decoder)
                await decoder.wait()
                raise CaptureError(f"rtmpdump の起動に失敗しました: {e}",
                                   context={'stage': 'rtmpdump'}) from e
        finally:
            # 親プロセス側の両端を閉じる（rtmpdump 終了時に変換コマンドへEOFが届く）
            os.close(read_fd)
            os.close(write_fd)

        return capturer, decoder

    async def _wait(self, capturer: asyncio.subprocess.Process,
                    decoder: asyncio.subprocess.Process,
                    output_path: Union[str, Path]) -> None:
        """rtmpdump → 変換コマンドの順に終了を待つ

        rtmpdump が異常終了しても、変換コマンドには EOF が届くので
        出力ファイルが閉じられるまで待ってから rtmpdump のエラーを返す。
        """
        capture_code = await capturer.wait()
        decode_code = await decoder.wait()

        if capture_code != 0:
            raise CaptureError(f"rtmpdump が異常終了しました: exit code {capture_code}",
                               returncode=capture_code,
                               context={'stage': 'rtmpdump', 'output': str(output_path)})
        if decode_code != 0:
            raise CaptureError(f"変換コマンドが異常終了しました: exit code {decode_code}",
                               returncode=decode_code,
                               context={'stage': 'converter', 'output': str(output_path)})

        self.logger.info(f"録音パイプライン完了: {output_path}")

    async def _terminate(self, *processes: asyncio.subprocess.Process) -> None:
        """残っているプロセスを強制終了して回収"""
        for process in processes:
            kill_process(process)
        waiters = [asyncio.ensure_future(process.wait()) for process in processes]
        _, pending = await asyncio.wait(waiters, timeout=self.TERMINATE_TIMEOUT)
        if pending:
            self.logger.warning(f"プロセスの終了を確認できません: {len(pending)}件")
            for waiter in pending:
                waiter.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
