"""
録音パイプラインのテスト

rtmpdump と変換コマンドの代わりに /bin/sh スクリプトを実プロセスとして起動し、
パイプ接続・異常終了・キャンセル時の挙動をテストします。
"""

import asyncio
import time
import unittest
from unittest.mock import patch

from radicast.capture import PLAY_PATH, RTMP_URL, CapturePipeline
from radicast.auth import PLAYER_URL
from radicast.context import SessionContext
from radicast.converter import Converter
from radicast.errors import CaptureError, ConfigError, SessionCancelledError
from tests.utils.test_environment import TemporaryTestEnvironment


class TestCaptureCommand(unittest.TestCase):
    """rtmpdump コマンド組み立てテスト"""

    def test_01_固定値と放送局IDを含むコマンド(self):
        pipeline = CapturePipeline(Converter("/usr/bin/ffmpeg"))

        cmd = pipeline.capture_command("/usr/bin/rtmpdump", "TOKEN", "TBS", 1860)

        self.assertEqual(cmd, [
            "/usr/bin/rtmpdump", "--live", "--quiet",
            "-r", RTMP_URL,
            "--playpath", PLAY_PATH,
            "--app", "TBS/_definst_",
            "-W", PLAYER_URL,
            "-C", 'S:""', "-C", 'S:""', "-C", 'S:""', "-C", "S:TOKEN",
            "--stop", "1860",
            "-o", "-",
        ])


class TestCapturePipeline(unittest.TestCase):
    """録音パイプライン実行テスト"""

    def setUp(self):
        self.temp_env = TemporaryTestEnvironment()
        self.temp_env.__enter__()
        self.output = self.temp_env.work_dir / "radiko_0.m4a"
        self.args_file = self.temp_env.temp_dir / "rtmpdump_args"
        self.converter = Converter(self.temp_env.create_copy_converter())

    def tearDown(self):
        self.temp_env.__exit__(None, None, None)

    def _rtmpdump(self, body: str) -> str:
        return self.temp_env.create_command(
            "rtmpdump", f'printf "%s\\n" "$@" > "{self.args_file}"\n{body}'
        )

    def _capture(self, pipeline: CapturePipeline, cancel_after: float = None):
        async def run_test():
            async with SessionContext() as ctx:
                if cancel_after is not None:
                    asyncio.get_running_loop().call_later(cancel_after, ctx.cancel)
                await pipeline.capture(ctx, "TOKEN", "TEST1", 1860, "64k", self.output,
                                       "Morning Show (2024-01-01 12:00:00 +0900 JST)", "出演者")

        asyncio.run(run_test())

    def test_01_rtmpdumpの出力が変換コマンドに渡る(self):
        # Given: 音声データを出力する rtmpdump
        pipeline = CapturePipeline(self.converter,
                                   rtmpdump_path=self._rtmpdump("printf 'audio-data'"))

        # When: 録音
        self._capture(pipeline)

        # Then: 変換コマンドが出力ファイルに書き出している
        self.assertEqual(self.output.read_bytes(), b"audio-data")

        # And: rtmpdump に放送局・トークン・録音秒数が渡っている
        args = self.args_file.read_text().splitlines()
        self.assertIn("TEST1/_definst_", args)
        self.assertIn("S:TOKEN", args)
        self.assertEqual(args[args.index("--stop") + 1], "1860")
        self.assertEqual(args[-2:], ["-o", "-"])

    def test_02_rtmpdumpの異常終了でも出力ファイルは閉じられる(self):
        pipeline = CapturePipeline(self.converter,
                                   rtmpdump_path=self._rtmpdump("printf 'partial'\nexit 1"))

        with self.assertRaises(CaptureError) as cm:
            self._capture(pipeline)

        self.assertEqual(cm.exception.returncode, 1)
        self.assertEqual(cm.exception.context['stage'], 'rtmpdump')
        self.assertEqual(self.output.read_bytes(), b"partial")

    def test_03_変換コマンドの異常終了(self):
        failing = Converter(self.temp_env.create_command(
            "ffmpeg", "cat > /dev/null\nexit 2"
        ))
        pipeline = CapturePipeline(failing, rtmpdump_path=self._rtmpdump("printf 'audio'"))

        with self.assertRaises(CaptureError) as cm:
            self._capture(pipeline)

        self.assertEqual(cm.exception.returncode, 2)
        self.assertEqual(cm.exception.context['stage'], 'converter')

    def test_04_キャンセルでrtmpdumpを停止し結果を返す(self):
        """
        キャンセル時は rtmpdump を強制終了し、変換コマンドが書き終えた結果を報告する
        """
        # Given: 長時間録音を続ける rtmpdump
        pipeline = CapturePipeline(self.converter, rtmpdump_path=self._rtmpdump(
            "printf 'partial'\nexec sleep 30"
        ))

        # When: 録音中にキャンセル
        started = time.monotonic()
        with self.assertRaises(CaptureError) as cm:
            self._capture(pipeline, cancel_after=0.5)

        # Then: 強制終了による異常終了として報告され、部分ファイルが残る
        self.assertLess(time.monotonic() - started, 10)
        self.assertLess(cm.exception.returncode, 0)
        self.assertEqual(self.output.read_bytes(), b"partial")

    def test_05_キャンセル後に結果が来なければSessionCancelledError(self):
        # Given: 標準入力を読まずに終了しない変換コマンド
        stuck = Converter(self.temp_env.create_command("ffmpeg", "exec sleep 30"))
        pipeline = CapturePipeline(stuck, rtmpdump_path=self._rtmpdump("exec sleep 30"),
                                   drain_timeout=0.5)

        started = time.monotonic()
        with self.assertRaises(SessionCancelledError):
            self._capture(pipeline, cancel_after=0.3)

        self.assertLess(time.monotonic() - started, 10)

    def test_06_キャンセル済みならプロセスを起動しない(self):
        pipeline = CapturePipeline(self.converter,
                                   rtmpdump_path=self._rtmpdump("printf 'audio'"))

        async def run_test():
            async with SessionContext() as ctx:
                ctx.cancel()
                await pipeline.capture(ctx, "TOKEN", "TEST1", 60, "64k", self.output, "t", "a")

        with self.assertRaises(SessionCancelledError):
            asyncio.run(run_test())
        self.assertFalse(self.args_file.exists())
        self.assertFalse(self.output.exists())

    def test_07_rtmpdumpが見つからない場合はConfigError(self):
        pipeline = CapturePipeline(self.converter)

        with patch('radicast.capture.find_command', return_value=None):
            with self.assertRaises(ConfigError):
                self._capture(pipeline)

    def test_08_変換コマンドを起動できない場合はCaptureError(self):
        pipeline = CapturePipeline(Converter(str(self.temp_env.bin_dir / "missing" / "ffmpeg")),
                                   rtmpdump_path=self._rtmpdump("printf 'audio'"))

        with self.assertRaises(CaptureError) as cm:
            self._capture(pipeline)

        self.assertEqual(cm.exception.context['stage'], 'converter')
        self.assertFalse(self.args_file.exists())

    def test_09_終了を確認できないプロセスの待機タスクを残さない(self):
        """
        強制終了後も終了しないプロセスの回収待ちは、期限後にキャンセルして回収する
        """
        pipeline = CapturePipeline(self.converter)
        pipeline.TERMINATE_TIMEOUT = 0.1

        async def run_test():
            process = await asyncio.create_subprocess_exec("sleep", "30")
            try:
                # Given: kill が届かないプロセス
                with patch('radicast.capture.kill_process'):
                    # When: 強制終了して回収
                    await pipeline._terminate(process)

                # Then: 期限後に戻り、待機タスクが残っていない
                return [t for t in asyncio.all_tasks() if t is not asyncio.current_task()]
            finally:
                process.kill()
                await process.wait()

        started = time.monotonic()
        leftover = asyncio.run(run_test())

        self.assertEqual(leftover, [])
        self.assertLess(time.monotonic() - started, 10)


if __name__ == "__main__":
    unittest.main()
