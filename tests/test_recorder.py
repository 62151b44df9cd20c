"""
録音実行（セッション → 結合 → 保存）のテスト
"""

import asyncio
import unittest
from dataclasses import replace
from unittest.mock import AsyncMock, MagicMock

from radicast.context import SessionContext
from radicast.converter import Converter
from radicast.errors import CaptureError, MergeError
from radicast.recorder import RadikoRecorder
from radicast.session import CaptureAttempt, CaptureOutcome, SessionResult, SessionState
from tests.utils.test_environment import (
    SAMPLE_STATION_ID, TemporaryTestEnvironment, create_sample_program
)


class TestRadikoRecorder(unittest.TestCase):
    """RadikoRecorder テスト"""

    def setUp(self):
        self.temp_env = TemporaryTestEnvironment()
        self.temp_env.__enter__()
        self.merger = MagicMock()
        self.persister = MagicMock()
        self.recorder = RadikoRecorder(
            station_id=SAMPLE_STATION_ID,
            converter=Converter("/usr/bin/ffmpeg"),
            temp_dir=self.temp_env.work_dir,
            authenticator=MagicMock(),
            program_manager=MagicMock(),
            pipeline=MagicMock(),
            merger=self.merger,
            persister=self.persister
        )

    def tearDown(self):
        self.temp_env.__exit__(None, None, None)

    def _result(self, count: int) -> SessionResult:
        attempts = [
            CaptureAttempt(index=i,
                           output_path=self.temp_env.create_sample_audio(f"radiko_{i}.m4a"),
                           station_id=SAMPLE_STATION_ID,
                           program=create_sample_program(),
                           outcome=CaptureOutcome.SUCCESS)
            for i in range(count)
        ]
        return SessionResult(station_id=SAMPLE_STATION_ID, attempts=attempts,
                             state=SessionState.SUCCESS,
                             output_path=attempts[0].output_path if count == 1 else None)

    def _run(self, result: SessionResult) -> SessionResult:
        self.recorder.supervisor.run_session = AsyncMock(return_value=result)

        async def run_test():
            async with SessionContext() as ctx:
                return await self.recorder.run(ctx)

        return asyncio.run(run_test())

    def test_01_試行が1つならそのまま返す(self):
        result = self._result(1)

        returned = self._run(result)

        self.assertIs(returned, result)
        self.merger.merge.assert_not_called()

    def test_02_試行が複数なら結合する(self):
        result = self._result(3)
        merged = replace(result, output_path=self.temp_env.work_dir / "radiko_concat.m4a",
                         merged=True)
        self.merger.merge.return_value = merged

        returned = self._run(result)

        self.assertIs(returned, merged)
        self.merger.merge.assert_called_once_with(result)

    def test_03_試行がなければCaptureError(self):
        with self.assertRaises(CaptureError) as cm:
            self._run(SessionResult(station_id=SAMPLE_STATION_ID, state=SessionState.EXHAUSTED))
        self.assertEqual(cm.exception.message, "empty outputs")

    def test_04_結合の失敗はそのまま送出(self):
        self.merger.merge.side_effect = MergeError("部分ファイルの結合に失敗しました")

        with self.assertRaises(MergeError):
            self._run(self._result(2))

    def test_05_保存は保存処理に委譲(self):
        result = self._result(1)

        self.recorder.save(result, self.temp_env.output_dir)

        self.persister.save.assert_called_once_with(result, self.temp_env.output_dir)

    def test_06_セッション設定の引き渡し(self):
        recorder = RadikoRecorder(
            station_id="QRR",
            converter=Converter("/usr/bin/ffmpeg"),
            temp_dir=self.temp_env.work_dir,
            bitrate="48k",
            buffer=120
        )

        self.assertEqual(recorder.supervisor.station_id, "QRR")
        self.assertEqual(recorder.supervisor.bitrate, "48k")
        self.assertEqual(recorder.supervisor.buffer, 120)
        self.assertIs(recorder.supervisor.pipeline.converter, recorder.converter)


if __name__ == "__main__":
    unittest.main()
