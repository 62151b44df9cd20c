"""
録音結果保存のテスト
"""

import errno
import os
import unittest
from pathlib import Path
from unittest.mock import patch

from radicast.errors import PersistenceError
from radicast.persister import AUDIO_FILENAME, METADATA_FILENAME, ResultPersister
from radicast.program_info import Program
from radicast.session import CaptureAttempt, CaptureOutcome, SessionResult, SessionState
from tests.utils.test_environment import (
    SAMPLE_STATION_ID, TemporaryTestEnvironment, create_sample_program
)


class TestResultPersister(unittest.TestCase):
    """ResultPersister テスト"""

    def setUp(self):
        self.temp_env = TemporaryTestEnvironment()
        self.temp_env.__enter__()
        self.program = create_sample_program()
        self.persister = ResultPersister()

    def tearDown(self):
        self.temp_env.__exit__(None, None, None)

    def _create_result(self, name: str = "radiko_0.m4a",
                       content: bytes = b"fake m4a audio data") -> SessionResult:
        path = self.temp_env.create_sample_audio(name, content)
        attempt = CaptureAttempt(index=0, output_path=path, station_id=SAMPLE_STATION_ID,
                                 program=self.program, outcome=CaptureOutcome.SUCCESS)
        return SessionResult(station_id=SAMPLE_STATION_ID, attempts=[attempt],
                             state=SessionState.SUCCESS, output_path=path)

    def test_01_番組ディレクトリに音声と番組情報を保存(self):
        # Given: 録音結果
        result = self._create_result()
        source = result.output_path

        # When: 保存
        saved = self.persister.save(result, self.temp_env.output_dir)

        # Then: <ft>_<station> ディレクトリに保存される
        expected_dir = self.temp_env.output_dir / f"20240101120000_{SAMPLE_STATION_ID}"
        self.assertEqual(saved.directory, expected_dir)
        self.assertEqual(saved.audio_path, expected_dir / AUDIO_FILENAME)
        self.assertEqual(saved.metadata_path, expected_dir / METADATA_FILENAME)

        # And: 音声は移動される
        self.assertEqual(saved.audio_path.read_bytes(), b"fake m4a audio data")
        self.assertFalse(source.exists())

        # And: 番組情報のXMLから元の番組を復元できる
        restored = Program.from_xml(saved.metadata_path.read_text(encoding='utf-8'))
        self.assertEqual(restored, self.program)

        # And: 一時ファイルは残らない
        self.assertEqual(sorted(p.name for p in expected_dir.iterdir()),
                         [AUDIO_FILENAME, METADATA_FILENAME])

    @patch('radicast.persister.MP4')
    def test_02_MP4タグを書き込む(self, mock_mp4):
        result = self._create_result()

        self.persister.save(result, self.temp_env.output_dir)

        audio = mock_mp4.return_value
        audio.__setitem__.assert_any_call('©nam', 'Morning Show')
        audio.__setitem__.assert_any_call('©ART', 'テスト出演者')
        audio.__setitem__.assert_any_call('©gen', 'radio')
        audio.__setitem__.assert_any_call('©day', '2024-01-01')
        audio.save.assert_called_once()

    def test_03_タグ書き込みに失敗しても保存する(self):
        # 実際のMP4ではないためタグ書き込みは失敗する
        result = self._create_result()

        with self.assertLogs('radicast.persister', level='WARNING'):
            saved = self.persister.save(result, self.temp_env.output_dir)

        self.assertTrue(saved.audio_path.exists())
        self.assertTrue(saved.metadata_path.exists())

    def test_04_同じ番組の再保存は上書き(self):
        self.persister.save(self._create_result(content=b"first"), self.temp_env.output_dir)
        saved = self.persister.save(self._create_result("radiko_concat.m4a", b"second"),
                                    self.temp_env.output_dir)

        self.assertEqual(saved.audio_path.read_bytes(), b"second")

    def test_05_別ファイルシステムへはコピーして元を削除(self):
        result = self._create_result()
        source = result.output_path
        real_replace = os.replace

        def cross_device_replace(src, dst):
            if Path(src) == source:
                raise OSError(errno.EXDEV, "Invalid cross-device link")
            return real_replace(src, dst)

        with patch('radicast.utils.path_utils.os.replace', side_effect=cross_device_replace):
            saved = self.persister.save(result, self.temp_env.output_dir)

        self.assertEqual(saved.audio_path.read_bytes(), b"fake m4a audio data")
        self.assertFalse(source.exists())
        self.assertTrue(saved.metadata_path.exists())

    def test_06_出力ファイルがない結果はPersistenceError(self):
        result = SessionResult(station_id=SAMPLE_STATION_ID, state=SessionState.SUCCESS)

        with self.assertRaises(PersistenceError):
            self.persister.save(result, self.temp_env.output_dir)

    def test_07_保存先を作成できない場合はPersistenceError(self):
        result = self._create_result()
        blocker = self.temp_env.temp_dir / "not_a_directory"
        blocker.write_text("file")

        with self.assertRaises(PersistenceError) as cm:
            self.persister.save(result, blocker)

        self.assertFalse(cm.exception.retryable)
        self.assertTrue(result.output_path.exists())

    def test_08_音声の移動に失敗した場合は番組情報を公開しない(self):
        result = self._create_result()
        source = result.output_path

        with patch('radicast.persister.rename_or_copy', side_effect=OSError("disk full")):
            with self.assertRaises(PersistenceError):
                self.persister.save(result, self.temp_env.output_dir)

        directory = self.temp_env.output_dir / f"20240101120000_{SAMPLE_STATION_ID}"
        self.assertFalse((directory / METADATA_FILENAME).exists())
        self.assertTrue(source.exists())


if __name__ == "__main__":
    unittest.main()
