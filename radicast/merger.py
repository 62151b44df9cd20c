"""
部分ファイル結合モジュール

リトライで複数に分かれた録音ファイルを、変換コマンドの concat 入力で
再エンコードせずに1つのファイルへ結合します。
結合に失敗しても部分ファイルは削除しません。
"""

from dataclasses import replace
from pathlib import Path
from typing import List, Optional, Union

import ffmpeg

from .converter import Converter
from .errors import MergeError
from .session import CaptureAttempt, SessionResult
from .utils.base import LoggerMixin

CONCAT_FILENAME = "radiko_concat.m4a"


class SegmentMerger(LoggerMixin):
    """部分ファイルの結合"""

    def __init__(self, converter: Converter, output_dir: Optional[Union[str, Path]] = None):
        super().__init__()
        self.converter = converter
        self.output_dir = Path(output_dir) if output_dir is not None else None

    def concat_stream(self, paths: List[Path], output_path: Path):
        """concat 入力 → 音声コピー出力のストリームを組み立て"""
        source = "concat:" + "|".join(str(p) for p in paths)
        return ffmpeg.input(source).output(str(output_path), acodec='copy')

    def merge(self, result: SessionResult) -> SessionResult:
        """全試行の出力を録音順に結合

        Returns:
            SessionResult: 結合後のファイルを出力とする結果
                （放送局・番組情報は最初の試行のもの）

        Raises:
            MergeError: 変換コマンドの失敗・起動失敗
        """
        attempts: List[CaptureAttempt] = result.attempts
        if len(attempts) < 2:
            raise MergeError("結合には2つ以上の部分ファイルが必要です",
                             context={'attempts': len(attempts)})

        output_dir = self.output_dir or attempts[0].output_path.parent
        output_path = output_dir / CONCAT_FILENAME
        stream = self.concat_stream(result.partial_paths, output_path)

        self.logger.info(f"部分ファイル結合開始: {len(attempts)}件 -> {output_path}")
        self.logger.debug(f"merge command: {' '.join(stream.compile(cmd=self.converter.path))}")

        try:
            ffmpeg.run(stream, cmd=self.converter.path, overwrite_output=True, quiet=True)
        except ffmpeg.Error as e:
            stderr = (e.stderr or b"").decode('utf-8', errors='replace').strip()
            raise MergeError(f"部分ファイルの結合に失敗しました: {stderr[-500:]}",
                             context={'output': str(output_path),
                                      'partials': len(attempts)}) from e
        except OSError as e:
            raise MergeError(f"変換コマンドを実行できません: {e}",
                             context={'cmd': self.converter.path}) from e

        self.logger.info(f"部分ファイル結合完了: {output_path}")
        return replace(result, output_path=output_path, merged=True)
