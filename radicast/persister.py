"""
録音結果保存モジュール

録音結果を番組ごとのディレクトリに保存します。

    <root>/<ft>_<station>/podcast.m4a   音声ファイル
    <root>/<ft>_<station>/podcast.xml   番組情報（prog要素のXML）

番組情報は一時ファイルに書き出し、音声の移動が終わってから
正式な名前に変更するため、両方のファイルが揃った状態でのみ見える。
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Union

from mutagen import MutagenError
from mutagen.mp4 import MP4

from .errors import PersistenceError
from .program_info import Program
from .session import SessionResult
from .utils.base import LoggerMixin
from .utils.path_utils import ensure_directory_path_exists, rename_or_copy

AUDIO_FILENAME = "podcast.m4a"
METADATA_FILENAME = "podcast.xml"


@dataclass(frozen=True)
class PersistedProgram:
    """保存済みの番組"""
    directory: Path
    audio_path: Path
    metadata_path: Path


class ResultPersister(LoggerMixin):
    """録音結果の保存"""

    def directory_for(self, root: Union[str, Path], result: SessionResult) -> Path:
        return Path(root) / f"{result.program.ft}_{result.station_id}"

    def save(self, result: SessionResult, root: Union[str, Path]) -> PersistedProgram:
        """録音結果を保存

        Raises:
            PersistenceError: ディレクトリ作成・ファイル書き込み・移動の失敗
                （音声の移動後に失敗しても移動は元に戻さない）
        """
        if result.output_path is None or result.program is None:
            raise PersistenceError("保存する録音ファイルがありません",
                                   context={'station': result.station_id})

        directory = self.directory_for(root, result)
        audio_path = directory / AUDIO_FILENAME
        metadata_path = directory / METADATA_FILENAME
        pending_path = directory / f".{METADATA_FILENAME}.tmp"

        try:
            ensure_directory_path_exists(directory)
            self._write_tags(result.output_path, result.program)

            with open(pending_path, 'w', encoding='utf-8') as f:
                f.write(result.program.to_xml())

            rename_or_copy(result.output_path, audio_path)
            os.replace(pending_path, metadata_path)
        except OSError as e:
            raise PersistenceError(f"録音結果の保存に失敗しました: {e}",
                                   context={'directory': str(directory),
                                            'source': str(result.output_path)}) from e

        self.logger.info(f"録音結果保存完了: {directory}")
        return PersistedProgram(directory=directory, audio_path=audio_path,
                                metadata_path=metadata_path)

    def _write_tags(self, audio_path: Path, program: Program) -> None:
        """MP4タグを書き込み（失敗しても保存は続行）"""
        try:
            audio = MP4(str(audio_path))
            if audio.tags is None:
                audio.add_tags()
            audio['©nam'] = program.title
            if program.pfm:
                audio['©ART'] = program.pfm
            audio['©gen'] = 'radio'
            audio['©day'] = program.ft_time().strftime('%Y-%m-%d')
            audio.save()
        except (MutagenError, OSError, ValueError) as e:
            self.logger.warning(f"MP4タグ追加エラー: {e}")
