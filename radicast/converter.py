"""
変換コマンドモジュール

起動時に一度だけ ffmpeg / avconv を探し、見つかったコマンドに応じた
引数テンプレートで変換コマンドを組み立てます。
"""

from pathlib import Path
from typing import List, Optional, Union

from .errors import ConfigError
from .utils.process_utils import find_command

CONVERTER_NAMES = ('ffmpeg', 'avconv')


class Converter:
    """変換コマンド（ffmpeg または avconv）"""

    def __init__(self, path: str):
        self.path = path
        self.kind = self._detect_kind(path)

    @staticmethod
    def _detect_kind(path: str) -> str:
        name = Path(path).stem
        for kind in CONVERTER_NAMES:
            if name.endswith(kind):
                return kind
        raise ConfigError("path should be ffmpeg or avconv", context={'path': path})

    def decode_command(self, bitrate: str, output: Union[str, Path],
                       title: str, author: str) -> List[str]:
        """標準入力の音声をコピーしてファイルに書き出すコマンド

        bitrate は音声をコピーするため現在のテンプレートでは使用しない。
        avconv テンプレートはメタデータを埋め込まない。
        """
        if self.kind == 'ffmpeg':
            return [
                self.path,
                '-y',
                '-i', '-',
                '-vn',
                '-acodec', 'copy',
                '-metadata', f'title={title}',
                '-metadata', f'artist={author}',
                '-metadata', 'genre=radio',
                str(output),
            ]
        return [
            self.path,
            '-y',
            '-i', '-',
            '-vn',
            '-c:a', 'copy',
            str(output),
        ]

    def __repr__(self) -> str:
        return f"Converter(path={self.path!r}, kind={self.kind!r})"


def lookup_converter(path: Optional[str] = None) -> Converter:
    """変換コマンドを検索

    Args:
        path: 明示指定されたコマンドパス（省略時は実行パスから ffmpeg, avconv の順に探す）

    Raises:
        ConfigError: どちらも見つからない場合
    """
    if path is None:
        path = find_command(CONVERTER_NAMES)
    if not path:
        raise ConfigError("not found converter cmd such also ffmpeg, avconv.")
    return Converter(path)
