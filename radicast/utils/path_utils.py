"""
パス処理ユーティリティ

ディレクトリ作成・一時ファイル・ファイル移動などのパス関連処理
"""

import os
import shutil
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Union


def ensure_directory_path_exists(dir_path: Union[str, Path]) -> Path:
    """ディレクトリパスを作成し、Pathオブジェクトを返す

    既存のディレクトリがある場合はエラーにならない。

    Args:
        dir_path: ディレクトリパス（文字列またはPathオブジェクト）

    Returns:
        Path: ディレクトリパスのPathオブジェクト
    """
    path = Path(dir_path)
    path.mkdir(parents=True, exist_ok=True)
    return path


@contextmanager
def scoped_temp_file(suffix: str = "", prefix: str = "radicast_") -> Iterator[Path]:
    """呼び出し範囲内だけ存在する一時ファイル

    例外・キャンセルを含むすべての終了経路でファイルを削除する。

    Example:
        with scoped_temp_file(suffix=".swf") as swf_path:
            swf_path.write_bytes(data)
    """
    fd, name = tempfile.mkstemp(suffix=suffix, prefix=prefix)
    os.close(fd)
    path = Path(name)
    try:
        yield path
    finally:
        path.unlink(missing_ok=True)


def rename_or_copy(src: Union[str, Path], dst: Union[str, Path]) -> Path:
    """ファイルを移動（別ファイルシステム間ではコピー後に元ファイルを削除）

    Args:
        src: 移動元
        dst: 移動先

    Returns:
        Path: 移動先のPathオブジェクト
    """
    src, dst = Path(src), Path(dst)
    try:
        os.replace(src, dst)
    except OSError:
        if not src.exists():
            raise
        shutil.copy2(src, dst)
        src.unlink()
    return dst
