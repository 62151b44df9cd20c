"""
サブプロセス処理ユーティリティ

外部コマンドの検索・停止の統一機能
"""

import asyncio
import shutil
from typing import Optional, Sequence


def find_command(names: Sequence[str]) -> Optional[str]:
    """実行パス上から最初に見つかったコマンドのフルパスを返す"""
    for name in names:
        path = shutil.which(name)
        if path:
            return path
    return None


def kill_process(process: Optional[asyncio.subprocess.Process]) -> None:
    """プロセスを強制終了（終了済みなら何もしない）"""
    if process is None or process.returncode is not None:
        return
    try:
        process.kill()
    except ProcessLookupError:
        pass


def format_command(args: Sequence[str]) -> str:
    """ログ出力用のコマンド文字列"""
    return " ".join(str(arg) for arg in args)
