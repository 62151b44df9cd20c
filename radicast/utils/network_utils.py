"""
ネットワーク処理ユーティリティ

radiko API用 aiohttp セッション作成の統一機能
"""

import aiohttp


def create_radiko_session(timeout: int = 30) -> aiohttp.ClientSession:
    """radiko API用の標準セッションを作成

    実行中のイベントループ内で呼び出すこと。

    Args:
        timeout: リクエストタイムアウト秒数（デフォルト: 30秒）

    Returns:
        aiohttp.ClientSession: 設定済みセッション

    Example:
        async with create_radiko_session() as session:
            async with session.get(url) as response:
                body = await response.read()
    """
    standard_headers = {
        'User-Agent': 'radicast/1.0',
        'Accept': '*/*',
        'Accept-Language': 'ja,en;q=0.9',
        'Connection': 'keep-alive'
    }

    return aiohttp.ClientSession(
        headers=standard_headers,
        timeout=aiohttp.ClientTimeout(total=timeout)
    )
