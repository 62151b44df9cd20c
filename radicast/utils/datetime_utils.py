"""
日時処理ユーティリティ

radiko番組表の時刻文字列（YYYYMMDDHHMMSS, 日本時間）の変換機能
"""

from datetime import datetime
from typing import Optional

import pytz

RADIKO_TIME_FORMAT = '%Y%m%d%H%M%S'
JST = pytz.timezone('Asia/Tokyo')


def parse_radiko_time(value: str) -> datetime:
    """radiko形式の時刻文字列を日本時間のdatetimeに変換

    Args:
        value: 'YYYYMMDDHHMMSS' 形式の文字列

    Returns:
        datetime: タイムゾーン付きdatetime（Asia/Tokyo）

    Raises:
        ValueError: 形式が不正な場合

    Example:
        parse_radiko_time('20240101120000')
        # datetime(2024, 1, 1, 12, 0, tzinfo=<DstTzInfo 'Asia/Tokyo' JST+9:00:00 STD>)
    """
    return JST.localize(datetime.strptime(value, RADIKO_TIME_FORMAT))


def now_jst(now: Optional[datetime] = None) -> datetime:
    """現在時刻（日本時間）を取得"""
    if now is None:
        return datetime.now(JST)
    if now.tzinfo is None:
        return JST.localize(now)
    return now.astimezone(JST)
